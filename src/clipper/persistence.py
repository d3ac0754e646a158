"""
Where finished clip lists go: keyed by the source video's stable path.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from .errors import PersistenceFailure

logger = logging.getLogger("clipper")


class ClipStore(Protocol):
    def attach_clips(self, source_key: str, clip_refs: list[str]) -> None:
        """Record the ordered clip references for a source video."""
        ...


class JsonClipStore:
    """A JSON file mapping source video keys to their clip references."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, list[str]]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Could not read {self.path}", str(e)) from e

    def clips_for(self, source_key: str) -> list[str]:
        return list(self.load().get(source_key, []))

    def attach_clips(self, source_key: str, clip_refs: list[str]) -> None:
        data = self.load()
        data[source_key] = list(clip_refs)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".clips-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistenceFailure(f"Could not write {self.path}", str(e)) from e
        logger.info(f"Attached {len(clip_refs)} clips to {source_key} -> {self.path}")
