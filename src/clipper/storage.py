"""
Object storage: publish bytes under a key and get back a fetchable URL.
"""

import logging
from pathlib import Path
from typing import Protocol

import httpx

from .errors import UploadFailure

logger = logging.getLogger("clipper")


class ObjectStorage(Protocol):
    def put(self, key: str, data: bytes) -> str:
        """Store ``data`` under ``key`` and return a public URL for it."""
        ...


class LocalStorage:
    """Writes objects under a directory, e.g. one served by a static web server."""

    def __init__(self, root: str | Path, base_url: str | None = None) -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/") + "/" if base_url else None

    def put(self, key: str, data: bytes) -> str:
        dest = self.root / key
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(data)
        except OSError as e:
            raise UploadFailure(f"Could not store {key}", str(e)) from e
        if self.base_url:
            return self.base_url + key.lstrip("/")
        return dest.resolve().as_uri()


class HttpBlobStorage:
    """
    Uploads to an HTTP blob store that accepts ``PUT <endpoint>/<key>`` with a
    bearer token and answers with JSON containing the public ``url``.
    """

    def __init__(
        self,
        endpoint: str,
        token: str,
        *,
        timeout: float = 300.0,
        client: httpx.Client | None = None,
    ) -> None:
        if not endpoint:
            raise UploadFailure("Blob endpoint is not set (BLOB_ENDPOINT)")
        self.endpoint = endpoint.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(follow_redirects=True, timeout=self.timeout)
        return self._client

    def put(self, key: str, data: bytes) -> str:
        url = f"{self.endpoint}/{key.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "x-access": "public",
            "Content-Type": "application/octet-stream",
            "User-Agent": "key-moment-clipper/1.0",
        }
        logger.info(f"Uploading {len(data)} bytes -> {url}")
        r = self._http().put(url, content=data, headers=headers)
        r.raise_for_status()
        try:
            public_url = r.json()["url"]
        except (ValueError, KeyError, TypeError) as e:
            raise UploadFailure(f"Blob store gave no URL for {key}", r.text[:300]) from e
        return str(public_url)
