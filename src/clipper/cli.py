"""
Command-line interface for the key-moment clipping pipeline.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from openai import OpenAI

from .config import RENDER_ERROR_POLICIES, PipelineConfig
from .errors import InvalidInput
from .persistence import JsonClipStore
from .pipeline import KeyMomentPipeline
from .storage import HttpBlobStorage, LocalStorage
from .stt import AssemblyAITranscriber, WhisperTranscriber

logger = logging.getLogger("clipper")


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(description="Cut captioned key-moment clips out of a long video")

    # IO
    ap.add_argument("--input_video", required=True)
    ap.add_argument("--workdir", default=None, help="Working root (default: <video folder>/.clipper)")
    ap.add_argument("--media-root", default=None, help="Clip references are relative to this folder")
    ap.add_argument("--clips-db", default=None, help="JSON file that receives the clip list per video")

    # Services
    ap.add_argument("--stt", choices=["assemblyai", "whisper"], default="assemblyai")
    ap.add_argument("--whisper-model", default="whisper-1")
    ap.add_argument("--gpt-model", default=None)
    ap.add_argument(
        "--storage",
        choices=["local", "blob"],
        default="local",
        help="local: write under --public-dir; blob: PUT to BLOB_ENDPOINT",
    )
    ap.add_argument("--public-dir", default="public", help="Folder for --storage local")
    ap.add_argument("--public-url", default=os.getenv("PUBLIC_BASE_URL"), help="Base URL serving --public-dir")

    # Subtitles / rendering
    ap.add_argument("--segment-length", type=float, default=None, help="Seconds per subtitle cue")
    ap.add_argument("--max-concurrent", type=int, default=None, help="Max clips rendered at once")
    ap.add_argument("--on-render-error", choices=list(RENDER_ERROR_POLICIES), default=None)
    ap.add_argument("--allow-empty-transcript", action="store_true", default=None)

    # Logging
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return ap.parse_args(argv)


def build_pipeline(args: argparse.Namespace) -> KeyMomentPipeline:
    """Wire config, clients and collaborators from args and the environment."""
    config = PipelineConfig.from_env(
        work_root=args.workdir,
        media_root=args.media_root,
        llm_model=args.gpt_model,
        segment_length=args.segment_length,
        max_concurrent_renders=args.max_concurrent,
        on_render_error=args.on_render_error,
        allow_empty_transcript=args.allow_empty_transcript,
    )

    openai_key = os.getenv("OPENAI_API_KEY")
    if not openai_key:
        raise RuntimeError("OPENAI_API_KEY is not set. Put it in .env or environment.")
    client = OpenAI(api_key=openai_key, timeout=config.service_timeout, max_retries=0)

    if args.storage == "blob":
        storage = HttpBlobStorage(
            os.getenv("BLOB_ENDPOINT", ""), os.getenv("BLOB_TOKEN", ""), timeout=config.service_timeout
        )
    else:
        if args.stt == "assemblyai" and not args.public_url:
            # LocalStorage would hand AssemblyAI a file:// URL it cannot fetch
            raise InvalidInput(
                "AssemblyAI needs a public audio URL: set --public-url / PUBLIC_BASE_URL, "
                "use --storage blob, or use --stt whisper."
            )
        storage = LocalStorage(args.public_dir, args.public_url)

    if args.stt == "whisper":
        transcriber = WhisperTranscriber(client, args.whisper_model, timeout=config.service_timeout)
    else:
        transcriber = AssemblyAITranscriber(
            os.getenv("ASSEMBLYAI_API_KEY", ""), timeout=config.service_timeout
        )

    clip_store = JsonClipStore(args.clips_db) if args.clips_db else None
    return KeyMomentPipeline(
        config, storage=storage, transcriber=transcriber, llm_client=client, clip_store=clip_store
    )


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    # Load environment variables from .env file
    project_root = Path(__file__).parent.parent.parent
    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()

    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        pipeline = build_pipeline(args)
    except RuntimeError as e:
        logger.error(f"Could not set up the pipeline: {e}")
        return 2
    result = pipeline.run(args.input_video)
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
