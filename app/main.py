"""
JSON Drop-Folder Ingest - process entry point

Drains any ``.json`` files left in the watched folder, then watches it for new
ones and inserts each into the MongoDB collection named by its ``Action``.
"""

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from loguru import logger

from app.utils.config import Settings
from app.utils.mongo_client import MongoIngestClient
from domains.file_ingest.collectors.json_collector import JsonDropFolderCollector


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO"):
    """Send loguru output to stdout."""
    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, level=level.upper())


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""

    parser = argparse.ArgumentParser(
        description="Watch a folder for JSON files and insert them into MongoDB.",
    )
    parser.add_argument(
        "--watch-dir",
        type=Path,
        default=None,
        help="Folder to watch (default: <local app data>/FolderToWatch).",
    )
    parser.add_argument("--mongo-uri", default=None, help="MongoDB connection string.")
    parser.add_argument("--database", default=None, help="MongoDB database name.")
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Attempts per file before giving up (default: 5).",
    )
    parser.add_argument(
        "--retry-delay",
        type=float,
        default=None,
        help="Seconds between attempts (default: 5).",
    )
    parser.add_argument(
        "--failed-dir",
        type=Path,
        default=None,
        help="Move files that could not be ingested here instead of deleting them.",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO).")
    parser.add_argument(
        "--no-sweep",
        action="store_true",
        help="Skip uploading files already in the folder at startup.",
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Settings from the environment with CLI overrides applied."""
    overrides = {
        "watch_dir": args.watch_dir,
        "mongo_uri": args.mongo_uri,
        "mongo_database": args.database,
        "max_retries": args.max_retries,
        "retry_delay": args.retry_delay,
        "failed_dir": args.failed_dir,
        "log_level": args.log_level,
    }
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def _wait_for_enter(stop_event: threading.Event):
    try:
        input()
    except EOFError:
        # No interactive console; rely on signals
        return
    stop_event.set()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging()

    try:
        settings = build_settings(args)
        configure_logging(settings.log_level)
        logger.info("JSON Drop-Folder Ingest")

        ingest_client = MongoIngestClient(settings=settings)
        collector = JsonDropFolderCollector(settings, ingest_client=ingest_client)
    except Exception as e:
        logger.error(f"Collector failed to start: {e}")
        return 1

    stop_event = threading.Event()

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        stop_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    logger.info("Press 'Enter' to quit watching the folder.")
    threading.Thread(target=_wait_for_enter, args=(stop_event,), daemon=True).start()

    try:
        collector.run(stop_event, sweep=not args.no_sweep)
    except Exception as e:
        logger.error(f"Collector failed: {e}")
        return 1

    logger.info("Collector stopped.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    sys.exit(main())
