"""
JSON drop-folder collector.

Watches a directory for new ``.json`` files and inserts each one into the
MongoDB collection named by its ``Action`` field. Every file is removed once
processing reaches a terminal state. Uses watchdog for file system events.

Files are handled one at a time: the startup sweep runs before the observer
starts, and the observer calls the handler synchronously on its single
dispatch thread.
"""

import fnmatch
import shutil
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Union

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from app.models.schemas import (
    DiscoverySource,
    FileState,
    PendingFile,
    ProcessResult,
    RetryState,
)
from app.utils.config import Settings
from app.utils.mongo_client import MongoIngestClient
from domains.file_ingest.errors import DatabaseError, DocumentError, WatcherError
from domains.file_ingest.processors.readiness import is_file_ready
from domains.file_ingest.processors.transformer import load_document


def matches_pattern(path: Union[str, Path], pattern: str) -> bool:
    """Case-insensitive file name match, shared by the sweep and live events."""
    return fnmatch.fnmatchcase(Path(path).name.lower(), pattern.lower())


class JsonFileProcessor:
    """Per-file retry loop: readiness, transform, insert, then remove."""

    def __init__(
        self,
        settings: Settings,
        ingest_client: MongoIngestClient,
        sleep: Callable[[float], None] = time.sleep,
        readiness_check: Callable[[Path], bool] = is_file_ready,
    ):
        """
        Initialize processor.

        Args:
            settings: Settings object shared with the rest of the process
            ingest_client: Client used to insert documents
            sleep: Blocking wait used between attempts
            readiness_check: Predicate telling whether a file can be read
        """
        self.settings = settings
        self.ingest = ingest_client
        self.sleep = sleep
        self.readiness_check = readiness_check
        self.failed_dir = settings.get_failed_dir()

    def process(
        self,
        path: Union[str, Path],
        source: DiscoverySource = DiscoverySource.LIVE_EVENT,
    ) -> ProcessResult:
        """
        Run one file to a terminal state. Blocks for the whole run.

        Args:
            path: Path of the dropped file
            source: Whether the file came from the startup sweep or an event

        Returns:
            ProcessResult describing the terminal state
        """
        pending = PendingFile(path=Path(path), source=source)
        retry = RetryState(
            max_retries=self.settings.max_retries,
            delay=self.settings.retry_delay,
        )
        result = ProcessResult(path=pending.path, source=pending.source, state=FileState.IDLE)

        state = FileState.CHECKING_READINESS
        try:
            while not state.is_terminal:
                if state == FileState.CHECKING_READINESS:
                    if self.readiness_check(pending.path):
                        state = FileState.PROCESSING
                    else:
                        logger.debug(f"{pending.path} is not ready")
                        state = FileState.RETRYING

                elif state == FileState.PROCESSING:
                    state = self._ingest(pending, result)

                elif state == FileState.RETRYING:
                    retry.attempts += 1
                    if retry.exhausted:
                        logger.warning(
                            f"Maximum Process Retries reached for {pending.path} "
                            f"after {retry.attempts} attempts"
                        )
                        state = FileState.EXHAUSTED
                    else:
                        logger.info(
                            f"Retrying {pending.path} in {retry.delay}s "
                            f"(attempt {retry.attempts}/{retry.max_retries})"
                        )
                        self.sleep(retry.delay)
                        state = FileState.CHECKING_READINESS

        except Exception as e:
            # Unexpected failures end the file like any other non-retryable error
            logger.exception(f"{pending.path} failed unexpectedly: {e}")
            result.error = str(e)
            state = FileState.FAILED

        result.state = state
        result.attempts = retry.attempts
        self._finish(pending.path, result)
        return result

    def _ingest(self, pending: PendingFile, result: ProcessResult) -> FileState:
        """Transform and insert; returns the next state."""
        try:
            document = load_document(pending.path)
        except DocumentError as e:
            logger.error(f"{pending.path} cannot be ingested: {e}")
            result.error = str(e)
            return FileState.FAILED
        except OSError as e:
            # Vanished or re-locked between the readiness check and the read
            logger.warning(f"Could not read {pending.path}: {e}")
            result.error = str(e)
            return FileState.RETRYING

        result.collection = document.action
        try:
            result.inserted_id = self.ingest.insert_document(document.action, document.body)
        except DocumentError as e:
            logger.error(f"{pending.path} cannot be stored: {e}")
            result.error = str(e)
            return FileState.FAILED
        except DatabaseError as e:
            logger.error(str(e))
            result.error = str(e)
            return FileState.RETRYING

        result.error = None
        logger.success(f"{pending.path} UPLOADED")
        return FileState.SUCCEEDED

    def _finish(self, path: Path, result: ProcessResult):
        """Delete the file, or quarantine it if it failed and a failed_dir is set."""
        try:
            if result.state != FileState.SUCCEEDED and self.failed_dir is not None:
                destination = self._quarantine(path)
                result.quarantined_to = destination
                logger.warning(f"{path} QUARANTINED -> {destination}")
            else:
                path.unlink()
                logger.info(f"{path} DELETED")
            result.removed = True

        except FileNotFoundError:
            logger.warning(f"{path} was already gone")

        except OSError as e:
            logger.error(f"Could not remove {path}: {e}")

    def _quarantine(self, path: Path) -> Path:
        self.failed_dir.mkdir(parents=True, exist_ok=True)
        destination = self.failed_dir / path.name
        counter = 1
        while destination.exists():
            destination = self.failed_dir / f"{path.stem}.{counter}{path.suffix}"
            counter += 1
        shutil.move(str(path), str(destination))
        return destination


class JsonDropEventHandler(FileSystemEventHandler):
    """Watchdog handler forwarding new ``.json`` files to the processor."""

    def __init__(self, processor: JsonFileProcessor, watch_dir: Path, pattern: str = "*.json"):
        """
        Initialize event handler.

        Args:
            processor: Retry loop run for each new file
            watch_dir: Directory being watched (non-recursive)
            pattern: File name pattern, matched case-insensitively
        """
        super().__init__()
        self.processor = processor
        self.watch_dir = Path(watch_dir)
        self.pattern = pattern

    def should_process(self, path: str) -> bool:
        """
        Check if path matches the pattern and sits directly inside the watched directory.

        Args:
            path: File path

        Returns:
            True if should process, False otherwise
        """
        path_obj = Path(path)
        if not matches_pattern(path_obj, self.pattern):
            return False
        return path_obj.parent == self.watch_dir

    def dispatch(self, event: FileSystemEvent):
        """Dispatch events, logging anything that escapes a handler."""
        try:
            super().dispatch(event)
        except Exception as e:
            logger.exception(f"The file system watcher has detected an error: {e}")

    def on_created(self, event: FileSystemEvent):
        """Handle file creation."""
        if event.is_directory or not self.should_process(event.src_path):
            return

        logger.info(f"Created: {event.src_path}")
        self.processor.process(event.src_path, DiscoverySource.LIVE_EVENT)

    def on_moved(self, event: FileSystemEvent):
        """Handle a rename into the directory as a creation."""
        dest = getattr(event, "dest_path", None)
        if event.is_directory or not dest or not self.should_process(dest):
            return

        logger.info(f"Moved in: {event.src_path} -> {dest}")
        self.processor.process(dest, DiscoverySource.LIVE_EVENT)


class JsonDropFolderCollector:
    """Drop-folder orchestrator: startup sweep, then live watching."""

    def __init__(
        self,
        settings: Settings,
        processor: Optional[JsonFileProcessor] = None,
        ingest_client: Optional[MongoIngestClient] = None,
    ):
        """Initialize collector."""
        self.settings = settings
        self.watch_dir = settings.get_watch_dir().resolve()
        self.ingest = ingest_client or MongoIngestClient(settings=settings)
        self.processor = processor or JsonFileProcessor(settings, self.ingest)

        self.event_handler = JsonDropEventHandler(
            self.processor, self.watch_dir, settings.file_pattern
        )
        self.observer: Optional[Observer] = None

        logger.info("JSON drop-folder collector initialized")
        logger.info(f"Watching directory: {self.watch_dir}")

    def ensure_watch_dir(self):
        """Create the watched directory if it does not exist."""
        self.watch_dir.mkdir(parents=True, exist_ok=True)

    def pending_files(self) -> List[Path]:
        """Files matching the pattern, in directory-listing order."""
        return [
            p for p in self.watch_dir.iterdir()
            if p.is_file() and matches_pattern(p, self.settings.file_pattern)
        ]

    def sweep(self) -> List[ProcessResult]:
        """
        Process files left in the folder before watching starts.

        Returns:
            Results for every file that reached a terminal state
        """
        results = []
        files = self.pending_files()
        if not files:
            return results

        logger.info("Start uploading files left in folder:")
        for path in files:
            try:
                results.append(self.processor.process(path, DiscoverySource.STARTUP_SWEEP))
            except Exception as e:
                logger.exception(f"Startup sweep failed on {path}: {e}")

        return results

    def start_watching(self):
        """Start watching the directory."""
        self.observer = Observer()
        self.observer.schedule(self.event_handler, str(self.watch_dir), recursive=False)
        self.observer.start()
        logger.success(f"Started watching: {self.watch_dir}")

    def stop_watching(self):
        """Stop watching. Waits for the file in flight to finish."""
        if self.observer is None:
            return
        self.observer.stop()
        self.observer.join()
        self.observer = None
        logger.info("File system observer stopped")

    def observer_error(self) -> Optional[WatcherError]:
        """
        Check the observer and its emitter threads.

        Emitters run on their own threads and die on their own (watched
        directory removed, inotify queue overflow) while the observer keeps
        running.

        Returns:
            WatcherError if the observer or an emitter died after starting, None otherwise
        """
        if self.observer is None:
            return None

        dead = [e for e in self.observer.emitters if not e.is_alive()]
        if dead or not self.observer.is_alive():
            return WatcherError(
                f"The file system watcher for {self.watch_dir} stopped unexpectedly; "
                "new files will not be picked up"
            )
        return None

    def run(self, stop_event: threading.Event, sweep: bool = True):
        """
        Sweep, then watch until ``stop_event`` is set.

        Args:
            stop_event: Set to request shutdown
            sweep: Whether to drain existing files first
        """
        self.ensure_watch_dir()
        if sweep:
            self.sweep()

        self.start_watching()
        reported = False
        try:
            while not stop_event.is_set():
                stop_event.wait(self.settings.poll_interval)
                error = None if reported else self.observer_error()
                if error is not None:
                    logger.error(f"The file system watcher has detected an error: {error}")
                    reported = True
        finally:
            self.stop_watching()
            self.ingest.close()
