"""Exception hierarchy for the JSON drop-folder ingest pipeline.

Callers react to the high-level categories: ``DocumentError`` subclasses are
never retried, ``DatabaseError`` is retried within the attempt budget, and
``WatcherError`` is only ever logged.
"""

from __future__ import annotations

__all__ = [
    "FileIngestError",
    "DocumentError",
    "DocumentParseError",
    "RoutingKeyMissingError",
    "DocumentEncodeError",
    "DatabaseError",
    "WatcherError",
]


class FileIngestError(RuntimeError):
    """Base exception for drop-folder ingest failures."""


class DocumentError(FileIngestError):
    """Raised when a file's content can never be ingested as-is."""


class DocumentParseError(DocumentError):
    """Raised when a file is not a JSON object or a known field has the wrong shape."""


class RoutingKeyMissingError(DocumentError):
    """Raised when the ``Action`` routing key is absent or empty."""


class DocumentEncodeError(DocumentError):
    """Raised when a parsed document cannot be stored as BSON or routed to a valid collection."""


class DatabaseError(FileIngestError):
    """Raised when an insert into MongoDB fails."""

    def __init__(self, message: str, *, collection: str | None = None) -> None:
        super().__init__(message)
        self.collection = collection


class WatcherError(FileIngestError):
    """Raised (and logged) when the file system watcher misbehaves."""
