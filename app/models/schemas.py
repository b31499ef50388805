"""
Pydantic models for the JSON drop-folder ingest service.

Shared data models across the application.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr


# =====================================================
# Document Models
# =====================================================

class IngestEnvelope(BaseModel):
    """Typed view of the two recognized fields of a dropped document.

    Every other field is kept untouched in the extra bag.
    """

    model_config = ConfigDict(extra="allow")

    action: StrictStr = Field(alias="Action", min_length=1)
    created_at: Optional[StrictStr] = Field(default=None, alias="CreatedAt")


class ParsedDocument(BaseModel):
    """Document ready to insert, plus the collection it is routed to."""
    action: str
    body: Dict[str, Any]


# =====================================================
# Processing Models
# =====================================================

class DiscoverySource(str, Enum):
    """How a pending file was found."""
    STARTUP_SWEEP = "startup_sweep"
    LIVE_EVENT = "live_event"


class FileState(str, Enum):
    """States of the per-file retry loop."""
    IDLE = "idle"
    CHECKING_READINESS = "checking_readiness"
    PROCESSING = "processing"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FileState.SUCCEEDED, FileState.EXHAUSTED, FileState.FAILED)


class PendingFile(BaseModel):
    """A ``.json`` file awaiting processing."""
    path: Path
    source: DiscoverySource = DiscoverySource.LIVE_EVENT


class RetryState(BaseModel):
    """Per-file attempt counter. Not persisted."""
    attempts: int = 0
    max_retries: int = 5
    delay: float = 5.0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_retries


class ProcessResult(BaseModel):
    """Outcome of running one file through the retry loop."""
    path: Path
    source: DiscoverySource
    state: FileState
    attempts: int = 0
    collection: Optional[str] = None
    inserted_id: Optional[Any] = None
    error: Optional[str] = None
    removed: bool = False
    quarantined_to: Optional[Path] = None
