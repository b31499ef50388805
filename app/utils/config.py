"""
Configuration management for the JSON drop-folder ingest service.

Uses pydantic-settings to load configuration from environment variables
and .env files.
"""

from pathlib import Path
from typing import Optional

from platformdirs import user_data_dir
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


WATCH_FOLDER_NAME = "FolderToWatch"


def default_watch_dir() -> Path:
    """Local application-data folder that receives the JSON drops."""
    return Path(user_data_dir(appname=None, appauthor=False)) / WATCH_FOLDER_NAME


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # MongoDB Configuration
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "ingest"
    mongo_server_selection_timeout_ms: int = 30000

    # Watch Configuration
    watch_dir: Path = Field(default_factory=default_watch_dir)
    file_pattern: str = "*.json"
    poll_interval: float = 1.0  # seconds

    # Retry Configuration
    max_retries: int = Field(default=5, ge=1)
    retry_delay: float = Field(default=5.0, ge=0)  # seconds

    # Files that end in EXHAUSTED/FAILED are moved here instead of deleted
    failed_dir: Optional[Path] = None

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @model_validator(mode="after")
    def _failed_dir_outside_watch_dir(self) -> "Settings":
        # A quarantined file moved back into the watched folder would be picked up again
        failed_dir = self.get_failed_dir()
        if failed_dir is not None and failed_dir.resolve() == self.get_watch_dir().resolve():
            raise ValueError("failed_dir must not be the watched directory")
        return self

    def get_watch_dir(self) -> Path:
        """Watched directory with ``~`` expanded."""
        return Path(self.watch_dir).expanduser()

    def get_failed_dir(self) -> Optional[Path]:
        """Quarantine directory with ``~`` expanded, if configured."""
        if self.failed_dir is None:
            return None
        return Path(self.failed_dir).expanduser()


