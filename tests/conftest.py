"""Shared fixtures for the drop-folder ingest tests."""

import sys
from pathlib import Path
from uuid import uuid4

import pytest

# Add project root to path to allow absolute imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.utils.config import Settings
from domains.file_ingest.errors import DatabaseError


class FakeIngestClient:
    """Stands in for MongoIngestClient; fails the first ``failures`` inserts."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = 0
        self.records: list[tuple[str, dict, str]] = []
        self.closed = False

    def insert_document(self, collection, document):
        self.calls += 1
        if self.calls <= self.failures:
            raise DatabaseError("connection refused", collection=collection)
        inserted_id = uuid4().hex
        self.records.append((collection, dict(document), inserted_id))
        return inserted_id

    def close(self):
        self.closed = True


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float):
        self.calls.append(seconds)


@pytest.fixture
def watch_dir(tmp_path) -> Path:
    path = tmp_path / "FolderToWatch"
    path.mkdir()
    return path


@pytest.fixture
def settings(watch_dir) -> Settings:
    return Settings(
        watch_dir=watch_dir,
        mongo_uri="mongodb://localhost:27017",
        mongo_database="ingest_test",
        max_retries=5,
        retry_delay=5.0,
        poll_interval=0.05,
    )


@pytest.fixture
def fake_client() -> FakeIngestClient:
    return FakeIngestClient()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def client_factory():
    return FakeIngestClient
