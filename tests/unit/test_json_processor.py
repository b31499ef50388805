import json
import os
from datetime import datetime, timezone

import pytest

from app.models.schemas import DiscoverySource, FileState
from app.utils.config import Settings
from domains.file_ingest.collectors.json_collector import JsonFileProcessor


def drop(watch_dir, name, payload):
    path = watch_dir / name
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload))
    return path


class CountingReadiness:
    def __init__(self, ready=True):
        self.ready = ready
        self.calls = 0

    def __call__(self, path):
        self.calls += 1
        return self.ready


def test_valid_document_is_uploaded_and_deleted(settings, watch_dir, fake_client, sleeper):
    path = drop(watch_dir, "order.json", {"Action": "orders", "CreatedAt": "2024-01-01T00:00:00Z", "Id": 7})
    processor = JsonFileProcessor(settings, fake_client, sleep=sleeper)

    result = processor.process(path)

    assert result.state == FileState.SUCCEEDED
    assert result.source == DiscoverySource.LIVE_EVENT
    assert result.collection == "orders"
    assert result.inserted_id == fake_client.records[0][2]
    assert result.removed is True
    assert not path.exists()
    assert sleeper.calls == []

    collection, body, _ = fake_client.records[0]
    assert collection == "orders"
    assert body == {
        "Action": "orders",
        "CreatedAt": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "Id": 7,
    }


def test_document_without_action_fails_once_and_is_deleted(settings, watch_dir, fake_client, sleeper):
    path = drop(watch_dir, "bad.json", {"CreatedAt": "2024-01-01T00:00:00Z"})
    readiness = CountingReadiness()
    processor = JsonFileProcessor(settings, fake_client, sleep=sleeper, readiness_check=readiness)

    result = processor.process(path)

    assert result.state == FileState.FAILED
    assert "Action" in result.error
    assert readiness.calls == 1
    assert sleeper.calls == []
    assert fake_client.calls == 0
    assert not path.exists()


def test_malformed_json_fails_without_retry(settings, watch_dir, fake_client, sleeper):
    path = drop(watch_dir, "broken.json", '{"Action": ')
    processor = JsonFileProcessor(settings, fake_client, sleep=sleeper)

    result = processor.process(path)

    assert result.state == FileState.FAILED
    assert sleeper.calls == []
    assert not path.exists()


def test_file_never_ready_is_exhausted_after_max_retries(settings, watch_dir, fake_client, sleeper):
    path = drop(watch_dir, "locked.json", {"Action": "orders"})
    readiness = CountingReadiness(ready=False)
    processor = JsonFileProcessor(settings, fake_client, sleep=sleeper, readiness_check=readiness)

    result = processor.process(path)

    assert result.state == FileState.EXHAUSTED
    assert result.attempts == 5
    assert readiness.calls == 5
    assert sleeper.calls == [5.0] * 4
    assert fake_client.records == []
    assert not path.exists()


@pytest.mark.skipif(os.name == "nt", reason="uses POSIX advisory locks")
def test_file_locked_by_writer_is_exhausted(settings, watch_dir, fake_client, sleeper):
    import fcntl

    path = drop(watch_dir, "locked.json", {"Action": "orders"})
    processor = JsonFileProcessor(settings, fake_client, sleep=sleeper)

    with open(path, "ab") as writer:
        fcntl.flock(writer.fileno(), fcntl.LOCK_EX)
        result = processor.process(path)

    assert result.state == FileState.EXHAUSTED
    assert fake_client.records == []
    assert not path.exists()


def test_file_becoming_ready_is_uploaded(settings, watch_dir, fake_client, sleeper):
    path = drop(watch_dir, "slow.json", {"Action": "orders"})
    answers = iter([False, False, True])
    processor = JsonFileProcessor(
        settings, fake_client, sleep=sleeper, readiness_check=lambda p: next(answers)
    )

    result = processor.process(path)

    assert result.state == FileState.SUCCEEDED
    assert result.attempts == 2
    assert sleeper.calls == [5.0, 5.0]


def test_database_errors_are_retried_with_backoff(settings, watch_dir, sleeper, client_factory):
    client = client_factory(failures=2)
    path = drop(watch_dir, "order.json", {"Action": "orders"})
    processor = JsonFileProcessor(settings, client, sleep=sleeper)

    result = processor.process(path)

    assert result.state == FileState.SUCCEEDED
    assert client.calls == 3
    assert len(client.records) == 1
    assert sleeper.calls == [5.0, 5.0]
    assert result.error is None


def test_database_errors_are_bounded(settings, watch_dir, sleeper, client_factory):
    client = client_factory(failures=100)
    path = drop(watch_dir, "order.json", {"Action": "orders"})
    processor = JsonFileProcessor(settings, client, sleep=sleeper)

    result = processor.process(path)

    assert result.state == FileState.EXHAUSTED
    assert client.calls == settings.max_retries
    assert "connection refused" in result.error
    assert not path.exists()


def test_same_content_twice_yields_two_records(settings, watch_dir, fake_client, sleeper):
    payload = {"Action": "events", "Kind": "click"}
    processor = JsonFileProcessor(settings, fake_client, sleep=sleeper)

    first = processor.process(drop(watch_dir, "a.json", payload))
    second = processor.process(drop(watch_dir, "a.json", payload))

    assert first.state == second.state == FileState.SUCCEEDED
    assert len(fake_client.records) == 2
    assert fake_client.records[0][1] == fake_client.records[1][1]
    assert first.inserted_id != second.inserted_id


def test_failed_files_are_quarantined_when_configured(watch_dir, tmp_path, fake_client, sleeper):
    failed_dir = tmp_path / "failed"
    settings = Settings(watch_dir=watch_dir, failed_dir=failed_dir)
    processor = JsonFileProcessor(settings, fake_client, sleep=sleeper)

    first = processor.process(drop(watch_dir, "bad.json", {"NoAction": True}))
    second = processor.process(drop(watch_dir, "bad.json", {"NoAction": True}))

    assert first.state == FileState.FAILED
    assert first.quarantined_to == failed_dir / "bad.json"
    assert second.quarantined_to == failed_dir / "bad.1.json"
    assert first.quarantined_to.exists() and second.quarantined_to.exists()
    assert not (watch_dir / "bad.json").exists()


def test_successful_files_are_deleted_even_with_failed_dir(watch_dir, tmp_path, fake_client, sleeper):
    settings = Settings(watch_dir=watch_dir, failed_dir=tmp_path / "failed")
    path = drop(watch_dir, "ok.json", {"Action": "orders"})

    result = JsonFileProcessor(settings, fake_client, sleep=sleeper).process(path)

    assert result.state == FileState.SUCCEEDED
    assert result.quarantined_to is None
    assert not path.exists()
    assert not (tmp_path / "failed").exists()


def test_file_removed_before_cleanup_is_not_an_error(settings, watch_dir, sleeper, client_factory):
    path = drop(watch_dir, "gone.json", {"Action": "orders"})

    class DeletingClient(client_factory):
        def insert_document(self, collection, document):
            path.unlink()
            return super().insert_document(collection, document)

    result = JsonFileProcessor(settings, DeletingClient(), sleep=sleeper).process(path)

    assert result.state == FileState.SUCCEEDED
    assert result.removed is False


@pytest.mark.parametrize(
    "created_at, expected",
    [
        ("2024-01-01", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        ("2024-01-01T10:30Z", datetime(2024, 1, 1, 10, 30, tzinfo=timezone.utc)),
    ],
)
def test_short_iso_dates_are_uploaded(settings, watch_dir, fake_client, sleeper, created_at, expected):
    path = drop(watch_dir, "order.json", {"Action": "orders", "CreatedAt": created_at})

    result = JsonFileProcessor(settings, fake_client, sleep=sleeper).process(path)

    assert result.state == FileState.SUCCEEDED
    assert fake_client.records[0][1]["CreatedAt"] == expected
    assert not path.exists()


def test_unstorable_document_fails_without_retry(settings, watch_dir, sleeper, client_factory):
    from domains.file_ingest.errors import DocumentEncodeError

    class EncodingClient(client_factory):
        def insert_document(self, collection, document):
            self.calls += 1
            raise DocumentEncodeError("MongoDB can only handle up to 8-byte ints")

    client = EncodingClient()
    path = drop(watch_dir, "big.json", '{"Action": "orders", "n": 100000000000000000000}')

    result = JsonFileProcessor(settings, client, sleep=sleeper).process(path)

    assert result.state == FileState.FAILED
    assert "8-byte" in result.error
    assert client.calls == 1
    assert sleeper.calls == []
    assert not path.exists()


def test_unexpected_error_still_removes_the_file(settings, watch_dir, sleeper, client_factory):
    class BrokenClient(client_factory):
        def insert_document(self, collection, document):
            raise OverflowError("unexpected")

    path = drop(watch_dir, "order.json", {"Action": "orders"})

    result = JsonFileProcessor(settings, BrokenClient(), sleep=sleeper).process(path)

    assert result.state == FileState.FAILED
    assert result.error == "unexpected"
    assert result.removed is True
    assert not path.exists()
