"""Tests for glucose_sync/database/repository.py."""

import os
import tempfile

import pytest
from sqlalchemy import create_engine, inspect, text

from glucose_sync.database.repository import Repository
from glucose_sync.sync.models import DEFAULT_PROFILE_ID, Reading


@pytest.fixture
def repo():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    r = Repository(db_path)
    r.init_database()
    yield r
    # Dispose the engine to release the file handle before deletion (required on Windows)
    r._engine.dispose()
    try:
        os.unlink(db_path)
    except PermissionError:
        pass


def _reading(id_: str, ts: int, synced: bool = False, name: str = "alice", value: float = 6.5) -> Reading:
    return Reading(id=id_, value=value, owner_name=name, timestamp=ts, synced=synced)


def test_insert_and_get(repo):
    repo.insert_or_replace(Reading(
        id="r1", value=7.2, owner_name="alice", comment="after lunch",
        snack_pass=True, source="android", timestamp=1000, tags="Post-Meal,Afternoon",
    ))
    r = repo.get_reading("r1")
    assert r is not None
    assert r.value == 7.2
    assert r.comment == "after lunch"
    assert r.snack_pass is True
    assert r.synced is False
    assert r.tags_list() == ["Post-Meal", "Afternoon"]
    assert r.profile_id == DEFAULT_PROFILE_ID


def test_get_missing_returns_none(repo):
    assert repo.get_reading("nope") is None


def test_insert_or_replace_overwrites_all_fields(repo):
    repo.insert_or_replace(Reading(id="r1", value=5.0, owner_name="alice", comment="old", timestamp=1))
    repo.insert_or_replace(Reading(id="r1", value=9.0, owner_name="alice", timestamp=2, synced=True))
    r = repo.get_reading("r1")
    assert r.value == 9.0
    assert r.comment is None
    assert r.synced is True
    assert repo.count_readings() == 1


def test_all_readings_newest_first(repo):
    for i, ts in enumerate([300, 100, 200]):
        repo.insert_or_replace(_reading(f"r{i}", ts))
    assert [r.timestamp for r in repo.all_readings()] == [300, 200, 100]


def test_readings_by_owner_filters(repo):
    repo.insert_or_replace(_reading("a", 1, name="alice"))
    repo.insert_or_replace(_reading("b", 2, name="bob"))
    assert [r.id for r in repo.readings_by_owner("alice")] == ["a"]
    assert repo.readings_by_owner("carol") == []


def test_unsynced_readings_oldest_first(repo):
    repo.insert_or_replace(_reading("new", 200))
    repo.insert_or_replace(_reading("old", 100))
    repo.insert_or_replace(_reading("done", 50, synced=True))
    assert [r.id for r in repo.unsynced_readings()] == ["old", "new"]
    assert repo.count_unsynced() == 2


def test_insert_or_replace_many_is_idempotent(repo):
    batch = [_reading("a", 1, synced=True), _reading("b", 2, synced=True)]
    assert repo.insert_or_replace_many(batch) == 2
    assert repo.insert_or_replace_many(batch) == 2
    assert repo.count_readings() == 2


def test_update_reading_missing_is_noop(repo):
    assert repo.update_reading(_reading("ghost", 1)) is False
    assert repo.get_reading("ghost") is None


def test_update_reading_existing(repo):
    repo.insert_or_replace(_reading("r1", 1))
    assert repo.update_reading(_reading("r1", 1, synced=True, value=8.0)) is True
    r = repo.get_reading("r1")
    assert r.synced is True
    assert r.value == 8.0


def test_mark_synced_only_touches_flag(repo):
    repo.insert_or_replace(Reading(id="r1", value=4.4, owner_name="alice", comment="keep", timestamp=5))
    assert repo.mark_synced("r1") is True
    r = repo.get_reading("r1")
    assert r.synced is True
    assert r.comment == "keep"
    assert r.value == 4.4
    assert repo.mark_synced("missing") is False


def test_delete_reading(repo):
    r = _reading("r1", 1)
    repo.insert_or_replace(r)
    assert repo.delete_reading(r) is True
    assert repo.delete_reading(r) is False
    assert repo.get_reading("r1") is None


def test_delete_all_readings(repo):
    repo.insert_or_replace_many([_reading("a", 1), _reading("b", 2)])
    assert repo.delete_all_readings() == 2
    assert repo.all_readings() == []


def test_sync_log_and_last_success(repo):
    assert repo.get_last_successful_sync() is None
    repo.log_sync("success", attempts=1)
    repo.log_sync("error", "HTTP 503: Service Unavailable", attempts=3)
    last = repo.get_last_successful_sync()
    assert last is not None
    assert last.status == "success"
    logs = repo.get_recent_sync_logs(5)
    assert [log.status for log in logs] == ["error", "success"]
    assert logs[0].attempts == 3


def test_migrations_add_missing_columns():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    legacy = create_engine(f"sqlite:///{db_path}")
    with legacy.connect() as conn:
        conn.execute(text(
            "CREATE TABLE glucose_readings (id VARCHAR(64) PRIMARY KEY, reading FLOAT NOT NULL, "
            "units VARCHAR(16) NOT NULL, name VARCHAR(255) NOT NULL, comment TEXT, "
            "snack_pass BOOLEAN NOT NULL, source VARCHAR(64) NOT NULL, timestamp BIGINT NOT NULL, "
            "color VARCHAR(32), glucose_level INTEGER, synced BOOLEAN NOT NULL)"
        ))
        conn.execute(text(
            "INSERT INTO glucose_readings VALUES ('old', 6.1, 'mmol/L', 'alice', NULL, 0, 'manual', 1, NULL, NULL, 1)"
        ))
        conn.commit()
    legacy.dispose()

    r = Repository(db_path)
    r.init_database()
    r.init_database()  # idempotent
    cols = {c["name"] for c in inspect(r._engine).get_columns("glucose_readings")}
    assert {"photo_uri", "tags", "profile_id"} <= cols
    assert r.get_reading("old").profile_id == DEFAULT_PROFILE_ID
    r._engine.dispose()
    os.unlink(db_path)
