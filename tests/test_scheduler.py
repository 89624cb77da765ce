"""Tests for glucose_sync/scheduler/jobs.py."""

from unittest.mock import MagicMock, call

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from glucose_sync.scheduler.jobs import (
    SYNC_JOB_ID,
    AttemptOutcome,
    SyncJob,
    SyncJobFailed,
    full_sync,
    register_sync_job,
)
from glucose_sync.sync.engine import SyncResult
from glucose_sync.sync.errors import ErrorKind, SyncError


def _transport_failure(message: str = "Service Unavailable") -> SyncResult:
    return SyncResult.failure(SyncError(ErrorKind.TRANSPORT, message, 503))


def _auth_failure() -> SyncResult:
    return SyncResult.failure(SyncError(ErrorKind.AUTH_REJECTED, "Authentication failed", 401))


@pytest.fixture
def engine():
    mock = MagicMock()
    mock.sync_unsynced_readings.return_value = SyncResult.success(0)
    mock.sync_readings_from_server.return_value = SyncResult.success([])
    return mock


@pytest.fixture
def repo():
    return MagicMock()


def _make_job(engine, repo, online: bool = True, max_attempts: int = 3) -> SyncJob:
    return SyncJob(
        engine,
        repo,
        owner_name="alice",
        probe_url="https://kulus.example.com/api",
        max_attempts=max_attempts,
        backoff_seconds=0,
        connectivity_check=lambda url: online,
    )


def test_full_sync_pushes_then_pulls(engine):
    engine.sync_unsynced_readings.return_value = SyncResult.success(2)
    engine.sync_readings_from_server.return_value = SyncResult.success(["a", "b", "c"])
    result = full_sync(engine, "alice")
    assert result.value == (2, 3)
    assert engine.method_calls == [call.sync_unsynced_readings(), call.sync_readings_from_server("alice")]


def test_full_sync_stops_after_push_failure(engine):
    engine.sync_unsynced_readings.return_value = _auth_failure()
    result = full_sync(engine, "alice")
    assert result.error.kind == ErrorKind.AUTH_REJECTED
    engine.sync_readings_from_server.assert_not_called()


def test_job_success_first_try(engine, repo):
    job = _make_job(engine, repo)
    job()
    assert job.last_attempt.outcome == AttemptOutcome.SUCCESS
    assert job.last_attempt.count == 1
    repo.log_sync.assert_called_once_with("success", attempts=1)


def test_job_retries_transport_failures_then_succeeds(engine, repo):
    engine.sync_unsynced_readings.side_effect = [
        _transport_failure(),
        _transport_failure(),
        SyncResult.success(1),
    ]
    job = _make_job(engine, repo)
    job()

    assert job.last_attempt.outcome == AttemptOutcome.SUCCESS
    assert job.last_attempt.count == 3
    assert job.attempt.count == 0
    statuses = [c.args[0] for c in repo.log_sync.call_args_list]
    assert statuses == ["retry", "retry", "success"]


def test_job_exhausts_attempts(engine, repo):
    engine.sync_readings_from_server.return_value = _transport_failure("timed out")
    job = _make_job(engine, repo, max_attempts=3)

    with pytest.raises(SyncJobFailed):
        job()

    assert job.last_attempt.outcome == AttemptOutcome.FAILURE
    assert job.last_attempt.count == 3
    assert job.last_attempt.last_error == "timed out"
    assert engine.sync_readings_from_server.call_count == 3
    repo.log_sync.assert_called_with("error", "timed out", attempts=3)


def test_job_does_not_retry_auth_rejection(engine, repo):
    engine.sync_unsynced_readings.return_value = _auth_failure()
    job = _make_job(engine, repo)

    with pytest.raises(SyncJobFailed):
        job()

    assert job.last_attempt.count == 1
    assert engine.sync_unsynced_readings.call_count == 1
    engine.sync_readings_from_server.assert_not_called()


def test_job_skipped_when_offline(engine, repo):
    job = _make_job(engine, repo, online=False)
    job()
    engine.sync_unsynced_readings.assert_not_called()
    repo.log_sync.assert_called_once_with("skipped_offline")
    assert job.last_attempt is None


def test_each_firing_starts_fresh(engine, repo):
    engine.sync_unsynced_readings.side_effect = [_transport_failure(), SyncResult.success(0), SyncResult.success(0)]
    job = _make_job(engine, repo)
    job()
    assert job.last_attempt.count == 2
    job()
    assert job.last_attempt.count == 1


def test_register_sync_job_replaces_existing(engine, repo):
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.start(paused=True)
    try:
        job = _make_job(engine, repo)
        register_sync_job(scheduler, job, 30)
        register_sync_job(scheduler, job, 15)

        jobs = scheduler.get_jobs()
        assert len(jobs) == 1
        assert jobs[0].id == SYNC_JOB_ID
        assert jobs[0].max_instances == 1
        assert jobs[0].coalesce is True
        assert jobs[0].trigger.interval.total_seconds() == 15 * 60
    finally:
        scheduler.shutdown(wait=False)
