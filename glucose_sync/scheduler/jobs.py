"""APScheduler job definition for the recurring push-then-pull reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Callable

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..database.repository import Repository
from ..sync.engine import ReconciliationEngine, SyncResult
from ..sync.errors import SyncError
from ..utils.connectivity import is_online

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "glucose_sync"


class AttemptOutcome(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    RETRY = "retry"
    FAILURE = "failure"


@dataclass
class SyncAttempt:
    """Attempt bookkeeping for one scheduled firing. Never persisted."""

    count: int = 0
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    last_error: str | None = None


class SyncAttemptFailed(Exception):
    """One attempt of a firing failed with the carried SyncError."""

    def __init__(self, error: SyncError) -> None:
        super().__init__(str(error))
        self.error = error


class SyncJobFailed(Exception):
    """A firing exhausted its attempts, or hit a non-retryable error."""


def full_sync(engine: ReconciliationEngine, owner_name: str) -> SyncResult:
    """Push pending readings, then pull the owner's remote readings.

    Returns:
        SyncResult with ``(pushed_count, pulled_count)``, or the first step's SyncError.
    """
    push = engine.sync_unsynced_readings()
    if not push.ok:
        return push
    pull = engine.sync_readings_from_server(owner_name)
    if not pull.ok:
        return pull
    return SyncResult.success((push.value, len(pull.value)))


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, SyncAttemptFailed) and exc.error.retryable


class SyncJob:
    """Callable registered with APScheduler; one call is one scheduled firing.

    A firing is skipped when the API host is unreachable. Otherwise it makes
    up to ``max_attempts`` attempts with exponential backoff between them.
    Authentication rejections are not retried. Each firing starts with a
    fresh :class:`SyncAttempt`.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        repo: Repository,
        owner_name: str,
        probe_url: str,
        max_attempts: int = 3,
        backoff_seconds: float = 30,
        connectivity_check: Callable[[str], bool] = is_online,
    ) -> None:
        self._engine = engine
        self._repo = repo
        self._owner_name = owner_name
        self._probe_url = probe_url
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._connectivity_check = connectivity_check
        self.attempt = SyncAttempt()
        self.last_attempt: SyncAttempt | None = None

    def _attempt_once(self, attempt: SyncAttempt) -> tuple[int, int]:
        attempt.count += 1
        result = full_sync(self._engine, self._owner_name)
        if not result.ok:
            attempt.last_error = result.error.message
            raise SyncAttemptFailed(result.error)
        return result.value

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        self.attempt.outcome = AttemptOutcome.RETRY
        logger.warning(
            "Sync attempt %d/%d failed: %s",
            retry_state.attempt_number, self._max_attempts, exc,
        )
        self._repo.log_sync("retry", str(exc), attempts=retry_state.attempt_number)

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._backoff_seconds,
                min=self._backoff_seconds,
                max=self._backoff_seconds * 8,
            ),
            before_sleep=self._before_sleep,
            reraise=True,
        )

    def __call__(self) -> None:
        if not self._connectivity_check(self._probe_url):
            logger.info("Job: sync skipped, API host unreachable")
            self._repo.log_sync("skipped_offline")
            return

        attempt = self.attempt = SyncAttempt()
        logger.info("Job: starting glucose sync for %s", self._owner_name)
        try:
            pushed, pulled = self._retrying()(self._attempt_once, attempt)
        except SyncAttemptFailed as exc:
            attempt.outcome = AttemptOutcome.FAILURE
            self._finish(attempt)
            self._repo.log_sync("error", str(exc), attempts=attempt.count)
            logger.error("Job: sync failed after %d attempt(s): %s", attempt.count, exc)
            raise SyncJobFailed(str(exc)) from exc

        attempt.outcome = AttemptOutcome.SUCCESS
        self._finish(attempt)
        self._repo.log_sync("success", attempts=attempt.count)
        logger.info(
            "Job: sync complete (pushed=%d, pulled=%d, attempts=%d)",
            pushed, pulled, attempt.count,
        )

    def _finish(self, attempt: SyncAttempt) -> None:
        self.last_attempt = attempt
        self.attempt = SyncAttempt()


def register_sync_job(
    scheduler: BaseScheduler,
    job: SyncJob,
    interval_minutes: int,
    start_now: bool = False,
) -> None:
    """Add (or replace) the single recurring sync job on ``scheduler``.

    Re-registering replaces the previous job instead of adding a second one.
    With ``start_now`` the first firing happens immediately rather than one
    interval from now.
    """
    extra = {"next_run_time": datetime.now(UTC)} if start_now else {}
    scheduler.add_job(
        job,
        IntervalTrigger(minutes=interval_minutes),
        id=SYNC_JOB_ID,
        name="Glucose Sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=interval_minutes * 60,
        **extra,
    )
    logger.info("Sync job registered every %d minutes", interval_minutes)
