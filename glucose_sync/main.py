"""Entry point: initialise all components, run health checks, start the sync scheduler."""

from __future__ import annotations

import logging
import signal
import sys
import threading
from dataclasses import dataclass

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from pytz import timezone as pytz_timezone

from .config import Config, ConfigError, load_config
from .database.repository import Repository
from .remote.auth import CredentialStore
from .remote.client import RemoteClient
from .scheduler.jobs import SyncJob, register_sync_job
from .sync.engine import ReconciliationEngine
from .sync.errors import AuthRejected, RemoteError
from .sync.models import GlucoseUnit
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class Components:
    repo: Repository
    credentials: CredentialStore
    remote: RemoteClient
    engine: ReconciliationEngine


def build_components(config: Config) -> Components:
    """Wire the local store, credential store, remote client and engine together."""
    repo = Repository(config.database_path)
    repo.init_database()
    credentials = CredentialStore(config.token_file)
    remote = RemoteClient(
        config.api_base_url,
        config.api_key,
        credentials,
        timeout=config.request_timeout_seconds,
    )
    engine = ReconciliationEngine(
        repo,
        credentials,
        remote,
        api_password=config.api_password,
        default_unit=GlucoseUnit.from_string(config.default_unit),
    )
    return Components(repo=repo, credentials=credentials, remote=remote, engine=engine)


def _job_error_listener(event: JobExecutionEvent) -> None:
    logger.error(
        "Scheduler job '%s' raised an exception: %s",
        event.job_id,
        event.exception,
        exc_info=(type(event.exception), event.exception, event.exception.__traceback__),
    )


def _run_health_checks(components: Components) -> None:
    """Verify the database and the Kulus credential on startup."""
    repo, credentials = components.repo, components.credentials

    # Database
    count = repo.count_readings()
    logger.info("Health: database OK (%d readings stored, %d pending)", count, repo.count_unsynced())

    # A stored token the server no longer accepts is dropped so the next call re-authenticates
    token = credentials.current_token()
    if token:
        try:
            if not components.remote.verify_token(token):
                logger.warning("Health: stored token rejected by server, clearing it")
                credentials.clear()
        except RemoteError as exc:
            logger.warning("Health: could not verify stored token: %s", exc)

    try:
        components.engine.ensure_authenticated()
        logger.info("Health: Kulus authentication OK")
    except AuthRejected as exc:
        logger.error("Health: Kulus rejected the configured password: %s", exc)
    except RemoteError as exc:
        logger.warning("Health: Kulus unreachable (%s), readings will queue locally", exc)


def _build_scheduler(config: Config, components: Components) -> BackgroundScheduler:
    tz = pytz_timezone(config.timezone)
    scheduler = BackgroundScheduler(timezone=tz)
    scheduler.add_listener(_job_error_listener, EVENT_JOB_ERROR)

    job = SyncJob(
        components.engine,
        components.repo,
        owner_name=config.owner_name,
        probe_url=config.api_base_url,
        max_attempts=config.sync_max_attempts,
        backoff_seconds=config.sync_backoff_seconds,
    )
    register_sync_job(scheduler, job, config.sync_interval_minutes, start_now=True)
    return scheduler


def run() -> None:
    """Main application entry point."""
    # Minimal early logging before config is loaded
    logging.basicConfig(level=logging.INFO)

    try:
        config = load_config()
    except ConfigError as exc:
        logging.critical("Configuration error: %s", exc)
        sys.exit(1)

    setup_logging(config.log_level, config.log_file)
    logger.info("glucose-sync starting up (owner=%s)", config.owner_name)

    components = build_components(config)
    _run_health_checks(components)

    scheduler = _build_scheduler(config, components)
    scheduler.start()
    logger.info(
        "Scheduler started. Sync every %d min, up to %d attempts per run (%s)",
        config.sync_interval_minutes, config.sync_max_attempts, config.timezone,
    )

    health_server = None
    if config.health_port:
        from .utils.healthcheck import build_health_status, start_health_server

        # Two missed intervals plus retry time before reporting degraded
        max_age = config.sync_interval_minutes * 2 + 15
        health_server = start_health_server(
            config.health_port,
            lambda: build_health_status(components.repo, scheduler.running, max_age),
        )

    stop = threading.Event()

    def _shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping...")
        stop.set()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    logger.info("glucose-sync running. Press Ctrl+C to stop.")
    try:
        stop.wait()
    finally:
        scheduler.shutdown(wait=True)
        if health_server is not None:
            health_server.shutdown()
        components.repo.dispose()
        logger.info("glucose-sync stopped")


if __name__ == "__main__":
    run()
