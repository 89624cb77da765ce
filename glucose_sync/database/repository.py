"""Database repository: the local store for glucose readings and sync telemetry."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Generator, Iterable

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..sync.errors import LocalStorageError
from ..sync.models import DEFAULT_PROFILE_ID, Reading
from .models import Base, GlucoseReadingRow, SyncLog

logger = logging.getLogger(__name__)

# Columns added after the first schema version: name -> DDL type
_READING_MIGRATIONS = {
    "photo_uri": "TEXT",
    "tags": "TEXT",
    "profile_id": f"VARCHAR(64) NOT NULL DEFAULT '{DEFAULT_PROFILE_ID}'",
}


def _to_reading(row: GlucoseReadingRow) -> Reading:
    return Reading(
        id=row.id,
        value=row.reading,
        owner_name=row.name,
        units=row.units,
        comment=row.comment,
        snack_pass=bool(row.snack_pass),
        source=row.source,
        timestamp=row.timestamp,
        color=row.color,
        glucose_level=row.glucose_level,
        synced=bool(row.synced),
        photo_uri=row.photo_uri,
        tags=row.tags,
        profile_id=row.profile_id or DEFAULT_PROFILE_ID,
    )


def _column_values(reading: Reading) -> dict:
    return {
        "reading": reading.value,
        "units": reading.units,
        "name": reading.owner_name,
        "comment": reading.comment,
        "snack_pass": reading.snack_pass,
        "source": reading.source,
        "timestamp": reading.timestamp,
        "color": reading.color,
        "glucose_level": reading.glucose_level,
        "synced": reading.synced,
        "photo_uri": reading.photo_uri,
        "tags": reading.tags,
        "profile_id": reading.profile_id,
    }


class Repository:
    """Handles all database operations using SQLAlchemy.

    Every public method runs in its own short transaction, so single-record
    reads and writes are atomic. Database failures surface as
    :class:`LocalStorageError`.
    """

    def __init__(self, database_path: str) -> None:
        url = f"sqlite:///{database_path}"
        self._engine = create_engine(url, connect_args={"check_same_thread": False})
        # expire_on_commit=False lets ORM objects be used after session.close()
        self._Session = sessionmaker(bind=self._engine, expire_on_commit=False)

    def init_database(self) -> None:
        """Create all tables if they don't already exist."""
        try:
            Base.metadata.create_all(self._engine)
            self._run_migrations()
        except SQLAlchemyError as exc:
            raise LocalStorageError(f"Could not initialise database: {exc}") from exc
        logger.info("Database initialised at %s", self._engine.url)

    def _run_migrations(self) -> None:
        """Apply any schema changes that are not yet present (idempotent)."""
        inspector = inspect(self._engine)
        with self._engine.connect() as conn:
            existing_cols = {c["name"] for c in inspector.get_columns("glucose_readings")}
            for col, col_type in _READING_MIGRATIONS.items():
                if col not in existing_cols:
                    conn.execute(text(f"ALTER TABLE glucose_readings ADD COLUMN {col} {col_type}"))
                    logger.info("Migration: added column glucose_readings.%s", col)
            log_cols = {c["name"] for c in inspector.get_columns("sync_log")}
            if "attempts" not in log_cols:
                conn.execute(text("ALTER TABLE sync_log ADD COLUMN attempts INTEGER NOT NULL DEFAULT 0"))
                logger.info("Migration: added column sync_log.attempts")
            conn.commit()

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self._Session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise LocalStorageError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------ #
    # Reading queries                                                      #
    # ------------------------------------------------------------------ #

    def all_readings(self) -> list[Reading]:
        """Return every reading, newest first."""
        with self._session() as session:
            rows = session.query(GlucoseReadingRow).order_by(GlucoseReadingRow.timestamp.desc()).all()
            return [_to_reading(r) for r in rows]

    def readings_by_owner(self, name: str) -> list[Reading]:
        """Return the readings belonging to ``name``, newest first."""
        with self._session() as session:
            rows = (
                session.query(GlucoseReadingRow)
                .filter_by(name=name)
                .order_by(GlucoseReadingRow.timestamp.desc())
                .all()
            )
            return [_to_reading(r) for r in rows]

    def get_reading(self, reading_id: str) -> Reading | None:
        with self._session() as session:
            row = session.get(GlucoseReadingRow, reading_id)
            return _to_reading(row) if row is not None else None

    def unsynced_readings(self) -> list[Reading]:
        """Return pending readings (synced=False), oldest first so they are pushed in creation order."""
        with self._session() as session:
            rows = (
                session.query(GlucoseReadingRow)
                .filter(GlucoseReadingRow.synced.is_(False))
                .order_by(GlucoseReadingRow.timestamp)
                .all()
            )
            return [_to_reading(r) for r in rows]

    def count_readings(self) -> int:
        with self._session() as session:
            return session.query(GlucoseReadingRow).count()

    def count_unsynced(self) -> int:
        with self._session() as session:
            return session.query(GlucoseReadingRow).filter(GlucoseReadingRow.synced.is_(False)).count()

    # ------------------------------------------------------------------ #
    # Reading writes                                                       #
    # ------------------------------------------------------------------ #

    def insert_or_replace(self, reading: Reading) -> None:
        """Insert ``reading``, fully overwriting any row with the same id."""
        with self._session() as session:
            session.merge(GlucoseReadingRow(id=reading.id, **_column_values(reading)))
        logger.debug("Stored reading %s (synced=%s)", reading.id, reading.synced)

    def insert_or_replace_many(self, readings: Iterable[Reading]) -> int:
        """Replace-by-identity for a batch, in a single transaction. Returns the batch size."""
        count = 0
        with self._session() as session:
            for reading in readings:
                session.merge(GlucoseReadingRow(id=reading.id, **_column_values(reading)))
                count += 1
        logger.debug("Stored %d readings", count)
        return count

    def update_reading(self, reading: Reading) -> bool:
        """Overwrite an existing reading. Returns False (and writes nothing) if it no longer exists."""
        with self._session() as session:
            row = session.get(GlucoseReadingRow, reading.id)
            if row is None:
                logger.debug("Update skipped: reading %s not found", reading.id)
                return False
            for key, value in _column_values(reading).items():
                setattr(row, key, value)
            return True

    def mark_synced(self, reading_id: str) -> bool:
        """Set synced=True on one reading without touching its other fields."""
        with self._session() as session:
            updated = (
                session.query(GlucoseReadingRow)
                .filter_by(id=reading_id)
                .update({GlucoseReadingRow.synced: True}, synchronize_session=False)
            )
            return updated > 0

    def delete_reading(self, reading: Reading) -> bool:
        with self._session() as session:
            deleted = session.query(GlucoseReadingRow).filter_by(id=reading.id).delete()
        logger.debug("Deleted reading %s (%d row)", reading.id, deleted)
        return deleted > 0

    def delete_all_readings(self) -> int:
        with self._session() as session:
            deleted = session.query(GlucoseReadingRow).delete()
        logger.info("Deleted all %d local readings", deleted)
        return deleted

    # ------------------------------------------------------------------ #
    # Sync telemetry                                                       #
    # ------------------------------------------------------------------ #

    def log_sync(self, status: str, error_message: str | None = None, attempts: int = 0) -> None:
        """Record a scheduled sync outcome.

        Args:
            status: "success", "retry", "error" or "skipped_offline".
            error_message: Optional description of the failure.
            attempts: Number of attempts the firing used.
        """
        with self._session() as session:
            session.add(SyncLog(
                sync_date=datetime.now(UTC),
                status=status,
                error_message=error_message,
                attempts=attempts,
            ))

    def get_recent_sync_logs(self, limit: int = 5) -> list[SyncLog]:
        """Return the most recent sync log entries."""
        with self._session() as session:
            return (
                session.query(SyncLog)
                .order_by(SyncLog.sync_date.desc(), SyncLog.id.desc())
                .limit(limit)
                .all()
            )

    def get_last_successful_sync(self) -> SyncLog | None:
        """Return the most recent successful sync log entry."""
        with self._session() as session:
            return (
                session.query(SyncLog)
                .filter_by(status="success")
                .order_by(SyncLog.sync_date.desc(), SyncLog.id.desc())
                .first()
            )
