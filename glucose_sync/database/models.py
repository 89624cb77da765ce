"""SQLAlchemy ORM models for the local glucose database."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase

from ..sync.models import DEFAULT_PROFILE_ID


class Base(DeclarativeBase):
    pass


class GlucoseReadingRow(Base):
    """One glucose reading, keyed by its client-assigned identifier."""

    __tablename__ = "glucose_readings"

    id = Column(String(64), primary_key=True)
    reading = Column(Float, nullable=False)
    units = Column(String(10), nullable=False, default="mmol/L")
    name = Column(String(100), nullable=False, index=True)
    comment = Column(Text, nullable=True)
    snack_pass = Column(Boolean, nullable=False, default=False)
    source = Column(String(30), nullable=False, default="manual")
    timestamp = Column(BigInteger, nullable=False, index=True)  # ms since epoch
    color = Column(String(20), nullable=True)
    glucose_level = Column(Integer, nullable=True)
    synced = Column(Boolean, nullable=False, default=False, index=True)
    photo_uri = Column(Text, nullable=True)
    tags = Column(Text, nullable=True)  # comma-separated
    profile_id = Column(String(64), nullable=False, default=DEFAULT_PROFILE_ID)

    def __repr__(self) -> str:
        return f"<GlucoseReadingRow id={self.id} reading={self.reading} {self.units} synced={self.synced}>"


class SyncLog(Base):
    """Records each scheduled sync firing with its outcome."""

    __tablename__ = "sync_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sync_date = Column(DateTime, default=lambda: datetime.now(UTC))
    status = Column(String(20), nullable=False)  # "success" | "retry" | "error" | "skipped_offline"
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SyncLog {self.sync_date} status={self.status} attempts={self.attempts}>"
