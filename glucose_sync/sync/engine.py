"""Reconciliation engine: local-first writes, on-demand authentication, push and pull.

The local database is the source of truth for writes. ``add_reading`` stores
the reading before touching the network and never reports a remote failure;
the reading simply stays pending until ``sync_unsynced_readings`` pushes it.
The sync operations are one-shot: retry and backoff belong to the scheduler.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable

from ..database.repository import Repository
from ..remote.auth import CredentialStore
from ..remote.client import RemoteClient, format_reading_value
from .errors import NormalizationSkipped, RemoteError, SyncError
from .models import GlucoseUnit, Reading, new_reading_id, now_millis, tags_to_string
from .normalize import normalize_record

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of a sync operation: either ``value`` or ``error`` is set."""

    value: Any = None
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> "SyncResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: SyncError) -> "SyncResult":
        return cls(error=error)

    def unwrap(self) -> Any:
        """Return the value, or raise the carried SyncError."""
        if self.error is not None:
            raise self.error
        return self.value


class ReconciliationEngine:
    """Orchestrates the local store, the credential store and the remote client.

    Thread-safe: operations may be called concurrently from the scheduler's
    worker threads and from interactive callers. The engine holds no durable
    state of its own.
    """

    def __init__(
        self,
        repository: Repository,
        credentials: CredentialStore,
        remote: RemoteClient,
        api_password: str,
        default_unit: GlucoseUnit = GlucoseUnit.MMOL_L,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self._repo = repository
        self._credentials = credentials
        self._remote = remote
        self._password = api_password
        self._default_unit = default_unit
        self._clock = clock
        self._auth_lock = threading.Lock()
        self._auth_flight: Future | None = None

    # ------------------------------------------------------------------ #
    # Authentication                                                       #
    # ------------------------------------------------------------------ #

    def ensure_authenticated(self) -> None:
        """Make sure a valid bearer credential is stored.

        Returns immediately, without a network call, while the stored token is
        valid. Otherwise the first caller authenticates and every caller that
        arrives while that request is in flight shares its outcome, token or
        error, instead of issuing its own request.

        Raises:
            AuthRejected: The service refused the configured password.
            TransportError: The service could not be reached.
        """
        if self._credentials.is_valid():
            return
        with self._auth_lock:
            # Another thread may have refreshed the token while we waited
            if self._credentials.is_valid():
                return
            flight = self._auth_flight
            leader = flight is None
            if leader:
                flight = self._auth_flight = Future()

        if not leader:
            flight.result()
            return

        try:
            logger.info("Credential missing or expired, authenticating")
            token = self._remote.authenticate(self._password)
            self._credentials.save(token.token, token.ttl_ms)
        except BaseException as exc:
            flight.set_exception(exc)
            raise
        else:
            flight.set_result(None)
        finally:
            with self._auth_lock:
                self._auth_flight = None

    def sign_out(self) -> None:
        self._credentials.clear()

    # ------------------------------------------------------------------ #
    # Local-first write path                                               #
    # ------------------------------------------------------------------ #

    def add_reading(
        self,
        value: float,
        owner_name: str,
        unit: GlucoseUnit | str = GlucoseUnit.MMOL_L,
        comment: str | None = None,
        snack_pass: bool = False,
        source: str = "android",
        tags: list[str] | None = None,
        photo_uri: str | None = None,
    ) -> Reading:
        """Store a new reading locally, then try to submit it.

        The local write happens first and must succeed; a
        :class:`LocalStorageError` propagates. Remote failures are logged and
        swallowed: the returned reading is then pending (synced=False) and
        will be pushed by the next :meth:`sync_unsynced_readings`.

        Raises:
            ValueError: ``value`` is not finite or cannot be sent to the service.
        """
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"Glucose value must be finite, got {value!r}")
        # Rejects magnitudes the service format cannot represent
        format_reading_value(value)

        units = unit if isinstance(unit, GlucoseUnit) else GlucoseUnit.from_string(unit)
        reading = Reading(
            id=new_reading_id(),
            value=value,
            owner_name=owner_name,
            units=units.value,
            comment=comment,
            snack_pass=snack_pass,
            source=source,
            timestamp=self._clock(),
            synced=False,
            photo_uri=photo_uri,
            tags=tags_to_string(tags),
        )
        self._repo.insert_or_replace(reading)
        logger.info("Reading %s stored locally (%s %s, source=%s)", reading.id, value, units.value, source)

        try:
            self.ensure_authenticated()
            self._submit(reading)
        except RemoteError as exc:
            logger.warning("Reading %s kept pending, submit failed: %s", reading.id, exc)
            return reading

        confirmed = reading.as_confirmed()
        self._repo.update_reading(confirmed)
        logger.info("Reading %s confirmed by server", reading.id)
        return confirmed

    def _submit(self, reading: Reading) -> None:
        self._remote.submit_reading(
            owner_name=reading.owner_name,
            value=reading.value,
            units=reading.units,
            comment=reading.comment,
            snack_pass=reading.snack_pass,
            source=reading.source,
        )

    # ------------------------------------------------------------------ #
    # Sync path                                                            #
    # ------------------------------------------------------------------ #

    def sync_readings_from_server(self, owner_name: str) -> SyncResult:
        """Pull ``owner_name``'s remote readings into the local store.

        Remote records replace local rows with the same id, so repeating the
        pull on unchanged data leaves the store unchanged. Records that cannot
        be normalised are skipped.

        Returns:
            SyncResult with the list of normalised readings, or a SyncError.
        """
        try:
            self.ensure_authenticated()
            records = self._remote.fetch_readings(owner_name)
        except RemoteError as exc:
            logger.error("Pull for %s failed: %s", owner_name, exc)
            return SyncResult.failure(SyncError.from_remote(exc))

        readings: list[Reading] = []
        skipped = 0
        for record in records:
            try:
                readings.append(normalize_record(record, self._default_unit, self._clock))
            except NormalizationSkipped as exc:
                skipped += 1
                logger.warning("Skipping remote reading: %s", exc)

        self._repo.insert_or_replace_many(readings)
        logger.info("Pulled %d readings for %s (%d skipped)", len(readings), owner_name, skipped)
        return SyncResult.success(readings)

    def sync_unsynced_readings(self) -> SyncResult:
        """Push every pending reading once.

        Per-item failures are skipped; those readings stay pending for the
        next call. Only an authentication failure fails the whole operation.

        Returns:
            SyncResult with the number of newly confirmed readings, or a SyncError.
        """
        try:
            self.ensure_authenticated()
        except RemoteError as exc:
            logger.error("Push aborted, authentication failed: %s", exc)
            return SyncResult.failure(SyncError.from_remote(exc))

        pending = self._repo.unsynced_readings()
        synced_count = 0
        for reading in pending:
            # A concurrent add_reading may have confirmed it since the query
            current = self._repo.get_reading(reading.id)
            if current is None or current.synced:
                continue
            try:
                self._submit(current)
            except RemoteError as exc:
                logger.warning("Push of reading %s failed, will retry next sync: %s", reading.id, exc)
                continue
            except ValueError as exc:
                logger.warning("Push of reading %s skipped, value not sendable: %s", reading.id, exc)
                continue
            if self._repo.mark_synced(reading.id):
                synced_count += 1

        if pending:
            logger.info("Pushed %d of %d pending readings", synced_count, len(pending))
        return SyncResult.success(synced_count)

    # ------------------------------------------------------------------ #
    # Local pass-through                                                   #
    # ------------------------------------------------------------------ #

    def delete_reading(self, reading: Reading) -> None:
        """Remove a reading locally only; nothing is sent to the server."""
        self._repo.delete_reading(reading)

    def clear_all_readings(self) -> None:
        self._repo.delete_all_readings()
