"""Bearer credential persistence for the Kulus API."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable

from ..sync.errors import LocalStorageError
from ..sync.models import now_millis

logger = logging.getLogger(__name__)


class CredentialStore:
    """Persists the bearer token and its absolute expiry (epoch ms) in a JSON file.

    The token is valid while ``now < expiry``. An expired token is hidden from
    :meth:`current_token` but stays on disk until :meth:`clear` or the next
    :meth:`save`. The file is kept separate from any other preference data.
    """

    def __init__(self, token_file: str | Path, clock: Callable[[], int] = now_millis) -> None:
        self._path = Path(token_file)
        self._clock = clock
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expiry: int = 0
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            self._token = data.get("token") or None
            self._expiry = int(data.get("expiry") or 0)
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            # An unreadable file is equivalent to no credential
            logger.warning("Credential file %s unreadable (%s), ignoring it", self._path, exc)
            self._token = None
            self._expiry = 0

    def _write(self, payload: dict | None) -> None:
        try:
            if payload is None:
                self._path.unlink(missing_ok=True)
                return
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".token-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh)
                # Restrict file permissions on Unix-like systems
                try:
                    os.chmod(tmp_name, 0o600)
                except OSError:
                    pass
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise LocalStorageError(f"Could not write credential file {self._path}: {exc}") from exc

    def save(self, token: str, ttl_ms: int) -> None:
        """Store ``token`` with ``expiry = now + ttl_ms``, replacing any previous credential."""
        with self._lock:
            expiry = self._clock() + int(ttl_ms)
            self._write({"token": token, "expiry": expiry})
            self._token = token
            self._expiry = expiry
        logger.debug("Credential saved, valid for %d ms", ttl_ms)

    def current_token(self) -> str | None:
        """Return the token if it has not expired, else None."""
        with self._lock:
            if self._token and self._clock() < self._expiry:
                return self._token
            return None

    def is_valid(self) -> bool:
        with self._lock:
            return self._token is not None and self._clock() < self._expiry

    @property
    def expiry(self) -> int:
        with self._lock:
            return self._expiry

    def clear(self) -> None:
        """Remove the credential. Safe to call when nothing is stored."""
        with self._lock:
            self._write(None)
            self._token = None
            self._expiry = 0
        logger.info("Credential cleared")
