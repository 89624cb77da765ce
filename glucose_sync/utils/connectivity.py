"""Network reachability probe used as the scheduler's precondition."""

from __future__ import annotations

import logging
import socket
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_PROBE_TIMEOUT = 5.0


def probe_target(url: str) -> tuple[str, int]:
    """Extract (host, port) from an http(s) URL."""
    parsed = urlparse(url)
    host = parsed.hostname or ""
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    return host, port


def is_online(url: str, timeout: float = _PROBE_TIMEOUT) -> bool:
    """Return True if a TCP connection to the URL's host can be opened."""
    host, port = probe_target(url)
    if not host:
        return False
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError as exc:
        logger.debug("Connectivity probe to %s:%d failed: %s", host, port, exc)
        return False
