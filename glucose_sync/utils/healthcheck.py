"""``GET /health`` endpoint reporting sync freshness and the pending queue."""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime, timedelta
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable

logger = logging.getLogger(__name__)

StatusProvider = Callable[[], dict[str, Any]]


class _HealthRequestHandler(BaseHTTPRequestHandler):
    server: "_HealthServer"

    def do_GET(self) -> None:
        if self.path.split("?", 1)[0] != "/health":
            self.send_error(HTTPStatus.NOT_FOUND)
            return
        try:
            status = self.server.status_provider()
        except Exception as exc:
            logger.error("Health status could not be computed: %s", exc)
            status = {"ok": False, "status": "error", "error": str(exc)}
        payload = json.dumps(status, default=str).encode("utf-8")
        self.send_response(HTTPStatus.OK if status.get("ok") else HTTPStatus.SERVICE_UNAVAILABLE)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        logger.debug("health: " + format, *args)


class _HealthServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, port: int, status_provider: StatusProvider) -> None:
        super().__init__(("0.0.0.0", port), _HealthRequestHandler)
        self.status_provider = status_provider


def start_health_server(port: int, get_status: StatusProvider) -> ThreadingHTTPServer:
    """Serve the health endpoint from a daemon thread.

    ``get_status`` returns a dict with at least ``{"ok": bool}``: 200 when ok,
    503 otherwise. Stop the returned server with ``shutdown()``.
    """
    server = _HealthServer(port, get_status)
    threading.Thread(target=server.serve_forever, name="health-server", daemon=True).start()
    logger.info("Health endpoint listening on port %d", server.server_address[1])
    return server


def build_health_status(repo, scheduler_running: bool, max_sync_age_minutes: int) -> dict[str, Any]:
    """Healthy while the scheduler runs and the last successful sync is recent."""
    last = repo.get_last_successful_sync()
    last_sync = last.sync_date if last else None
    fresh = False
    if last_sync is not None:
        if last_sync.tzinfo is None:
            last_sync = last_sync.replace(tzinfo=UTC)
        fresh = datetime.now(UTC) - last_sync < timedelta(minutes=max_sync_age_minutes)
    ok = fresh and scheduler_running
    return {
        "status": "ok" if ok else "degraded",
        "ok": ok,
        "last_sync": last_sync.isoformat() if last_sync else None,
        "pending_readings": repo.count_unsynced(),
        "stored_readings": repo.count_readings(),
        "scheduler_running": scheduler_running,
    }
