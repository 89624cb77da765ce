"""Kulus API client: authentication, reading list and reading submission."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any

import requests

from ..sync.errors import AuthRejected, TransportError
from .auth import CredentialStore

logger = logging.getLogger(__name__)

_AUTH_PATH = "/validatePassword"
_VERIFY_PATH = "/verifyToken"
_READINGS_PATH = "/readings"
_ADD_READING_PATH = "/addReadingFromUrl"


@dataclass
class AuthToken:
    token: str
    ttl_ms: int


@dataclass
class SubmitAck:
    result: str | None
    message: str | None
    remote_id: str | None = None


def format_reading_value(value: float) -> str:
    """Format a glucose value with at most 2 fractional digits and a '.' separator.

    Trailing zeros are dropped: 7.2 -> "7.2", 7.0 -> "7", 7.256 -> "7.26".
    """
    try:
        quantized = Decimal(repr(float(value))).quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN)
    except InvalidOperation:
        raise ValueError(f"Cannot format glucose value {value!r}")
    if not quantized.is_finite():
        raise ValueError(f"Cannot format glucose value {value!r}")
    text = format(quantized, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def _bool_param(value: bool) -> str:
    return "true" if value else "false"


class RemoteClient:
    """Thin typed wrapper around the Kulus HTTP API.

    Every call either returns its payload or raises :class:`AuthRejected` /
    :class:`TransportError`. There is no retry logic here.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        credentials: CredentialStore,
        timeout: float = 30,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._credentials = credentials
        self._timeout = (timeout, timeout)
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers = {
            "x-api-key": self._api_key,
            "Accept": "application/json",
        }
        token = self._credentials.current_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> requests.Response:
        url = f"{self._base_url}{path}"
        try:
            return self._session.request(
                method,
                url,
                params=params,
                json=body,
                headers=self._headers(body is not None),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Kulus %s %s failed: %s", method, path, exc)
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

    @staticmethod
    def _json(resp: requests.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransportError("Response body is not valid JSON", resp.status_code) from exc
        if not isinstance(data, dict):
            raise TransportError("Unexpected response shape", resp.status_code)
        return data

    @staticmethod
    def _raise_for_status(resp: requests.Response) -> None:
        if not resp.ok:
            raise TransportError(resp.reason or "request failed", resp.status_code)

    # ------------------------------------------------------------------ #
    # Operations                                                           #
    # ------------------------------------------------------------------ #

    def authenticate(self, password: str) -> AuthToken:
        """Exchange the app password for a bearer token.

        Raises:
            AuthRejected: The service answered with success=false, or 401/403.
            TransportError: Network failure or any other non-2xx response.
        """
        resp = self._request("POST", _AUTH_PATH, body={"password": password})
        if resp.status_code in (401, 403):
            raise AuthRejected(resp.reason or "Authentication failed", resp.status_code)
        self._raise_for_status(resp)
        data = self._json(resp)
        if not data.get("success") or not data.get("token"):
            raise AuthRejected("Authentication failed", resp.status_code)
        try:
            ttl_ms = int(data.get("expiresIn") or 0)
        except (TypeError, ValueError) as exc:
            raise TransportError(f"Invalid expiresIn: {data.get('expiresIn')!r}", resp.status_code) from exc
        logger.info("Kulus: authenticated (token valid for %ds)", ttl_ms // 1000)
        return AuthToken(token=data["token"], ttl_ms=ttl_ms)

    def verify_token(self, token: str) -> bool:
        """Ask the service whether ``token`` is still accepted."""
        resp = self._request("POST", _VERIFY_PATH, body={"token": token})
        self._raise_for_status(resp)
        return bool(self._json(resp).get("valid"))

    def fetch_readings(self, owner_name: str) -> list[dict[str, Any]]:
        """Return the raw reading records stored remotely for ``owner_name``.

        Records are returned untouched; normalisation is the caller's job.
        """
        resp = self._request("GET", _READINGS_PATH, params={"name": owner_name})
        self._raise_for_status(resp)
        data = self._json(resp)
        readings = data.get("readings") or []
        if not isinstance(readings, list):
            raise TransportError("'readings' is not a list", resp.status_code)
        logger.debug(
            "Kulus: fetched %d readings for %s (server total=%s)",
            len(readings), owner_name, data.get("totalReadings"),
        )
        return readings

    def submit_reading(
        self,
        owner_name: str,
        value: float,
        units: str,
        comment: str | None = None,
        snack_pass: bool = False,
        source: str = "android",
    ) -> SubmitAck:
        """Create one reading remotely."""
        params = {
            "name": owner_name,
            "reading": format_reading_value(value),
            "units": units,
            "comment": comment,
            "snackPass": _bool_param(snack_pass),
            "source": source,
        }
        resp = self._request("GET", _ADD_READING_PATH, params=params)
        self._raise_for_status(resp)
        try:
            data = self._json(resp)
        except TransportError:
            # A 2xx with an odd body still means the server accepted the reading
            logger.debug("Kulus: submit acknowledged without a JSON body")
            return SubmitAck(result=None, message=None)
        payload = data.get("data") if isinstance(data.get("data"), dict) else {}
        return SubmitAck(
            result=data.get("result"),
            message=data.get("message"),
            remote_id=payload.get("id"),
        )
