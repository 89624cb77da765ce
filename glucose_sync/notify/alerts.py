"""Glucose alert evaluation and delivery of critical alerts over Telegram."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..sync.models import Reading

logger = logging.getLogger(__name__)

# Thresholds in mmol/L
CRITICAL_HIGH_MMOL = 13.9  # ~250 mg/dL
HIGH_MMOL = 10.0           # ~180 mg/dL
LOW_MMOL = 3.9             # ~70 mg/dL
CRITICAL_LOW_MMOL = 3.0    # ~54 mg/dL


class Severity(str, Enum):
    CRITICAL_HIGH = "critical_high"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"
    CRITICAL_LOW = "critical_low"


def classify(value_mmol: float) -> Severity:
    if value_mmol >= CRITICAL_HIGH_MMOL:
        return Severity.CRITICAL_HIGH
    if value_mmol <= CRITICAL_LOW_MMOL:
        return Severity.CRITICAL_LOW
    if value_mmol >= HIGH_MMOL:
        return Severity.HIGH
    if value_mmol <= LOW_MMOL:
        return Severity.LOW
    return Severity.NORMAL


def format_alert(reading: Reading, severity: Severity) -> str | None:
    """Return the alert text for a critical severity, None otherwise."""
    value = f"{reading.value:g} {reading.units}"
    if severity == Severity.CRITICAL_HIGH:
        return f"⚠️ *Critical high glucose*\nYour glucose is {value}. This is dangerously high. Please take action."
    if severity == Severity.CRITICAL_LOW:
        return f"🚨 *Critical low glucose*\nYour glucose is {value}. This is dangerously low. Treat immediately."
    return None


def _on_send_retry(retry_state) -> None:
    logger.warning("Telegram alert attempt %d failed: %s", retry_state.attempt_number, retry_state.outcome.exception())


class AlertNotifier:
    """Evaluates a newly added reading and delivers critical alerts.

    Without Telegram credentials alerts are only logged.
    """

    def __init__(self, bot_token: str | None = None, chat_id: str | None = None) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id

    @property
    def delivery_enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    def check_and_notify(self, reading: Reading, alerts_enabled: bool) -> Severity | None:
        """Evaluate ``reading`` and send an alert when it is critical.

        Returns:
            The severity, or None when evaluation was suppressed (alerts off or snack pass).
        """
        if not alerts_enabled or reading.snack_pass:
            return None

        severity = classify(reading.value_mmol)
        text = format_alert(reading, severity)
        if text is None:
            return severity

        logger.warning("Critical glucose reading %s: %s %s", reading.id, reading.value, reading.units)
        if not self.delivery_enabled:
            return severity
        try:
            asyncio.run(self._send(text))
        except TelegramError as exc:
            logger.error("Failed to deliver glucose alert: %s", exc)
        return severity

    @retry(
        retry=retry_if_exception_type(TelegramError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        before_sleep=_on_send_retry,
        reraise=True,
    )
    async def _send(self, text: str) -> None:
        bot = Bot(token=self._bot_token)
        await bot.send_message(chat_id=self._chat_id, text=text, parse_mode=ParseMode.MARKDOWN)
