"""Tests for glucose_sync/notify/alerts.py."""

from unittest.mock import AsyncMock, patch

import pytest
from telegram.error import TelegramError
from tenacity import wait_none

from glucose_sync.notify.alerts import AlertNotifier, Severity, classify, format_alert
from glucose_sync.sync.models import Reading


def _reading(value: float, units: str = "mmol/L", snack_pass: bool = False) -> Reading:
    return Reading(id="r1", value=value, owner_name="alice", units=units, snack_pass=snack_pass)


@pytest.mark.parametrize("value,expected", [
    (15.0, Severity.CRITICAL_HIGH),
    (13.9, Severity.CRITICAL_HIGH),
    (12.0, Severity.HIGH),
    (10.0, Severity.HIGH),
    (6.0, Severity.NORMAL),
    (3.9, Severity.LOW),
    (3.0, Severity.CRITICAL_LOW),
    (2.1, Severity.CRITICAL_LOW),
])
def test_classify(value, expected):
    assert classify(value) == expected


def test_mgdl_reading_is_converted():
    # 270 mg/dL = 15 mmol/L
    notifier = AlertNotifier()
    assert notifier.check_and_notify(_reading(270, "mg/dL"), alerts_enabled=True) == Severity.CRITICAL_HIGH


def test_format_alert_only_for_critical():
    assert format_alert(_reading(2.5), Severity.CRITICAL_LOW) is not None
    assert "2.5 mmol/L" in format_alert(_reading(2.5), Severity.CRITICAL_LOW)
    assert format_alert(_reading(11.0), Severity.HIGH) is None
    assert format_alert(_reading(6.0), Severity.NORMAL) is None


def test_alerts_disabled_skips_evaluation():
    assert AlertNotifier().check_and_notify(_reading(20.0), alerts_enabled=False) is None


def test_snack_pass_skips_evaluation():
    assert AlertNotifier().check_and_notify(_reading(20.0, snack_pass=True), alerts_enabled=True) is None


def test_critical_reading_is_sent_over_telegram():
    notifier = AlertNotifier("123:ABC", "999")
    with patch("glucose_sync.notify.alerts.Bot") as bot_cls:
        bot_cls.return_value.send_message = AsyncMock()
        severity = notifier.check_and_notify(_reading(2.0), alerts_enabled=True)

    assert severity == Severity.CRITICAL_LOW
    bot_cls.assert_called_once_with(token="123:ABC")
    kwargs = bot_cls.return_value.send_message.call_args.kwargs
    assert kwargs["chat_id"] == "999"
    assert "Critical low" in kwargs["text"]


def test_non_critical_reading_is_not_sent():
    notifier = AlertNotifier("123:ABC", "999")
    with patch("glucose_sync.notify.alerts.Bot") as bot_cls:
        assert notifier.check_and_notify(_reading(11.0), alerts_enabled=True) == Severity.HIGH
    bot_cls.assert_not_called()


def test_delivery_failure_is_logged_not_raised():
    notifier = AlertNotifier("123:ABC", "999")
    with patch("glucose_sync.notify.alerts.Bot") as bot_cls, \
            patch.object(AlertNotifier._send.retry, "wait", wait_none()):
        bot_cls.return_value.send_message = AsyncMock(side_effect=TelegramError("network down"))
        severity = notifier.check_and_notify(_reading(20.0), alerts_enabled=True)
    assert severity == Severity.CRITICAL_HIGH
    assert bot_cls.return_value.send_message.await_count == 3
