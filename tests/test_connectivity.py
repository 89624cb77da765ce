"""Tests for glucose_sync/utils/connectivity.py."""

from unittest.mock import MagicMock, patch

from glucose_sync.utils.connectivity import is_online, probe_target


def test_probe_target_defaults_ports():
    assert probe_target("https://kulus.example.com/api") == ("kulus.example.com", 443)
    assert probe_target("http://kulus.example.com") == ("kulus.example.com", 80)
    assert probe_target("http://localhost:8080/api") == ("localhost", 8080)


def test_is_online_true_when_connect_succeeds():
    with patch("glucose_sync.utils.connectivity.socket.create_connection") as create:
        create.return_value = MagicMock()
        assert is_online("https://kulus.example.com/api", timeout=1) is True
    create.assert_called_once_with(("kulus.example.com", 443), timeout=1)


def test_is_online_false_on_os_error():
    with patch("glucose_sync.utils.connectivity.socket.create_connection", side_effect=OSError("unreachable")):
        assert is_online("https://kulus.example.com/api") is False


def test_is_online_false_without_host():
    assert is_online("not a url") is False
