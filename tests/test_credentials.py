"""Tests for glucose_sync/remote/auth.py."""

import json
import os
import stat
import sys

import pytest

from glucose_sync.remote.auth import CredentialStore


class FakeClock:
    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token_file(tmp_path):
    return tmp_path / "token.json"


def test_empty_store_is_invalid(token_file, clock):
    store = CredentialStore(token_file, clock=clock)
    assert store.is_valid() is False
    assert store.current_token() is None


def test_expired_then_fresh_token(token_file, clock):
    store = CredentialStore(token_file, clock=clock)
    store.save("abc", -1000)
    assert store.is_valid() is False
    assert store.current_token() is None

    store.save("xyz", 3_600_000)
    assert store.is_valid() is True
    assert store.current_token() == "xyz"
    assert store.expiry == clock.now + 3_600_000


def test_token_expires_at_exact_boundary(token_file, clock):
    store = CredentialStore(token_file, clock=clock)
    store.save("abc", 500)
    clock.now += 499
    assert store.is_valid() is True
    clock.now += 1
    assert store.is_valid() is False


def test_token_survives_restart(token_file, clock):
    CredentialStore(token_file, clock=clock).save("abc", 60_000)
    reloaded = CredentialStore(token_file, clock=clock)
    assert reloaded.current_token() == "abc"


def test_clear_removes_file(token_file, clock):
    store = CredentialStore(token_file, clock=clock)
    store.save("abc", 60_000)
    store.clear()
    assert not token_file.exists()
    assert store.is_valid() is False
    store.clear()  # no-op when empty


def test_file_contains_token_and_expiry(token_file, clock):
    CredentialStore(token_file, clock=clock).save("abc", 10)
    data = json.loads(token_file.read_text())
    assert data == {"token": "abc", "expiry": clock.now + 10}


@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX permissions")
def test_file_is_private(token_file, clock):
    CredentialStore(token_file, clock=clock).save("abc", 10)
    assert stat.S_IMODE(os.stat(token_file).st_mode) == 0o600


def test_corrupt_file_is_ignored(token_file, clock):
    token_file.write_text("{not json")
    store = CredentialStore(token_file, clock=clock)
    assert store.is_valid() is False
