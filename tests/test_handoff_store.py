"""Tests for the one-time handoff code store."""
import datetime as dt
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from identity_service.services.oauth import HandoffStore


@pytest.fixture
def store(clock):
    handoff = HandoffStore(sweep_interval=None, clock=clock)
    yield handoff
    handoff.close()


def test_generate_then_consume_returns_entry_once(store, make_user):
    code = store.generate("session-token", make_user(), True, "state-1")

    entry = store.consume(code, "state-1")

    assert entry is not None
    assert entry.token == "session-token"
    assert entry.user.email == "alice@example.com"
    assert entry.is_new_user is True
    assert store.consume(code, "state-1") is None


def test_codes_are_unique_and_url_safe(store, make_user):
    codes = {store.generate("t", make_user(), False, "") for _ in range(50)}

    assert len(codes) == 50
    for code in codes:
        assert len(code) >= 43
        assert set(code) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")


def test_expired_code_is_a_miss_and_is_removed(store, clock, make_user):
    code = store.generate("t", make_user(), False, "s")

    clock.advance(minutes=6)

    assert store.consume(code, "s") is None
    assert len(store) == 0


def test_code_valid_at_exact_expiry(store, clock, make_user):
    code = store.generate("t", make_user(), False, "s")

    clock.advance(minutes=5)

    assert store.consume(code, "s") is not None


def test_state_mismatch_misses_without_burning_code(store, make_user):
    code = store.generate("t", make_user(), False, "right-state")

    assert store.consume(code, "wrong-state") is None
    assert len(store) == 1
    assert store.consume(code, "right-state") is not None


def test_empty_expected_state_skips_state_check(store, make_user):
    code = store.generate("t", make_user(), False, "minted-state")

    assert store.consume(code) is not None


def test_unknown_code_is_a_miss(store):
    assert store.consume("never-issued") is None


def test_sweep_evicts_only_expired(store, clock, make_user):
    old = store.generate("old", make_user(), False, "")
    clock.advance(minutes=4)
    fresh = store.generate("fresh", make_user(), False, "")
    clock.advance(minutes=2)

    assert store.sweep() == 1
    assert store.consume(old) is None
    assert store.consume(fresh).token == "fresh"


def test_concurrent_consume_has_single_winner(store, make_user):
    code = store.generate("t", make_user(), False, "s")

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(lambda _: store.consume(code, "s"), range(64)))

    assert sum(result is not None for result in results) == 1


def test_background_sweeper_purges_expired_entries(clock, make_user):
    store = HandoffStore(sweep_interval=dt.timedelta(milliseconds=10), clock=clock)
    try:
        store.generate("t", make_user(), False, "")
        clock.advance(minutes=10)

        deadline = time.monotonic() + 2
        while len(store) and time.monotonic() < deadline:
            time.sleep(0.01)

        assert len(store) == 0
    finally:
        store.close()
