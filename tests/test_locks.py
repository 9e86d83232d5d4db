"""Tests for the keyed lock manager."""

from __future__ import annotations

import threading

import pytest

from app.domain.errors import TransientStoreFailure
from app.services.locks import KeyedLocks

from conftest import held_elsewhere


def test_entries_are_dropped_after_release():
    locks = KeyedLocks(timeout_seconds=1)
    with locks.hold(("venue", "Main Hall", 1), ("resource", "Projector", 1)):
        assert len(locks._locks) == 2
    assert locks._locks == {}


def test_entries_are_dropped_after_timeout():
    locks = KeyedLocks(timeout_seconds=0.05)
    with held_elsewhere(locks, ("event", "a")):
        with pytest.raises(TransientStoreFailure):
            with locks.hold(("event", "a")):
                pass
        assert len(locks._locks) == 1
    assert locks._locks == {}


def test_many_keys_do_not_accumulate():
    locks = KeyedLocks(timeout_seconds=1)
    for index in range(100):
        with locks.hold(("event", str(index))):
            pass
    assert locks._locks == {}


def test_same_thread_can_reenter():
    locks = KeyedLocks(timeout_seconds=0.05)
    with locks.hold(("event", "a")):
        with locks.hold(("event", "a"), ("venue", "Main Hall", 1)):
            assert locks._locks[("event", "a")].users == 2
    assert locks._locks == {}


def test_waiters_share_one_entry():
    locks = KeyedLocks(timeout_seconds=5)
    order = []

    def worker(name):
        with locks.hold(("venue", "Main Hall", 1)):
            order.append(name)

    with held_elsewhere(locks, ("venue", "Main Hall", 1)):
        threads = [threading.Thread(target=worker, args=(n,)) for n in "abc"]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=0.1)
        assert order == []
    for thread in threads:
        thread.join(timeout=5)

    assert sorted(order) == ["a", "b", "c"]
    assert locks._locks == {}
