"""Tests for the failed sign-in trackers."""

from __future__ import annotations

import time

import fakeredis
import pytest

from trylog_identity.security.lockout import FailedAttemptTracker
from trylog_identity.security.redis_lockout import RedisFailedAttemptTracker


@pytest.fixture()
def redis_client() -> fakeredis.FakeStrictRedis:
    client = fakeredis.FakeStrictRedis()
    client.flushall()
    return client


@pytest.fixture(params=["memory", "redis"])
def make_tracker(request, redis_client):
    def factory(max_failures: int, window_seconds: int):
        if request.param == "redis":
            return RedisFailedAttemptTracker(
                redis_client, max_failures=max_failures, window_seconds=window_seconds, key_prefix="test"
            )
        return FailedAttemptTracker(max_failures=max_failures, window_seconds=window_seconds)

    return factory


def test_tracker_locks_after_threshold(make_tracker):
    tracker = make_tracker(max_failures=3, window_seconds=60)
    key = "ann@example.com"
    assert not tracker.register_failure(key)
    assert not tracker.register_failure(key)
    assert not tracker.is_locked_out(key)
    assert tracker.register_failure(key)
    assert tracker.is_locked_out(key)
    assert not tracker.is_locked_out("bob@example.com")


def test_tracker_reset_clears_failures(make_tracker):
    tracker = make_tracker(max_failures=1, window_seconds=60)
    key = "ann@example.com"
    assert tracker.register_failure(key)
    tracker.reset(key)
    assert not tracker.is_locked_out(key)


def test_tracker_expires_entries(make_tracker):
    tracker = make_tracker(max_failures=1, window_seconds=1)
    key = "ann@example.com"
    assert tracker.register_failure(key)
    assert tracker.is_locked_out(key)
    time.sleep(1.1)
    assert not tracker.is_locked_out(key)


def test_memory_tracker_forgets_expired_keys():
    tracker = FailedAttemptTracker(max_failures=1, window_seconds=1)
    assert not tracker.is_locked_out("unknown@example.com")
    assert "unknown@example.com" not in tracker._events

    tracker.register_failure("ann@example.com")
    time.sleep(1.1)
    assert not tracker.is_locked_out("ann@example.com")
    assert tracker._events == {}
