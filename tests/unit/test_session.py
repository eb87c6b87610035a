"""Unit tests for the session guard: lock state, auto-lock and lockout."""

import threading

import pytest

from coffer.crypto import KdfParams, SecretKey
from coffer.errors import InvalidInputError, VaultLockedError
from coffer.models import BruteForceConfig, VaultRecord
from coffer.session import ReadWriteLock, SessionGuard, SessionState


@pytest.fixture
def guard(clock):
    g = SessionGuard(auto_lock_minutes=0, clock=clock)
    yield g
    g.end()


@pytest.fixture
def record():
    return VaultRecord(kdf_params=KdfParams.for_preset("fast"), canary=b"")


class TestLockState:
    def test_starts_locked(self, guard):
        assert not guard.is_unlocked
        assert guard.state(initialized=True) is SessionState.LOCKED
        assert guard.state(initialized=False) is SessionState.UNINITIALIZED

    def test_key_requires_unlock(self, guard):
        with pytest.raises(VaultLockedError):
            guard.key()

    def test_begin_and_end(self, guard, key):
        secret = SecretKey(key)
        guard.begin(secret)
        assert guard.key() is secret
        assert guard.state(initialized=True) is SessionState.UNLOCKED

        guard.end()
        assert secret.wiped
        with pytest.raises(VaultLockedError):
            guard.key()

    def test_begin_replaces_and_wipes_previous_key(self, guard, key):
        first = SecretKey(key)
        guard.begin(first)
        guard.begin(SecretKey(key))
        assert first.wiped


class TestAutoLock:
    def test_idle_timeout_locks(self, clock, key):
        guard = SessionGuard(auto_lock_minutes=5, clock=clock)
        try:
            guard.begin(SecretKey(key))
            clock.advance(minutes=4)
            guard.key()
            clock.advance(minutes=4)
            # activity at minute 4 pushed the deadline to minute 9
            guard.key()
            clock.advance(minutes=5)
            with pytest.raises(VaultLockedError):
                guard.key()
        finally:
            guard.end()

    def test_zero_disables(self, guard, clock, key):
        guard.begin(SecretKey(key))
        clock.advance(days=30)
        assert guard.is_unlocked

    def test_negative_rejected(self, guard):
        with pytest.raises(InvalidInputError):
            guard.set_auto_lock_minutes(-1)

    def test_changing_timeout_applies_to_open_session(self, guard, clock, key):
        guard.begin(SecretKey(key))
        guard.set_auto_lock_minutes(15)
        clock.advance(minutes=16)
        assert not guard.is_unlocked

    def test_timer_fires(self, key):
        # Real clock: a timer of a fraction of a second must lock the session
        guard = SessionGuard(auto_lock_minutes=0)
        try:
            guard.begin(SecretKey(key))
            guard.set_auto_lock_minutes(0.005)  # 0.3 seconds
            guard._timer.join(timeout=5)
            assert not guard.is_unlocked
        finally:
            guard.end()


class TestBruteForce:
    def test_lockout_after_max_attempts(self, guard, record, clock):
        for _ in range(4):
            guard.register_failure(record)
            assert guard.lockout_remaining(record) == 0

        guard.register_failure(record)
        assert guard.lockout_remaining(record) == 300

        clock.advance(minutes=2)
        assert guard.lockout_remaining(record) == 180

    def test_lockout_expires(self, guard, record, clock):
        for _ in range(5):
            guard.register_failure(record)
        clock.advance(minutes=5, seconds=1)
        assert guard.lockout_remaining(record) == 0
        assert guard.lockout_expired(record)

    def test_disabled_policy_never_locks(self, guard, record):
        record.brute_force = BruteForceConfig(enabled=False)
        for _ in range(20):
            guard.register_failure(record)
        assert guard.lockout_remaining(record) == 0
        assert not guard.lockout_expired(record)

    def test_success_resets(self, guard, record):
        guard.register_failure(record)
        SessionGuard.register_success(record)
        assert record.failed_attempts == 0
        assert record.last_failed_at is None


class TestReadWriteLock:
    def test_readers_share(self):
        lock = ReadWriteLock()
        with lock.shared():
            acquired = threading.Event()

            def reader():
                with lock.shared():
                    acquired.set()

            t = threading.Thread(target=reader)
            t.start()
            assert acquired.wait(timeout=5)
            t.join()

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []
        with lock.exclusive():
            def reader():
                with lock.shared():
                    events.append("read")

            t = threading.Thread(target=reader)
            t.start()
            t.join(timeout=0.2)
            assert events == []
        t.join(timeout=5)
        assert events == ["read"]
