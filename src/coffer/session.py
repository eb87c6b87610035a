"""Session Guard - lock state, auto-lock timer and brute-force lockout."""

import logging
import math
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterator, Optional

from .config import config
from .crypto import SecretKey
from .errors import InvalidInputError, VaultLockedError
from .models import VaultRecord, utcnow

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle of a vault session."""

    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class ReadWriteLock:
    """Shared/exclusive lock; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def shared(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SessionGuard:
    """Owns the derived key for the lifetime of an unlocked session.

    Args:
        auto_lock_minutes: Idle minutes before the key is scrubbed (0 = never).
        clock: Source of the current UTC time, injectable for tests.
    """

    def __init__(
        self,
        auto_lock_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._clock = clock
        self._key: Optional[SecretKey] = None
        self._last_activity: Optional[datetime] = None
        self._timer: Optional[threading.Timer] = None
        self._state_lock = threading.RLock()
        self._rw = ReadWriteLock()
        self.auto_lock_minutes = (
            config.auto_lock_minutes if auto_lock_minutes is None else auto_lock_minutes
        )

    # ── Reader/writer access ─────────────────────────────────────────

    def shared(self):
        """Access for ordinary reads and writes."""
        return self._rw.shared()

    def exclusive(self):
        """Access for rotation, restore and deletion."""
        return self._rw.exclusive()

    # ── Lock state ───────────────────────────────────────────────────

    @property
    def is_unlocked(self) -> bool:
        self.expire_if_idle()
        return self._key is not None

    def state(self, initialized: bool) -> SessionState:
        if not initialized:
            return SessionState.UNINITIALIZED
        return SessionState.UNLOCKED if self.is_unlocked else SessionState.LOCKED

    def begin(self, key: SecretKey) -> None:
        """Enter the unlocked state holding ``key``."""
        with self._state_lock:
            self._wipe()
            self._key = key
            self._last_activity = self._clock()
            self._schedule_timer()
        logger.info("Vault unlocked")

    def end(self, reason: str = "manual") -> None:
        """Scrub the key and return to the locked state."""
        with self._state_lock:
            was_unlocked = self._key is not None
            self._wipe()
            self._cancel_timer()
        if was_unlocked:
            logger.info("Vault locked (%s)", reason)

    def key(self) -> SecretKey:
        """Borrow the session key, counting the call as activity."""
        with self._state_lock:
            self.expire_if_idle()
            if self._key is None:
                raise VaultLockedError()
            self.touch()
            return self._key

    def _wipe(self) -> None:
        if self._key is not None:
            self._key.wipe()
            self._key = None
        self._last_activity = None

    # ── Auto-lock ────────────────────────────────────────────────────

    def set_auto_lock_minutes(self, minutes: int) -> None:
        if minutes < 0:
            raise InvalidInputError("Auto-lock minutes cannot be negative")
        with self._state_lock:
            self.auto_lock_minutes = minutes
            if self._key is not None:
                self._last_activity = self._clock()
                self._schedule_timer()

    def touch(self) -> None:
        """Record activity, pushing the auto-lock deadline back."""
        with self._state_lock:
            if self._key is not None:
                self._last_activity = self._clock()

    def idle_deadline(self) -> Optional[datetime]:
        if not self.auto_lock_minutes or self._last_activity is None:
            return None
        return self._last_activity + timedelta(minutes=self.auto_lock_minutes)

    def expire_if_idle(self) -> bool:
        """Lock if the idle deadline has passed; returns True when it locked."""
        with self._state_lock:
            deadline = self.idle_deadline()
            if deadline is None or self._clock() < deadline:
                return False
            self.end(reason="auto-lock")
            return True

    def _schedule_timer(self) -> None:
        self._cancel_timer()
        deadline = self.idle_deadline()
        if deadline is None:
            return
        delay = max((deadline - self._clock()).total_seconds(), 0.0)
        self._timer = threading.Timer(delay, self._on_timer)
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        with self.exclusive():
            if not self.expire_if_idle():
                with self._state_lock:
                    if self._key is not None:
                        self._schedule_timer()

    # ── Brute-force lockout ──────────────────────────────────────────

    def lockout_remaining(self, record: VaultRecord) -> int:
        """Seconds left in an active lockout, 0 when unlock attempts are allowed."""
        policy = record.brute_force
        if not policy.enabled or record.last_failed_at is None:
            return 0
        if record.failed_attempts < policy.max_attempts:
            return 0
        until = record.last_failed_at + timedelta(
            minutes=policy.lockout_duration_minutes
        )
        remaining = (until - self._clock()).total_seconds()
        return math.ceil(remaining) if remaining > 0 else 0

    def lockout_expired(self, record: VaultRecord) -> bool:
        """True when a previous lockout has elapsed and the counter should reset."""
        policy = record.brute_force
        return (
            policy.enabled
            and record.failed_attempts >= policy.max_attempts
            and self.lockout_remaining(record) == 0
        )

    def register_failure(self, record: VaultRecord) -> None:
        record.failed_attempts += 1
        record.last_failed_at = self._clock()
        logger.warning(
            "Failed unlock attempt (%d consecutive)", record.failed_attempts
        )
        if (
            record.brute_force.enabled
            and record.failed_attempts >= record.brute_force.max_attempts
        ):
            logger.warning(
                "Brute-force lockout engaged for %d minutes",
                record.brute_force.lockout_duration_minutes,
            )

    @staticmethod
    def register_success(record: VaultRecord) -> None:
        record.failed_attempts = 0
        record.last_failed_at = None
