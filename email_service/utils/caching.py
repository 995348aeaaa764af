"""
Per-account email cache guarded by a reader/writer lock.

PATTERN RECOGNITION: Readers (cache hits during a fetch) vastly outnumber
writers (one replace per fetch cycle, the odd mark-as-read), so concurrent
reads proceed together while a write excludes everything else. Writers are
preferred once waiting, so a steady stream of readers cannot starve a
refresh.

Each account owns its own AccountCache; accounts never contend with each
other, and no code path ever holds two cache locks at once.
"""

import threading
import time
from contextlib import contextmanager
from typing import Callable, List, Optional, Tuple

from ..modules.email_data import EmailMessage
from .config import ConfigurationError


class ReadWriteLock:
    """Shared-read / exclusive-write lock built on a single Condition"""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class AccountCache:
    """
    Most recently fetched email list of one account

    Args:
        max_entries: Maximum number of messages kept; replace() keeps the
            newest ones (the tail of the list, IMAP sequence order).
            None disables the cap.
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries is not None and max_entries <= 0:
            raise ConfigurationError(f"max_entries must be a positive integer, got {max_entries}")
        self._emails: List[EmailMessage] = []
        self._last_fetch: Optional[float] = None
        self._max_entries = max_entries
        self._clock = clock
        self._lock = ReadWriteLock()

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def read(self) -> Tuple[List[EmailMessage], Optional[float]]:
        """
        Return a snapshot of the cached list and its age in seconds

        The age is None when the cache has never been filled.
        """
        with self._lock.read_locked():
            return list(self._emails), self._age_locked()

    def replace(self, emails: List[EmailMessage]) -> int:
        """
        Atomically swap in a new list and reset the fetch timestamp

        Returns:
            Number of messages dropped because of the max_entries cap
        """
        emails = list(emails)
        dropped = 0
        if self._max_entries is not None and len(emails) > self._max_entries:
            dropped = len(emails) - self._max_entries
            emails = emails[-self._max_entries:]

        with self._lock.write_locked():
            self._emails = emails
            self._last_fetch = self._clock()
        return dropped

    def is_fresh(self, max_age: float) -> bool:
        """True when filled less than max_age seconds ago and non-empty"""
        with self._lock.read_locked():
            age = self._age_locked()
            return age is not None and age < max_age and bool(self._emails)

    def mark_read(self, email_id: str) -> bool:
        """Set read on the cached copy of email_id; False if not cached"""
        with self._lock.write_locked():
            for cached in self._emails:
                if cached.id == email_id:
                    cached.read = True
                    return True
        return False

    def clear(self) -> None:
        """Drop all entries and forget the fetch timestamp"""
        with self._lock.write_locked():
            self._emails = []
            self._last_fetch = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._emails)

    @property
    def last_fetch(self) -> Optional[float]:
        with self._lock.read_locked():
            return self._last_fetch

    # ------------------------------------------------------------------
    # Private helper (must be called with the lock already held)
    # ------------------------------------------------------------------

    def _age_locked(self) -> Optional[float]:
        if self._last_fetch is None:
            return None
        return self._clock() - self._last_fetch
