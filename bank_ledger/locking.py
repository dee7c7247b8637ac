"""
Per-Account Locking

Serializes balance mutations per account. Multi-account operations take
their locks in ascending account-id order, so two transfers over the same
pair in opposite directions can never wait on each other in a cycle.
Acquisition is bounded: a caller that cannot get every lock in time gets
BusyError with nothing held.
"""

import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from .errors import BusyError


class AccountLockManager:
    """Registry of one lock per account id"""

    def __init__(self, timeout: float = 5.0):
        if timeout <= 0:
            raise ValueError("Lock timeout must be positive")
        self.timeout = timeout
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, account_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[account_id] = lock
            return lock

    @staticmethod
    def lock_order(*account_ids: str) -> List[str]:
        """Global acquisition order: distinct ids, ascending"""
        return sorted(set(account_ids))

    @contextmanager
    def acquire(self, *account_ids: str, timeout: Optional[float] = None) -> Iterator[List[str]]:
        """
        Hold the locks for all given accounts for the duration of the block.

        Args:
            account_ids: Accounts to lock; duplicates are ignored
            timeout: Total seconds to wait across all locks (defaults to
                the manager's timeout)

        Yields:
            The account ids in the order they were locked

        Raises:
            BusyError: if any lock is not acquired in time; locks already
                taken are released first
        """
        budget = self.timeout if timeout is None else timeout
        ordered = self.lock_order(*account_ids)
        deadline = time.monotonic() + budget
        held: List[threading.Lock] = []

        try:
            for account_id in ordered:
                lock = self._lock_for(account_id)
                remaining = max(deadline - time.monotonic(), 0)
                if not lock.acquire(timeout=remaining):
                    raise BusyError(ordered, budget)
                held.append(lock)
            yield ordered
        finally:
            for lock in reversed(held):
                lock.release()

    def is_locked(self, account_id: str) -> bool:
        """Whether some caller currently holds the account's lock"""
        with self._registry_lock:
            lock = self._locks.get(account_id)
        return lock is not None and lock.locked()
