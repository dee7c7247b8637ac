"""
Ledger System

Explicitly constructed wiring of store, account store, movement log, locks
and engine. Open once at process start, close at shutdown.
"""

from typing import Optional

from .accounts import AccountStore
from .config import LedgerConfig
from .ledger import LedgerEngine
from .locking import AccountLockManager
from .logging_config import get_logger
from .movements import MovementLog
from .reporting import LedgerReporter
from .storage import StorageInterface, create_storage


class LedgerSystem:
    """Ledger components bound to a single storage handle"""

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        storage: Optional[StorageInterface] = None
    ):
        self.config = config or LedgerConfig()
        self.logger = get_logger("bank_ledger.system")

        self.storage = storage or create_storage(self.config.database_url)
        self.locks = AccountLockManager(timeout=self.config.lock_timeout_seconds)
        self.accounts = AccountStore(self.storage, precision=self.config.amount_precision)
        self.movements = MovementLog(
            self.storage, self.accounts,
            recent_limit_max=self.config.recent_limit_max
        )
        self.engine = LedgerEngine(
            self.storage, self.accounts, self.movements, self.locks,
            precision=self.config.amount_precision
        )
        self.reporter = LedgerReporter(self.accounts, self.movements)
        self._closed = False

        self.logger.info("Ledger system opened with %s", type(self.storage).__name__)

    def close(self) -> None:
        """Close the storage handle; safe to call twice"""
        if self._closed:
            return
        self.storage.close()
        self._closed = True
        self.logger.info("Ledger system closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
