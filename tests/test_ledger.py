"""
Tests for the ledger engine

Every operation either commits its balance change(s) together with exactly
one movement, or leaves balances and the movement log untouched.
"""

import pytest
import logging
import threading
from decimal import Decimal

from bank_ledger.accounts import AccountKind, AccountStore
from bank_ledger.errors import (
    AccountNotFoundError, BusyError, ErrorKind, InsufficientFundsError,
    InvalidAccountKindError, InvalidAmountError, SameAccountError, StorageError
)
from bank_ledger.ledger import LedgerEngine
from bank_ledger.locking import AccountLockManager
from bank_ledger.movements import MovementKind, MovementLog
from bank_ledger.storage import InMemoryStorage


class FailingStorage(InMemoryStorage):
    """In-memory storage that fails saves to a chosen table (and record)"""

    def __init__(self):
        super().__init__()
        self.fail_table = None
        self.fail_id = None

    def save(self, table, record_id, data):
        if table == self.fail_table and self.fail_id in (None, record_id):
            raise RuntimeError(f"disk full writing {table}")
        super().save(table, record_id, data)


class LedgerTestCase:
    """Builds an engine over fresh in-memory storage"""

    lock_timeout = 5.0

    def make_storage(self):
        return InMemoryStorage()

    def setup_method(self):
        self.storage = self.make_storage()
        self.accounts = AccountStore(self.storage)
        self.movements = MovementLog(self.storage, self.accounts)
        self.locks = AccountLockManager(timeout=self.lock_timeout)
        self.engine = LedgerEngine(self.storage, self.accounts, self.movements, self.locks)

        # Seeded through the store so no opening movements are recorded
        self.a = self.accounts.create("CUST-A", AccountKind.SAVINGS, "100.00").id
        self.b = self.accounts.create("CUST-B", AccountKind.CURRENT, "50.00").id


class TestLedgerScenarios(LedgerTestCase):

    def test_withdraw_more_than_balance(self):
        with pytest.raises(InsufficientFundsError) as exc_info:
            self.engine.withdraw(self.a, "150.00")

        assert exc_info.value.kind == ErrorKind.BUSINESS_RULE
        assert exc_info.value.balance == Decimal('100.00')
        assert self.engine.balance(self.a) == Decimal('100.00')
        assert self.movements.count() == 0

    def test_transfer_between_accounts(self):
        result = self.engine.transfer(self.a, self.b, "30.00")

        assert result is None
        assert self.engine.balance(self.a) == Decimal('70.00')
        assert self.engine.balance(self.b) == Decimal('80.00')

        movements = self.movements.all()
        assert len(movements) == 1
        assert movements[0].kind == MovementKind.TRANSFER
        assert movements[0].source_account_id == self.a
        assert movements[0].destination_account_id == self.b
        assert movements[0].amount == Decimal('30.00')

    def test_zero_deposit(self):
        with pytest.raises(InvalidAmountError) as exc_info:
            self.engine.deposit(self.a, 0)

        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert self.engine.balance(self.a) == Decimal('100.00')
        assert self.movements.count() == 0

    def test_transfer_to_same_account(self):
        with pytest.raises(SameAccountError) as exc_info:
            self.engine.transfer(self.a, self.a, "10.00")

        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert self.engine.balance(self.a) == Decimal('100.00')
        assert self.movements.count() == 0

    def test_summary_and_recent_after_operations(self):
        fresh = self.accounts.create("CUST-C", "SAVINGS").id

        self.engine.deposit(fresh, "100")
        self.engine.withdraw(fresh, "40")
        self.engine.transfer(fresh, self.b, "20")

        summary = self.engine.summary(fresh)
        assert summary.count == 3
        assert summary.total_deposited == Decimal('100')
        assert summary.total_withdrawn == Decimal('40')
        assert summary.total_sent == Decimal('20')
        assert summary.total_received == Decimal('0')

        recent = self.engine.recent(1)
        assert len(recent) == 1
        assert recent[0].kind == MovementKind.TRANSFER
        assert recent[0].source_account_id == fresh


class TestLedgerOperations(LedgerTestCase):

    def test_deposit_returns_new_balance(self):
        assert self.engine.deposit(self.a, "25.50") == Decimal('125.50')

        history = self.engine.history(self.a)
        assert len(history) == 1
        assert history[0].kind == MovementKind.DEPOSIT
        assert history[0].destination_account_id == self.a
        assert history[0].source_account_id is None

    def test_withdraw_entire_balance(self):
        assert self.engine.withdraw(self.a, "100.00") == Decimal('0.00')

        history = self.engine.history(self.a)
        assert history[0].kind == MovementKind.WITHDRAW
        assert history[0].source_account_id == self.a

    def test_transfer_insufficient_funds(self):
        with pytest.raises(InsufficientFundsError):
            self.engine.transfer(self.b, self.a, "50.01")

        assert self.engine.balance(self.a) == Decimal('100.00')
        assert self.engine.balance(self.b) == Decimal('50.00')
        assert self.movements.count() == 0

    def test_invalid_amounts(self):
        for amount in [Decimal('-5'), "-0.01", 10.5, "abc", "0.001", "1e3", "12abc3",
                       "1,2,3", 10 ** 30, Decimal('1E+30'), "1" + "0" * 30]:
            with pytest.raises(InvalidAmountError):
                self.engine.deposit(self.a, amount)
            with pytest.raises(InvalidAmountError):
                self.engine.withdraw(self.a, amount)
            with pytest.raises(InvalidAmountError):
                self.engine.transfer(self.a, self.b, amount)

        assert self.engine.balance(self.a) == Decimal('100.00')
        assert self.movements.count() == 0

    def test_unknown_accounts(self):
        with pytest.raises(AccountNotFoundError):
            self.engine.deposit("missing", "10")
        with pytest.raises(AccountNotFoundError):
            self.engine.withdraw("missing", "10")
        with pytest.raises(AccountNotFoundError):
            self.engine.transfer(self.a, "missing", "10")
        with pytest.raises(AccountNotFoundError):
            self.engine.transfer("missing", self.a, "10")
        with pytest.raises(AccountNotFoundError):
            self.engine.history("missing")
        with pytest.raises(AccountNotFoundError):
            self.engine.summary("missing")

        assert self.engine.balance(self.a) == Decimal('100.00')
        assert self.movements.count() == 0

    def test_total_money_conserved_by_transfers(self):
        total = self.accounts.total_balance()

        self.engine.transfer(self.a, self.b, "10.00")
        self.engine.transfer(self.b, self.a, "35.25")
        self.engine.transfer(self.a, self.b, "0.01")

        assert self.accounts.total_balance() == total

    def test_balance_equals_net_of_movements(self):
        fresh = self.engine.open_account("CUST-C", "CURRENT", "20.00").id
        self.engine.deposit(fresh, "80.00")
        self.engine.transfer(fresh, self.a, "30.00")
        self.engine.transfer(self.b, fresh, "5.00")
        self.engine.withdraw(fresh, "15.00")

        summary = self.engine.summary(fresh)
        assert self.engine.balance(fresh) == summary.net_change == Decimal('60.00')

    def test_balance_overflow_is_invalid_amount(self):
        """A sum too large for ledger precision is a validation error, not a storage fault"""
        huge = self.accounts.create("CUST-C", "SAVINGS", "9" * 26).id

        with pytest.raises(InvalidAmountError, match="out of range"):
            self.engine.deposit(huge, "9" * 26)

        assert self.engine.balance(huge) == Decimal("9" * 26)
        assert self.movements.count() == 0

    def test_transfer_with_balances(self):
        source_balance, destination_balance = self.engine.transfer_with_balances(
            self.a, self.b, "30.00"
        )

        assert source_balance == Decimal('70.00')
        assert destination_balance == Decimal('80.00')
        assert len(self.movements.by_kind(MovementKind.TRANSFER)) == 1

    def test_rejection_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="bank_ledger.ledger"):
            with pytest.raises(InsufficientFundsError):
                self.engine.withdraw(self.a, "500")

        records = [r for r in caplog.records if getattr(r, 'action', None) == "withdraw"]
        assert len(records) == 1
        assert records[0].levelno == logging.WARNING
        assert records[0].extra["kind"] == "business_rule"


class TestOpenAccount(LedgerTestCase):

    def test_opening_balance_recorded_as_deposit(self):
        account = self.engine.open_account("CUST-C", "SAVINGS", "250.00")

        assert account.balance == Decimal('250.00')
        assert account.kind == AccountKind.SAVINGS

        history = self.engine.history(account.id)
        assert len(history) == 1
        assert history[0].kind == MovementKind.DEPOSIT
        assert history[0].amount == Decimal('250.00')

    def test_zero_opening_balance_has_no_movement(self):
        account = self.engine.open_account("CUST-C", "CURRENT")
        assert account.balance == Decimal('0.00')
        assert self.engine.history(account.id) == []

    def test_opening_without_movement(self):
        account = self.engine.open_account(
            "CUST-C", "CURRENT", "10.00", record_opening_deposit=False
        )
        assert account.balance == Decimal('10.00')
        assert self.engine.history(account.id) == []

    def test_invalid_open(self):
        before = self.accounts.count()
        with pytest.raises(InvalidAmountError):
            self.engine.open_account("CUST-C", "SAVINGS", "-1")
        with pytest.raises(InvalidAccountKindError):
            self.engine.open_account("CUST-C", "PREMIUM", "10")
        assert self.accounts.count() == before

    def test_open_without_movement_rejection_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="bank_ledger.ledger"):
            with pytest.raises(InvalidAccountKindError):
                self.engine.open_account(
                    "CUST-C", "PREMIUM", "10", record_opening_deposit=False
                )

        records = [r for r in caplog.records if getattr(r, 'action', None) == "open_account"]
        assert len(records) == 1
        assert records[0].extra["kind"] == "validation"


class TestStorageFailures(LedgerTestCase):
    """Failures inside the unit of work roll back every partial write"""

    def make_storage(self):
        return FailingStorage()

    def test_failed_movement_append_rolls_back_deposit(self):
        self.storage.fail_table = "movements"

        with pytest.raises(StorageError) as exc_info:
            self.engine.deposit(self.a, "10.00")

        assert exc_info.value.kind == ErrorKind.STORAGE
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert self.engine.balance(self.a) == Decimal('100.00')
        assert self.movements.count() == 0

    def test_failed_credit_rolls_back_debit(self):
        """A transfer that fails after debiting the source leaves it whole"""
        self.storage.fail_table = "accounts"
        self.storage.fail_id = self.b

        with pytest.raises(StorageError):
            self.engine.transfer(self.a, self.b, "30.00")

        assert self.engine.balance(self.a) == Decimal('100.00')
        assert self.engine.balance(self.b) == Decimal('50.00')
        assert self.movements.count() == 0

    def test_ledger_usable_after_failure(self):
        self.storage.fail_table = "movements"
        with pytest.raises(StorageError):
            self.engine.withdraw(self.a, "10.00")

        self.storage.fail_table = None
        assert self.engine.withdraw(self.a, "10.00") == Decimal('90.00')

        movements = self.movements.all()
        assert len(movements) == 1
        assert movements[0].sequence == 1


class TestBusyAccounts(LedgerTestCase):

    lock_timeout = 0.1

    def test_locked_account_reports_busy(self):
        held = threading.Event()
        release = threading.Event()

        def hold():
            with self.locks.acquire(self.a):
                held.set()
                release.wait(5)

        holder = threading.Thread(target=hold)
        holder.start()
        try:
            assert held.wait(5)
            with pytest.raises(BusyError) as exc_info:
                self.engine.transfer(self.b, self.a, "10.00")
            assert exc_info.value.kind == ErrorKind.CONCURRENCY
        finally:
            release.set()
            holder.join()

        assert self.engine.balance(self.a) == Decimal('100.00')
        assert self.engine.balance(self.b) == Decimal('50.00')
        assert self.movements.count() == 0

        self.engine.transfer(self.b, self.a, "10.00")
        assert self.engine.balance(self.a) == Decimal('110.00')
