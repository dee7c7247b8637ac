"""
Tests for ledger statistics and reconciliation
"""

import pytest
from decimal import Decimal

from bank_ledger.errors import AccountNotFoundError
from bank_ledger.storage import InMemoryStorage
from bank_ledger.system import LedgerSystem
from bank_ledger.config import LedgerConfig


class TestLedgerReporter:

    def setup_method(self):
        self.system = LedgerSystem(LedgerConfig(database_url="memory://"), storage=InMemoryStorage())
        self.engine = self.system.engine
        self.reporter = self.system.reporter

    def teardown_method(self):
        self.system.close()

    def test_statistics_empty_ledger(self):
        stats = self.reporter.statistics()

        assert stats.account_count == 0
        assert stats.total_balance == Decimal('0')
        assert stats.accounts_by_kind == {"SAVINGS": 0, "CURRENT": 0, "FIXED_DEPOSIT": 0}
        assert stats.movements_by_kind == {"DEPOSIT": 0, "WITHDRAW": 0, "TRANSFER": 0}

    def test_statistics(self):
        a = self.engine.open_account("CUST-1", "SAVINGS", "100.00").id
        b = self.engine.open_account("CUST-2", "CURRENT", "50.00").id
        self.engine.open_account("CUST-2", "FIXED_DEPOSIT")

        self.engine.withdraw(a, "10.00")
        self.engine.transfer(a, b, "20.00")

        stats = self.reporter.statistics()
        assert stats.account_count == 3
        assert stats.total_balance == Decimal('140.00')
        assert stats.accounts_by_kind["FIXED_DEPOSIT"] == 1
        assert stats.balance_by_kind["SAVINGS"] == Decimal('70.00')
        assert stats.balance_by_kind["CURRENT"] == Decimal('70.00')
        assert stats.movement_count == 4
        assert stats.movements_by_kind == {"DEPOSIT": 2, "WITHDRAW": 1, "TRANSFER": 1}

        data = stats.to_dict()
        assert data["total_balance"] == "140.00"
        assert data["balance_by_kind"]["FIXED_DEPOSIT"] == "0.00"

    def test_reconcile_matches_after_engine_operations(self):
        a = self.engine.open_account("CUST-1", "SAVINGS", "100.00").id
        b = self.engine.open_account("CUST-2", "CURRENT").id
        self.engine.transfer(a, b, "30.00")
        self.engine.deposit(b, "5.00")

        for account_id in (a, b):
            result = self.reporter.reconcile(account_id)
            assert result.matches
            assert result.difference == Decimal('0')

    def test_reconcile_reports_unbooked_opening_balance(self):
        account = self.system.accounts.create("CUST-1", "SAVINGS", "25.00")

        result = self.reporter.reconcile(account.id)
        assert not result.matches
        assert result.difference == Decimal('25.00')
        assert result.to_dict()["matches"] is False

    def test_reconcile_unknown_account(self):
        with pytest.raises(AccountNotFoundError):
            self.reporter.reconcile("missing")
