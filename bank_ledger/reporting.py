"""
Reporting Module

Read-only views over accounts and movements: system statistics and
per-account reconciliation of stored balance against recorded movements.
Nothing here mutates the store.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from typing import Dict

from .accounts import AccountKind, AccountStore
from .amounts import ZERO
from .movements import MovementKind, MovementLog


@dataclass
class LedgerStatistics:
    """Point-in-time totals across the whole ledger"""
    account_count: int
    total_balance: Decimal
    accounts_by_kind: Dict[str, int] = field(default_factory=dict)
    balance_by_kind: Dict[str, Decimal] = field(default_factory=dict)
    movement_count: int = 0
    movements_by_kind: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "account_count": self.account_count,
            "total_balance": str(self.total_balance),
            "accounts_by_kind": dict(self.accounts_by_kind),
            "balance_by_kind": {k: str(v) for k, v in self.balance_by_kind.items()},
            "movement_count": self.movement_count,
            "movements_by_kind": dict(self.movements_by_kind),
        }


@dataclass
class Reconciliation:
    account_id: str
    stored_balance: Decimal
    movement_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.movement_balance

    @property
    def matches(self) -> bool:
        return self.difference == ZERO

    def to_dict(self) -> Dict:
        return {
            "account_id": self.account_id,
            "stored_balance": str(self.stored_balance),
            "movement_balance": str(self.movement_balance),
            "difference": str(self.difference),
            "matches": self.matches,
        }


class LedgerReporter:
    """Statistics and reconciliation reports"""

    def __init__(self, accounts: AccountStore, movements: MovementLog):
        self.accounts = accounts
        self.movements = movements

    def statistics(self) -> LedgerStatistics:
        accounts = self.accounts.list_all()
        movements = self.movements.all()

        accounts_by_kind = {kind.value: 0 for kind in AccountKind}
        balance_by_kind = {kind.value: ZERO for kind in AccountKind}
        for account in accounts:
            accounts_by_kind[account.kind.value] += 1
            balance_by_kind[account.kind.value] += account.balance

        movements_by_kind = {kind.value: 0 for kind in MovementKind}
        for movement in movements:
            movements_by_kind[movement.kind.value] += 1

        return LedgerStatistics(
            account_count=len(accounts),
            total_balance=sum(balance_by_kind.values(), ZERO),
            accounts_by_kind=accounts_by_kind,
            balance_by_kind=balance_by_kind,
            movement_count=len(movements),
            movements_by_kind=movements_by_kind,
        )

    def reconcile(self, account_id: str) -> Reconciliation:
        """
        Compare the stored balance with the net of recorded movements.
        Accounts opened with a balance that was not booked as a movement
        show that opening balance as the difference.
        """
        account = self.accounts.get(account_id)
        summary = self.movements.summarize(account_id)
        return Reconciliation(
            account_id=account_id,
            stored_balance=account.balance,
            movement_balance=summary.net_change,
        )
