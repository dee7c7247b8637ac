"""
Account Store Module

Owns account records (owner, kind, balance) and the atomic balance
adjustment primitive. Balances are fixed-point Decimals and never go below
zero in any committed state.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Union
from enum import Enum
import uuid

from .amounts import AmountLike, ZERO, parse_amount, quantize_amount, DEFAULT_PRECISION
from .errors import (
    AccountNotFoundError, InsufficientFundsError,
    InvalidAccountKindError, InvalidAmountError
)
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


class AccountKind(Enum):
    """Account products offered to customers"""
    SAVINGS = "SAVINGS"
    CURRENT = "CURRENT"
    FIXED_DEPOSIT = "FIXED_DEPOSIT"

    @classmethod
    def parse(cls, value: Union["AccountKind", str]) -> "AccountKind":
        """Accept an AccountKind or its name in any case"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        raise InvalidAccountKindError(value)


@dataclass
class Account(StorageRecord):
    """
    Customer bank account.
    customer_id and kind never change after creation; balance changes only
    through AccountStore.adjust_balance.
    """
    number: int
    customer_id: str
    kind: AccountKind
    balance: Decimal

    def __post_init__(self):
        if self.balance < ZERO:
            raise ValueError(f"Account {self.id} balance cannot be negative")

    def has_sufficient_balance(self, amount: Decimal) -> bool:
        return self.balance >= amount


class AccountStore:
    """
    Account persistence plus the only primitive that changes a balance.

    adjust_balance reads, checks and writes inside a single storage unit of
    work, so the check and the write cannot be separated by another writer.
    """

    def __init__(self, storage: StorageInterface, precision: int = DEFAULT_PRECISION):
        self.storage = storage
        self.precision = precision
        self.table_name = "accounts"
        self.logger = get_logger("bank_ledger.accounts")

    def create(
        self,
        customer_id: str,
        kind: Union[AccountKind, str],
        initial_balance: AmountLike = ZERO
    ) -> Account:
        """
        Create a new account

        Args:
            customer_id: ID of the owning customer (validated by the caller)
            kind: SAVINGS, CURRENT or FIXED_DEPOSIT
            initial_balance: Opening balance, must be >= 0

        Returns:
            Created Account

        Raises:
            InvalidAccountKindError: kind not recognized
            InvalidAmountError: negative or malformed opening balance
        """
        account_kind = AccountKind.parse(kind)
        balance = parse_amount(initial_balance, self.precision)
        if balance < ZERO:
            raise InvalidAmountError(initial_balance, "Initial balance cannot be negative")
        if not customer_id:
            raise ValueError("customer_id is required")

        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                number=self.storage.next_sequence(self.table_name),
                customer_id=str(customer_id),
                kind=account_kind,
                balance=balance
            )
            self._save_account(account)

        log_action(
            self.logger, "info", f"Account created: {account_kind.value}",
            action="create_account", resource=f"account:{account.id}",
            extra={
                "account_number": account.number,
                "customer_id": account.customer_id,
                "initial_balance": str(balance)
            }
        )
        return account

    def get(self, account_id: str) -> Account:
        """Get account by ID, raising AccountNotFoundError when missing"""
        account = self.find(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def find(self, account_id: str) -> Optional[Account]:
        """Get account by ID, or None"""
        account_dict = self.storage.load(self.table_name, account_id)
        if account_dict:
            return self._account_from_dict(account_dict)
        return None

    def exists(self, account_id: str) -> bool:
        return self.storage.exists(self.table_name, account_id)

    def get_balance(self, account_id: str) -> Decimal:
        return self.get(account_id).balance

    def adjust_balance(self, account_id: str, delta: AmountLike) -> Account:
        """
        Apply balance += delta as one atomic read-modify-write.

        Args:
            account_id: Account to adjust
            delta: Signed amount; negative values debit the account

        Returns:
            The account with its balance after the adjustment

        Raises:
            AccountNotFoundError: account does not exist
            InsufficientFundsError: the result would be negative; the
                stored balance is left unchanged
        """
        delta = parse_amount(delta, self.precision)

        with self.storage.atomic():
            account = self.get(account_id)
            new_balance = quantize_amount(account.balance + delta, self.precision)
            if new_balance < ZERO:
                raise InsufficientFundsError(account_id, account.balance, -delta)

            account.balance = new_balance
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)

        return account

    def find_by_customer(self, customer_id: str) -> List[Account]:
        """All accounts owned by a customer, oldest first"""
        accounts_data = self.storage.find(self.table_name, {"customer_id": str(customer_id)})
        return self._ordered(accounts_data)

    def find_by_kind(self, kind: Union[AccountKind, str]) -> List[Account]:
        account_kind = AccountKind.parse(kind)
        accounts_data = self.storage.find(self.table_name, {"kind": account_kind.value})
        return self._ordered(accounts_data)

    def list_all(self) -> List[Account]:
        return self._ordered(self.storage.load_all(self.table_name))

    def count(self) -> int:
        return self.storage.count(self.table_name)

    def total_balance(self) -> Decimal:
        """Sum of all balances held across accounts"""
        return sum((account.balance for account in self.list_all()), ZERO)

    def _ordered(self, records: List[Dict]) -> List[Account]:
        accounts = [self._account_from_dict(data) for data in records]
        accounts.sort(key=lambda a: a.number)
        return accounts

    def _save_account(self, account: Account) -> None:
        self.storage.save(self.table_name, account.id, self._account_to_dict(account))

    def _account_to_dict(self, account: Account) -> Dict:
        result = account.to_dict()
        result['kind'] = account.kind.value
        result['balance'] = str(account.balance)
        return result

    def _account_from_dict(self, data: Dict) -> Account:
        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            number=int(data['number']),
            customer_id=data['customer_id'],
            kind=AccountKind(data['kind']),
            balance=Decimal(data['balance'])
        )
