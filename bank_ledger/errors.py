"""
Ledger Error Taxonomy

Every failure the ledger reports belongs to exactly one ErrorKind so that
callers can branch on cause instead of parsing messages. None of these
errors leaves a side effect behind: validation, not-found and business-rule
errors are raised before any mutation, and concurrency or storage errors
are raised only after the unit of work has been rolled back.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Optional


class ErrorKind(Enum):
    """Categories of ledger failures"""
    VALIDATION = "validation"        # Caller input is wrong; fix and resubmit
    NOT_FOUND = "not_found"          # Unknown account or movement
    BUSINESS_RULE = "business_rule"  # Consistent read said no (e.g. funds)
    CONCURRENCY = "concurrency"      # Transient; safe to retry from scratch
    STORAGE = "storage"              # Store fault after rollback


class LedgerError(Exception):
    """Base class for all ledger errors"""

    kind: ErrorKind = ErrorKind.STORAGE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serializable representation for API responses and logs"""
        details = {
            k: str(v) if isinstance(v, Decimal) else v
            for k, v in self.details.items()
        }
        return {
            "error": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "details": details,
        }


# Validation errors

class ValidationError(LedgerError):
    kind = ErrorKind.VALIDATION


class InvalidAmountError(ValidationError):
    """Amount is zero, negative, float, or not a number"""

    def __init__(self, amount: Any, reason: str = "Amount must be positive"):
        super().__init__(f"{reason}: {amount!r}", {"amount": str(amount)})
        self.amount = amount


class SameAccountError(ValidationError):
    """Transfer source and destination are the same account"""

    def __init__(self, account_id: str):
        super().__init__(
            f"Cannot transfer from account {account_id} to itself",
            {"account_id": account_id}
        )
        self.account_id = account_id


class InvalidAccountKindError(ValidationError):
    def __init__(self, kind: Any):
        super().__init__(f"Unrecognized account kind: {kind!r}", {"kind": str(kind)})
        self.account_kind = kind


class InvalidLimitError(ValidationError):
    def __init__(self, limit: Any, maximum: int):
        super().__init__(
            f"Limit must be between 1 and {maximum}, got {limit!r}",
            {"limit": limit, "maximum": maximum}
        )
        self.limit = limit
        self.maximum = maximum


# Not-found errors

class NotFoundError(LedgerError):
    kind = ErrorKind.NOT_FOUND


class AccountNotFoundError(NotFoundError):
    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} not found", {"account_id": account_id})
        self.account_id = account_id


class MovementNotFoundError(NotFoundError):
    def __init__(self, movement_id: str):
        super().__init__(f"Movement {movement_id} not found", {"movement_id": movement_id})
        self.movement_id = movement_id


# Business-rule errors

class InsufficientFundsError(LedgerError):
    """Debit would take the balance below zero; carries the actual balance"""

    kind = ErrorKind.BUSINESS_RULE

    def __init__(self, account_id: str, balance: Decimal, requested: Decimal):
        super().__init__(
            f"Insufficient funds in account {account_id}: "
            f"balance {balance}, requested {requested}",
            {"account_id": account_id, "balance": balance, "requested": requested}
        )
        self.account_id = account_id
        self.balance = balance
        self.requested = requested


# Concurrency errors

class BusyError(LedgerError):
    """Account locks could not be acquired within the timeout"""

    kind = ErrorKind.CONCURRENCY

    def __init__(self, account_ids: Iterable[str], timeout: float):
        account_ids = list(account_ids)
        super().__init__(
            f"Accounts {', '.join(account_ids)} busy; "
            f"locks not acquired within {timeout}s",
            {"account_ids": account_ids, "timeout": timeout}
        )
        self.account_ids = account_ids
        self.timeout = timeout


# Storage errors

class StorageError(LedgerError):
    """The store failed mid-operation; the unit of work was rolled back"""

    kind = ErrorKind.STORAGE


class ReferentialIntegrityError(StorageError):
    """A movement referenced an account that does not exist"""

    def __init__(self, account_id: str):
        super().__init__(
            f"Movement references unknown account {account_id}",
            {"account_id": account_id}
        )
        self.account_id = account_id
