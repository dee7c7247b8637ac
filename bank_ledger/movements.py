"""
Movement Log Module

Append-only record of completed deposits, withdrawals and transfers.
Each movement gets its id, sequence number and timestamp when it is
appended inside the same unit of work as its balance change. Timestamps
never decrease along the sequence.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Union
from enum import Enum
import uuid

from .accounts import AccountStore
from .amounts import ZERO, format_amount
from .errors import InvalidLimitError, MovementNotFoundError, ReferentialIntegrityError
from .storage import StorageInterface, StorageRecord


class MovementKind(Enum):
    """Kinds of money movement"""
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    TRANSFER = "TRANSFER"


def _check_shape(
    kind: MovementKind,
    amount: Decimal,
    source_account_id: Optional[str],
    destination_account_id: Optional[str]
) -> None:
    if amount <= ZERO:
        raise ValueError("Movement amount must be positive")

    if kind == MovementKind.DEPOSIT:
        if destination_account_id is None or source_account_id is not None:
            raise ValueError("Deposit needs a destination and no source")
    elif kind == MovementKind.WITHDRAW:
        if source_account_id is None or destination_account_id is not None:
            raise ValueError("Withdrawal needs a source and no destination")
    elif kind == MovementKind.TRANSFER:
        if source_account_id is None or destination_account_id is None:
            raise ValueError("Transfer needs both a source and a destination")
        if source_account_id == destination_account_id:
            raise ValueError("Transfer source and destination must differ")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class PendingMovement:
    """A validated movement waiting to be appended"""
    kind: MovementKind
    amount: Decimal
    source_account_id: Optional[str] = None
    destination_account_id: Optional[str] = None

    def __post_init__(self):
        _check_shape(self.kind, self.amount,
                     self.source_account_id, self.destination_account_id)

    @classmethod
    def deposit(cls, account_id: str, amount: Decimal) -> "PendingMovement":
        return cls(MovementKind.DEPOSIT, amount, destination_account_id=account_id)

    @classmethod
    def withdraw(cls, account_id: str, amount: Decimal) -> "PendingMovement":
        return cls(MovementKind.WITHDRAW, amount, source_account_id=account_id)

    @classmethod
    def transfer(cls, from_id: str, to_id: str, amount: Decimal) -> "PendingMovement":
        return cls(MovementKind.TRANSFER, amount,
                   source_account_id=from_id, destination_account_id=to_id)


@dataclass
class Movement(StorageRecord):
    """Recorded ledger entry; MovementLog never updates one once appended"""
    sequence: int
    kind: MovementKind
    amount: Decimal
    source_account_id: Optional[str]
    destination_account_id: Optional[str]
    timestamp: datetime

    def __post_init__(self):
        _check_shape(self.kind, self.amount,
                     self.source_account_id, self.destination_account_id)

    def involves(self, account_id: str) -> bool:
        return account_id in (self.source_account_id, self.destination_account_id)

    def describe(self) -> str:
        """Human-readable one-line description"""
        amount = format_amount(self.amount)
        if self.kind == MovementKind.DEPOSIT:
            return f"Deposit of {amount} to account {self.destination_account_id}"
        if self.kind == MovementKind.WITHDRAW:
            return f"Withdrawal of {amount} from account {self.source_account_id}"
        return (f"Transfer of {amount} from account {self.source_account_id} "
                f"to account {self.destination_account_id}")


@dataclass
class MovementSummary:
    """Aggregated totals for one account; every total defaults to zero"""
    account_id: str
    count: int = 0
    total_deposited: Decimal = ZERO
    total_withdrawn: Decimal = ZERO
    total_sent: Decimal = ZERO
    total_received: Decimal = ZERO

    @property
    def net_change(self) -> Decimal:
        """Money in minus money out across all movements"""
        return (self.total_deposited + self.total_received
                - self.total_withdrawn - self.total_sent)

    def to_dict(self) -> Dict[str, object]:
        return {
            "account_id": self.account_id,
            "count": self.count,
            "total_deposited": str(self.total_deposited),
            "total_withdrawn": str(self.total_withdrawn),
            "total_sent": str(self.total_sent),
            "total_received": str(self.total_received),
        }


class MovementLog:
    """
    Append-only movement store.

    append is the only writer and is meant to be called by the ledger
    engine inside the unit of work that changed the balances. Every query
    returns movements most-recent-first by commit sequence.
    """

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountStore,
        recent_limit_max: int = 100
    ):
        self.storage = storage
        self.accounts = accounts
        self.recent_limit_max = recent_limit_max
        self.table_name = "movements"
        self.clock_table = "movement_clock"

    def append(self, pending: PendingMovement) -> Movement:
        """
        Durably record a movement.

        Raises:
            ReferentialIntegrityError: a referenced account does not exist
        """
        with self.storage.atomic():
            for account_id in (pending.source_account_id, pending.destination_account_id):
                if account_id is not None and not self.accounts.exists(account_id):
                    raise ReferentialIntegrityError(account_id)

            timestamp = self._next_timestamp()
            movement = Movement(
                id=str(uuid.uuid4()),
                created_at=timestamp,
                updated_at=timestamp,
                sequence=self.storage.next_sequence(self.table_name),
                kind=pending.kind,
                amount=pending.amount,
                source_account_id=pending.source_account_id,
                destination_account_id=pending.destination_account_id,
                timestamp=timestamp
            )
            self.storage.save(self.table_name, movement.id, self._movement_to_dict(movement))

        return movement

    def get(self, movement_id: str) -> Movement:
        data = self.storage.load(self.table_name, movement_id)
        if not data:
            raise MovementNotFoundError(movement_id)
        return self._movement_from_dict(data)

    def all(self) -> List[Movement]:
        return self._newest_first(self.storage.load_all(self.table_name))

    def count(self) -> int:
        return self.storage.count(self.table_name)

    def by_account(self, account_id: str) -> List[Movement]:
        """Movements where the account is source or destination"""
        records = {}
        for data in self.storage.find(self.table_name, {"source_account_id": account_id}):
            records[data['id']] = data
        for data in self.storage.find(self.table_name, {"destination_account_id": account_id}):
            records[data['id']] = data
        return self._newest_first(list(records.values()))

    def by_kind(self, kind: Union[MovementKind, str]) -> List[Movement]:
        kind = MovementKind(kind) if isinstance(kind, str) else kind
        return self._newest_first(self.storage.find(self.table_name, {"kind": kind.value}))

    def in_range(self, start: datetime, end: datetime) -> List[Movement]:
        """Movements with start <= timestamp <= end; naive bounds are taken as UTC"""
        start, end = _as_utc(start), _as_utc(end)
        return [m for m in self.all() if start <= m.timestamp <= end]

    def above_amount(self, threshold: Decimal) -> List[Movement]:
        """Movements larger than threshold, largest first"""
        movements = [m for m in self.all() if m.amount > threshold]
        movements.sort(key=lambda m: (m.amount, m.sequence), reverse=True)
        return movements

    def recent(self, limit: int = 10) -> List[Movement]:
        """
        The latest movements across all accounts.

        Raises:
            InvalidLimitError: limit outside 1..recent_limit_max
        """
        if isinstance(limit, bool) or not isinstance(limit, int) \
                or not 1 <= limit <= self.recent_limit_max:
            raise InvalidLimitError(limit, self.recent_limit_max)
        return self.all()[:limit]

    def summarize(self, account_id: str) -> MovementSummary:
        """Totals over by_account; sent/received count transfers only"""
        summary = MovementSummary(account_id=account_id)
        for movement in self.by_account(account_id):
            summary.count += 1
            if movement.kind == MovementKind.DEPOSIT:
                summary.total_deposited += movement.amount
            elif movement.kind == MovementKind.WITHDRAW:
                summary.total_withdrawn += movement.amount
            elif movement.source_account_id == account_id:
                summary.total_sent += movement.amount
            else:
                summary.total_received += movement.amount
        return summary

    def _next_timestamp(self) -> datetime:
        """Wall clock, clamped so it never runs behind the previous append"""
        now = datetime.now(timezone.utc)
        clock = self.storage.load(self.clock_table, "last")
        if clock:
            last = datetime.fromisoformat(clock['timestamp'])
            if last > now:
                now = last
        self.storage.save(self.clock_table, "last", {"id": "last", "timestamp": now.isoformat()})
        return now

    def _newest_first(self, records: List[Dict]) -> List[Movement]:
        movements = [self._movement_from_dict(data) for data in records]
        movements.sort(key=lambda m: m.sequence, reverse=True)
        return movements

    def _movement_to_dict(self, movement: Movement) -> Dict:
        result = movement.to_dict()
        result['kind'] = movement.kind.value
        result['amount'] = str(movement.amount)
        result['timestamp'] = movement.timestamp.isoformat()
        return result

    def _movement_from_dict(self, data: Dict) -> Movement:
        return Movement(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            sequence=int(data['sequence']),
            kind=MovementKind(data['kind']),
            amount=Decimal(data['amount']),
            source_account_id=data.get('source_account_id'),
            destination_account_id=data.get('destination_account_id'),
            timestamp=datetime.fromisoformat(data['timestamp'])
        )
