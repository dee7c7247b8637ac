"""
Ledger Engine

The only path that changes a balance. Deposit, withdraw and transfer each
run as one unit of work: the balance adjustment(s) and the single movement
that records them commit together or not at all.

Order of work for every operation:
1. validate input (no store access)
2. confirm the accounts exist
3. take the per-account locks in ascending id order, bounded by a timeout
4. open a storage unit of work, re-read balances, mutate, append movement
5. commit, release locks

Nothing is retried here. A BusyError or StorageError leaves no trace in the
store, and whether to try again is the caller's decision.
"""

from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, List, Tuple, Union

from .accounts import Account, AccountKind, AccountStore
from .amounts import AmountLike, ZERO, DEFAULT_PRECISION, parse_amount, require_positive
from .errors import (
    InsufficientFundsError, InvalidAmountError, LedgerError,
    SameAccountError, StorageError
)
from .locking import AccountLockManager
from .logging_config import get_logger, log_action
from .movements import Movement, MovementLog, MovementSummary, PendingMovement
from .storage import StorageInterface


class LedgerEngine:
    """Atomic money movements over an AccountStore and a MovementLog"""

    def __init__(
        self,
        storage: StorageInterface,
        accounts: AccountStore,
        movements: MovementLog,
        locks: AccountLockManager,
        precision: int = DEFAULT_PRECISION
    ):
        self.storage = storage
        self.accounts = accounts
        self.movements = movements
        self.locks = locks
        self.precision = precision
        self.logger = get_logger("bank_ledger.ledger")

    def open_account(
        self,
        customer_id: str,
        kind: Union[AccountKind, str],
        initial_balance: AmountLike = ZERO,
        record_opening_deposit: bool = True
    ) -> Account:
        """
        Create an account for an already-validated customer.

        When record_opening_deposit is set and the opening balance is
        positive, the balance is booked as a DEPOSIT movement in the same
        unit of work, so the account's history explains its balance.
        """
        try:
            if not record_opening_deposit:
                return self.accounts.create(customer_id, kind, initial_balance)

            account_kind = AccountKind.parse(kind)
            opening = parse_amount(initial_balance, self.precision)
            if opening < ZERO:
                raise InvalidAmountError(initial_balance, "Initial balance cannot be negative")

            with self._unit_of_work("open_account"):
                account = self.accounts.create(customer_id, account_kind, ZERO)
                if opening > ZERO:
                    account = self.accounts.adjust_balance(account.id, opening)
                    self.movements.append(PendingMovement.deposit(account.id, opening))
        except LedgerError as e:
            self._log_rejection("open_account", e, customer_id=str(customer_id))
            raise

        return account

    def deposit(self, account_id: str, amount: AmountLike) -> Decimal:
        """
        Credit an account.

        Returns:
            The account's balance after the deposit

        Raises:
            InvalidAmountError, AccountNotFoundError, BusyError, StorageError
        """
        try:
            value = require_positive(amount, self.precision)
            self.accounts.get(account_id)

            with self._unit_of_work("deposit", account_id):
                account = self.accounts.adjust_balance(account_id, value)
                movement = self.movements.append(PendingMovement.deposit(account_id, value))
        except LedgerError as e:
            self._log_rejection("deposit", e, account_id=account_id, amount=str(amount))
            raise

        self._log_committed("deposit", movement, {account_id: account.balance})
        return account.balance

    def withdraw(self, account_id: str, amount: AmountLike) -> Decimal:
        """
        Debit an account.

        The funds check and the debit happen under the account's lock and
        inside one unit of work, so two concurrent withdrawals cannot both
        pass against a balance that only covers one of them.

        Returns:
            The account's balance after the withdrawal

        Raises:
            InvalidAmountError, AccountNotFoundError, InsufficientFundsError,
            BusyError, StorageError
        """
        try:
            value = require_positive(amount, self.precision)
            self.accounts.get(account_id)

            with self._unit_of_work("withdraw", account_id):
                self._require_funds(account_id, value)
                account = self.accounts.adjust_balance(account_id, -value)
                movement = self.movements.append(PendingMovement.withdraw(account_id, value))
        except LedgerError as e:
            self._log_rejection("withdraw", e, account_id=account_id, amount=str(amount))
            raise

        self._log_committed("withdraw", movement, {account_id: account.balance})
        return account.balance

    def transfer(self, from_id: str, to_id: str, amount: AmountLike) -> None:
        """
        Move money between two accounts as a single TRANSFER movement.

        Both balance changes and the movement commit together; a failure
        after the debit rolls the debit back.

        Raises:
            InvalidAmountError, SameAccountError, AccountNotFoundError,
            InsufficientFundsError, BusyError, StorageError
        """
        self.transfer_with_balances(from_id, to_id, amount)

    def transfer_with_balances(
        self, from_id: str, to_id: str, amount: AmountLike
    ) -> Tuple[Decimal, Decimal]:
        """
        Same as transfer, but returns the (source, destination) balances
        this transfer committed.
        """
        try:
            value = require_positive(amount, self.precision)
            if from_id == to_id:
                raise SameAccountError(from_id)
            self.accounts.get(from_id)
            self.accounts.get(to_id)

            with self._unit_of_work("transfer", from_id, to_id):
                self._require_funds(from_id, value)
                source = self.accounts.adjust_balance(from_id, -value)
                destination = self.accounts.adjust_balance(to_id, value)
                movement = self.movements.append(PendingMovement.transfer(from_id, to_id, value))
        except LedgerError as e:
            self._log_rejection("transfer", e, from_account=from_id,
                                to_account=to_id, amount=str(amount))
            raise

        self._log_committed("transfer", movement, {
            from_id: source.balance,
            to_id: destination.balance,
        })
        return source.balance, destination.balance

    # Read side

    def get_account(self, account_id: str) -> Account:
        return self.accounts.get(account_id)

    def balance(self, account_id: str) -> Decimal:
        return self.accounts.get_balance(account_id)

    def history(self, account_id: str) -> List[Movement]:
        """All movements touching the account, most recent first"""
        self.accounts.get(account_id)
        return self.movements.by_account(account_id)

    def summary(self, account_id: str) -> MovementSummary:
        self.accounts.get(account_id)
        return self.movements.summarize(account_id)

    def recent(self, limit: int = 10) -> List[Movement]:
        return self.movements.recent(limit)

    # Internals

    @contextmanager
    def _unit_of_work(self, action: str, *account_ids: str) -> Iterator[None]:
        """
        Account locks (ordered, bounded) around one storage unit of work.
        Non-ledger failures from the store surface as StorageError after
        the rollback has happened.
        """
        with self.locks.acquire(*account_ids):
            try:
                with self.storage.atomic():
                    yield
            except LedgerError:
                raise
            except Exception as e:
                log_action(
                    self.logger, "error", f"{action} failed in storage and was rolled back",
                    action=action, extra={"account_ids": list(account_ids)},
                    exc_info=True
                )
                raise StorageError(
                    f"{action} failed and was rolled back: {e}",
                    {"action": action, "account_ids": list(account_ids)}
                ) from e

    def _require_funds(self, account_id: str, amount: Decimal) -> None:
        account = self.accounts.get(account_id)
        if not account.has_sufficient_balance(amount):
            raise InsufficientFundsError(account_id, account.balance, amount)

    def _log_committed(self, action: str, movement: Movement, balances: dict) -> None:
        log_action(
            self.logger, "info", movement.describe(),
            action=action, resource=f"movement:{movement.id}",
            extra={
                "sequence": movement.sequence,
                "amount": str(movement.amount),
                "source_account": movement.source_account_id,
                "destination_account": movement.destination_account_id,
                "balances": {k: str(v) for k, v in balances.items()},
            }
        )

    def _log_rejection(self, action: str, error: LedgerError, **context) -> None:
        level = "error" if isinstance(error, StorageError) else "warning"
        log_action(
            self.logger, level, f"{action} rejected: {error.message}",
            action=action,
            extra={"kind": error.kind.value, "error": type(error).__name__, **context}
        )
