"""
Pydantic schemas for API requests and responses
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from .accounts import Account
from .movements import Movement


# Requests

class CreateAccountRequest(BaseModel):
    customer_id: str = Field(..., min_length=1)
    kind: str = Field(..., description="SAVINGS, CURRENT or FIXED_DEPOSIT")
    initial_balance: str = Field("0", description="Decimal amount as string")


class DepositRequest(BaseModel):
    account_id: str
    amount: str = Field(..., description="Decimal amount as string")


class WithdrawRequest(BaseModel):
    account_id: str
    amount: str = Field(..., description="Decimal amount as string")


class TransferRequest(BaseModel):
    from_account_id: str
    to_account_id: str
    amount: str = Field(..., description="Decimal amount as string")


# Responses

class AccountModel(BaseModel):
    id: str
    number: int
    customer_id: str
    kind: str
    balance: str
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountModel":
        return cls(
            id=account.id,
            number=account.number,
            customer_id=account.customer_id,
            kind=account.kind.value,
            balance=str(account.balance),
            created_at=account.created_at.isoformat(),
        )


class MovementModel(BaseModel):
    id: str
    sequence: int
    kind: str
    amount: str
    source_account_id: Optional[str] = None
    destination_account_id: Optional[str] = None
    timestamp: str
    description: str

    @classmethod
    def from_movement(cls, movement: Movement) -> "MovementModel":
        return cls(
            id=movement.id,
            sequence=movement.sequence,
            kind=movement.kind.value,
            amount=str(movement.amount),
            source_account_id=movement.source_account_id,
            destination_account_id=movement.destination_account_id,
            timestamp=movement.timestamp.isoformat(),
            description=movement.describe(),
        )


class BalanceResponse(BaseModel):
    account_id: str
    balance: str


class TransferResponse(BaseModel):
    from_account_id: str
    to_account_id: str
    amount: str
    from_balance: str
    to_balance: str


class MovementListResponse(BaseModel):
    movements: List[MovementModel]
