"""
FastAPI REST API Module

Thin HTTP surface over the ledger engine. Amounts travel as decimal
strings. Ledger errors map to status codes by kind.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
import uvicorn

from . import __version__
from .config import LedgerConfig, get_config
from .errors import ErrorKind, InsufficientFundsError, LedgerError
from .logging_config import setup_logging
from .schemas import (
    AccountModel, BalanceResponse, CreateAccountRequest, DepositRequest,
    MovementListResponse, MovementModel, TransferRequest, TransferResponse,
    WithdrawRequest
)
from .system import LedgerSystem


STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.BUSINESS_RULE: status.HTTP_409_CONFLICT,
    ErrorKind.CONCURRENCY: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.STORAGE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_system(request: Request) -> LedgerSystem:
    return request.app.state.system


accounts_router = APIRouter()
ledger_router = APIRouter()
movements_router = APIRouter()
reports_router = APIRouter()


@accounts_router.post("", status_code=status.HTTP_201_CREATED, response_model=AccountModel)
def create_account(
    request: CreateAccountRequest,
    system: LedgerSystem = Depends(get_system)
):
    """Open an account, booking any opening balance as a deposit"""
    account = system.engine.open_account(
        customer_id=request.customer_id,
        kind=request.kind,
        initial_balance=request.initial_balance
    )
    return AccountModel.from_account(account)


@accounts_router.get("/{account_id}", response_model=AccountModel)
def get_account(account_id: str, system: LedgerSystem = Depends(get_system)):
    return AccountModel.from_account(system.engine.get_account(account_id))


@accounts_router.get("/{account_id}/history", response_model=MovementListResponse)
def get_history(account_id: str, system: LedgerSystem = Depends(get_system)):
    """Movements touching the account, most recent first"""
    movements = system.engine.history(account_id)
    return MovementListResponse(movements=[MovementModel.from_movement(m) for m in movements])


@accounts_router.get("/{account_id}/summary")
def get_summary(account_id: str, system: LedgerSystem = Depends(get_system)):
    return system.engine.summary(account_id).to_dict()


@accounts_router.get("/{account_id}/reconciliation")
def get_reconciliation(account_id: str, system: LedgerSystem = Depends(get_system)):
    return system.reporter.reconcile(account_id).to_dict()


@ledger_router.post("/deposit", response_model=BalanceResponse)
def deposit(request: DepositRequest, system: LedgerSystem = Depends(get_system)):
    balance = system.engine.deposit(request.account_id, request.amount)
    return BalanceResponse(account_id=request.account_id, balance=str(balance))


@ledger_router.post("/withdraw", response_model=BalanceResponse)
def withdraw(request: WithdrawRequest, system: LedgerSystem = Depends(get_system)):
    balance = system.engine.withdraw(request.account_id, request.amount)
    return BalanceResponse(account_id=request.account_id, balance=str(balance))


@ledger_router.post("/transfer", response_model=TransferResponse)
def transfer(request: TransferRequest, system: LedgerSystem = Depends(get_system)):
    from_balance, to_balance = system.engine.transfer_with_balances(
        request.from_account_id, request.to_account_id, request.amount
    )
    return TransferResponse(
        from_account_id=request.from_account_id,
        to_account_id=request.to_account_id,
        amount=request.amount,
        from_balance=str(from_balance),
        to_balance=str(to_balance),
    )


@movements_router.get("/recent", response_model=MovementListResponse)
def recent_movements(
    limit: int = Query(10),
    system: LedgerSystem = Depends(get_system)
):
    movements = system.engine.recent(limit)
    return MovementListResponse(movements=[MovementModel.from_movement(m) for m in movements])


@reports_router.get("/statistics")
def statistics(system: LedgerSystem = Depends(get_system)):
    return system.reporter.statistics().to_dict()


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    headers = None
    if exc.kind == ErrorKind.CONCURRENCY:
        headers = {"Retry-After": "1"}
    body = exc.to_dict()
    if isinstance(exc, InsufficientFundsError):
        body["balance"] = str(exc.balance)
    return JSONResponse(status_code=STATUS_BY_KIND[exc.kind], content=body, headers=headers)


def create_app(system: Optional[LedgerSystem] = None, config: Optional[LedgerConfig] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    With no system given, one is opened from configuration at start-up and
    closed at shutdown.
    """
    owns_system = system is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_system:
            app.state.system = LedgerSystem(config or get_config())
        try:
            yield
        finally:
            if owns_system:
                app.state.system.close()

    app = FastAPI(
        title="Bank Ledger API",
        description="Atomic deposits, withdrawals and transfers over an append-only ledger",
        version=__version__,
        lifespan=lifespan
    )
    if system is not None:
        app.state.system = system

    app.add_exception_handler(LedgerError, ledger_error_handler)

    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(ledger_router, prefix="/ledger", tags=["Ledger"])
    app.include_router(movements_router, prefix="/movements", tags=["Movements"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])

    @app.get("/customers/{customer_id}/accounts", tags=["Accounts"])
    def customer_accounts(customer_id: str, request: Request):
        accounts = get_system(request).accounts.find_by_customer(customer_id)
        return {"accounts": [AccountModel.from_account(a).model_dump() for a in accounts]}

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "bank_ledger",
            "version": __version__
        }

    return app


def run_server(config: Optional[LedgerConfig] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = config or get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    uvicorn.run(
        create_app(config=config),
        host=config.api_host,
        port=config.api_port,
        log_level="debug" if debug else "info"
    )
