from typing import Optional

from fastapi import APIRouter, Depends, Header, status

from ..core.dependencies import get_current_account, get_ledger_service, require_admin
from ..models import (
    AccountCreate,
    AccountResponse,
    AdminLedgerEntryResponse,
    EntryQuery,
    EntryQueryResponse,
    LedgerEntryResponse,
    MoneyMovementRequest,
    TransferRequest,
)
from ..services import LedgerService
from .decimal_route import DecimalJSONRoute


router = APIRouter(prefix="/api", tags=["banking"], route_class=DecimalJSONRoute)

@router.get("/user", response_model=AccountResponse)
def read_current_account(
    account: AccountResponse = Depends(get_current_account),
) -> AccountResponse:
    return account

@router.post("/deposit", response_model=LedgerEntryResponse)
def deposit(
    payload: MoneyMovementRequest,
    account: AccountResponse = Depends(get_current_account),
    service: LedgerService = Depends(get_ledger_service),
    idempotency_key: Optional[str] = Header(default=None, convert_underscores=False, alias="Idempotency-Key"),
) -> LedgerEntryResponse:
    return service.deposit(account.id, payload.amount, payload.description, idempotency_key)

@router.post("/withdraw", response_model=LedgerEntryResponse)
def withdraw(
    payload: MoneyMovementRequest,
    account: AccountResponse = Depends(get_current_account),
    service: LedgerService = Depends(get_ledger_service),
    idempotency_key: Optional[str] = Header(default=None, convert_underscores=False, alias="Idempotency-Key"),
) -> LedgerEntryResponse:
    return service.withdraw(account.id, payload.amount, payload.description, idempotency_key)

@router.post("/transfer", response_model=LedgerEntryResponse)
def transfer(
    payload: TransferRequest,
    account: AccountResponse = Depends(get_current_account),
    service: LedgerService = Depends(get_ledger_service),
    idempotency_key: Optional[str] = Header(default=None, convert_underscores=False, alias="Idempotency-Key"),
) -> LedgerEntryResponse:
    return service.transfer(
        account.id,
        payload.to_account_number,
        payload.amount,
        payload.description,
        idempotency_key,
    )

@router.get("/transactions", response_model=list[LedgerEntryResponse])
def list_transactions(
    account: AccountResponse = Depends(get_current_account),
    service: LedgerService = Depends(get_ledger_service),
) -> list[LedgerEntryResponse]:
    return service.list_entries_for_account(account.id)

admin_router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
    route_class=DecimalJSONRoute,
)

@admin_router.get("/users", response_model=list[AccountResponse])
def list_accounts(
    service: LedgerService = Depends(get_ledger_service),
) -> list[AccountResponse]:
    return service.list_accounts()

@admin_router.post("/users", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def open_account(
    payload: AccountCreate,
    service: LedgerService = Depends(get_ledger_service),
) -> AccountResponse:
    return service.open_account(payload)

@admin_router.get("/transactions", response_model=list[AdminLedgerEntryResponse])
def list_all_transactions(
    service: LedgerService = Depends(get_ledger_service),
) -> list[AdminLedgerEntryResponse]:
    return [
        AdminLedgerEntryResponse(**entry.model_dump(), user=account)
        for entry, account in service.list_all_entries()
    ]

@admin_router.post("/transactions/query", response_model=EntryQueryResponse)
def query_transactions(
    query: EntryQuery,
    service: LedgerService = Depends(get_ledger_service),
) -> EntryQueryResponse:
    return service.query_entries(query)

__all__ = ["router", "admin_router"]
