from collections.abc import Iterator
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from sqlmodel import Session

from ..models import AccountResponse
from ..services import InMemoryLedgerStore, LedgerService, LedgerStore, SqlLedgerStore
from .config import get_settings
from .db import get_engine
from .security import get_principal_id

@lru_cache()
def get_memory_store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()

def get_ledger_store() -> Iterator[LedgerStore]:
    # The memory backend never opens a database session.
    if get_settings().storage_backend == "memory":
        yield get_memory_store()
        return
    with Session(get_engine()) as session:
        yield SqlLedgerStore(session)

def get_ledger_service(store: LedgerStore = Depends(get_ledger_store)) -> LedgerService:
    return LedgerService(store)

def get_current_account(
    principal_id: int = Depends(get_principal_id),
    service: LedgerService = Depends(get_ledger_service),
) -> AccountResponse:
    # A valid token without a backing account is a server-side inconsistency.
    return service.get_account(principal_id)

def require_admin(account: AccountResponse = Depends(get_current_account)) -> AccountResponse:
    if not account.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return account
