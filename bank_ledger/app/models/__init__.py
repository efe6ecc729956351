from .db import Account as AccountModel
from .db import IdempotencyRecord as IdempotencyRecordModel
from .db import LedgerEntry as LedgerEntryModel
from .schemas import (
    AccountCreate,
    AccountResponse,
    AdminLedgerEntryResponse,
    EntryFilter,
    EntryQuery,
    EntryQueryResponse,
    EntrySort,
    LedgerEntryResponse,
    MoneyMovementRequest,
    TransferRequest,
)

__all__ = [
    "AccountCreate",
    "AccountResponse",
    "AdminLedgerEntryResponse",
    "EntryFilter",
    "EntryQuery",
    "EntryQueryResponse",
    "EntrySort",
    "LedgerEntryResponse",
    "MoneyMovementRequest",
    "TransferRequest",
    "AccountModel",
    "LedgerEntryModel",
    "IdempotencyRecordModel",
]
