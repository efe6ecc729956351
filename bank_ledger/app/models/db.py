from __future__ import annotations
from datetime import datetime, UTC
from typing import Optional
from sqlmodel import Field, SQLModel

class Account(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    full_name: str
    account_number: str = Field(index=True, unique=True)
    balance: int = Field(default=0, ge=0)  # minor units
    is_admin: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

class LedgerEntry(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="account.id", index=True)
    kind: str
    direction: str
    amount: int  # minor units, always positive
    counterparty_account_id: Optional[int] = Field(default=None, foreign_key="account.id")
    description: Optional[str] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)

class IdempotencyRecord(SQLModel, table=True):
    account_id: int = Field(primary_key=True)
    route: str = Field(primary_key=True)
    key: str = Field(primary_key=True)
    request_signature: str
    response_payload: str
