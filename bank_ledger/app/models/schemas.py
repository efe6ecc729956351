from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

from ..core.money import format_amount

Money = Annotated[Decimal, PlainSerializer(format_amount, return_type=str, when_used="json")]

EntryKind = Literal["deposit", "withdraw", "transfer"]
EntryDirection = Literal["in", "out"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountCreate(CamelModel):
    username: str = Field(..., min_length=3)
    full_name: str = Field(..., min_length=2, description="Name of the account holder")
    is_admin: bool = False
    account_number: Optional[str] = Field(
        default=None, min_length=1, description="Generated when omitted"
    )

class AccountResponse(CamelModel):
    id: int
    username: str
    full_name: str
    account_number: str
    balance: Money = Field(..., ge=0, description="Current balance, two decimal places")
    is_admin: bool
    created_at: datetime

class LedgerEntryResponse(CamelModel):
    id: int
    account_id: int
    kind: EntryKind
    direction: EntryDirection
    amount: Money = Field(..., gt=0, description="Magnitude of the movement")
    counterparty_account_id: Optional[int] = None
    description: Optional[str] = Field(default=None, description="Narrative to display on the statement")
    occurred_at: datetime

class AdminLedgerEntryResponse(LedgerEntryResponse):
    user: AccountResponse

class MoneyMovementRequest(CamelModel):
    amount: Union[Decimal, str] = Field(..., description="Positive amount with at most 2 decimals")
    description: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def reject_booleans(cls, value):
        if isinstance(value, bool):
            raise ValueError("Amount must be a number")
        return value

class TransferRequest(MoneyMovementRequest):
    to_account_number: str = Field(..., min_length=1)


QueryField = Literal[
    "id",
    "accountId",
    "kind",
    "direction",
    "amount",
    "counterpartyAccountId",
    "occurredAt",
    "description",
]
QueryOperator = Literal["eq", "ne", "gt", "gte", "lt", "lte", "contains"]

class EntryFilter(CamelModel):
    field: QueryField
    op: QueryOperator = "eq"
    value: Union[int, Decimal, str, None]

class EntrySort(CamelModel):
    field: QueryField = "occurredAt"
    direction: Literal["asc", "desc"] = "desc"

class EntryQuery(CamelModel):
    filters: list[EntryFilter] = Field(default_factory=list)
    sort: EntrySort = Field(default_factory=EntrySort)
    limit: int = Field(default=100, ge=1, le=500)
    skip: int = Field(default=0, ge=0)

class EntryQueryResponse(CamelModel):
    data: list[LedgerEntryResponse]
    count: int
