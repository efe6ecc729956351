"""Parameterized filter grammar for the admin query console.

A query is a list of ``(field, op, value)`` filters plus a sort and a page
window. Fields and operators come from closed sets; values are coerced to the
field's type and compared as data, never evaluated.
"""

from __future__ import annotations

import operator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable

from ..core.errors import InvalidAmountError, InvalidQueryError
from ..core.money import quantize_cents, to_decimal
from ..models import EntryFilter, EntryQuery

# wire name -> model attribute
_FIELDS: dict[str, str] = {
    "id": "id",
    "accountId": "account_id",
    "kind": "kind",
    "direction": "direction",
    "amount": "amount",
    "counterpartyAccountId": "counterparty_account_id",
    "occurredAt": "occurred_at",
    "description": "description",
}

_ORDERING_OPS: dict[str, Callable[[Any, Any], Any]] = {
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}
_EQUALITY_OPS: dict[str, Callable[[Any, Any], Any]] = {
    "eq": operator.eq,
    "ne": operator.ne,
}
_KINDS = {"deposit", "withdraw", "transfer"}
_DIRECTIONS = {"in", "out"}


@dataclass(frozen=True)
class Condition:
    column: str
    op: str
    value: Any


@dataclass(frozen=True)
class CompiledQuery:
    conditions: tuple[Condition, ...]
    sort_column: str
    descending: bool
    limit: int
    skip: int


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _coerce_int(field: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise InvalidQueryError(f"{field} expects an integer")
    try:
        return int(value)
    except ValueError as exc:
        raise InvalidQueryError(f"{field} expects an integer") from exc


def _coerce_amount(value: Any) -> int:
    try:
        amount = quantize_cents(to_decimal(value))
    except InvalidAmountError as exc:
        raise InvalidQueryError(f"amount: {exc.message}") from exc
    if amount < 0:
        raise InvalidQueryError("amount cannot be negative")
    return int(amount * 100)


def _coerce_datetime(value: Any) -> datetime:
    if not isinstance(value, str):
        raise InvalidQueryError("occurredAt expects an ISO-8601 timestamp")
    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError as exc:
        raise InvalidQueryError("occurredAt expects an ISO-8601 timestamp") from exc


def _coerce_value(item: EntryFilter) -> Any:
    value = item.value
    if value is None:
        if item.field not in ("counterpartyAccountId", "description"):
            raise InvalidQueryError(f"{item.field} cannot be null")
        if item.op not in _EQUALITY_OPS:
            raise InvalidQueryError("null only supports eq and ne")
        return None

    if item.field in ("id", "accountId", "counterpartyAccountId"):
        return _coerce_int(item.field, value)
    if item.field == "amount":
        return _coerce_amount(value)
    if item.field == "occurredAt":
        return _coerce_datetime(value)

    if not isinstance(value, str):
        raise InvalidQueryError(f"{item.field} expects a string")
    if item.field == "kind" and value not in _KINDS:
        raise InvalidQueryError(f"Unknown kind {value!r}")
    if item.field == "direction" and value not in _DIRECTIONS:
        raise InvalidQueryError(f"Unknown direction {value!r}")
    return value


def compile_query(query: EntryQuery) -> CompiledQuery:
    conditions = []
    for item in query.filters:
        if item.op == "contains" and item.field not in ("description", "kind"):
            raise InvalidQueryError("contains only applies to text fields")
        conditions.append(
            Condition(column=_FIELDS[item.field], op=item.op, value=_coerce_value(item))
        )
    return CompiledQuery(
        conditions=tuple(conditions),
        sort_column=_FIELDS[query.sort.field],
        descending=query.sort.direction == "desc",
        limit=query.limit,
        skip=query.skip,
    )


# ----------------------------------------------------------------------
# Evaluation against plain objects (in-memory store)
# ----------------------------------------------------------------------
def matches(record: Any, condition: Condition) -> bool:
    current = getattr(record, condition.column)
    value = condition.value
    if condition.op == "contains":
        return current is not None and value in current
    if condition.op in _EQUALITY_OPS:
        if isinstance(current, datetime):
            current = as_utc(current)
        return bool(_EQUALITY_OPS[condition.op](current, value))
    if current is None:
        return False
    if isinstance(current, datetime):
        current = as_utc(current)
    return bool(_ORDERING_OPS[condition.op](current, value))


def sort_key(column: str) -> Callable[[Any], tuple]:
    def key(record: Any) -> tuple:
        current = getattr(record, column)
        if isinstance(current, datetime):
            current = as_utc(current)
        return (current is not None, current, record.id)

    return key


# ----------------------------------------------------------------------
# Evaluation against SQL columns (SQL store)
# ----------------------------------------------------------------------
def to_clause(model: Any, condition: Condition) -> Any:
    column = getattr(model, condition.column)
    value = condition.value
    if isinstance(value, datetime):
        # stored naive in UTC
        value = value.astimezone(UTC).replace(tzinfo=None)
    if condition.op == "contains":
        return column.contains(value)
    if condition.op in _EQUALITY_OPS:
        if value is None:
            return column.is_(None) if condition.op == "eq" else column.is_not(None)
        return _EQUALITY_OPS[condition.op](column, value)
    return _ORDERING_OPS[condition.op](column, value)


def describe(query: CompiledQuery) -> dict[str, Any]:
    return {
        "filters": [f"{c.column} {c.op}" for c in query.conditions],
        "sort": query.sort_column,
        "limit": query.limit,
        "skip": query.skip,
    }
