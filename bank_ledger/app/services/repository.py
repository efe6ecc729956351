from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional, Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, select

from ..core.errors import StoreConflictError
from ..core.money import MAX_MINOR_UNITS
from ..models import AccountModel, IdempotencyRecordModel, LedgerEntryModel
from .query import CompiledQuery, to_clause


class LedgerStore(Protocol):
    """Persistence capabilities the ledger service relies on.

    Implementations hold no business rules. ``apply_delta`` is the only way a
    balance changes and must be atomic: the floor check and the write happen
    as one step. Everything done inside ``transaction()`` is committed as a
    unit or not at all.
    """

    def transaction(self) -> Any: ...

    def add_account(
        self,
        *,
        username: str,
        full_name: str,
        account_number: str,
        is_admin: bool,
    ) -> Any: ...

    def get_account(self, account_id: int) -> Optional[Any]: ...

    def get_account_by_number(self, account_number: str) -> Optional[Any]: ...

    def get_account_by_username(self, username: str) -> Optional[Any]: ...

    def list_accounts(self) -> list[Any]: ...

    def apply_delta(self, account_id: int, delta: int) -> Optional[Any]:
        """Add ``delta`` minor units unless the balance would leave ``[0, MAX_MINOR_UNITS]``."""
        ...

    def add_entry(
        self,
        *,
        account_id: int,
        kind: str,
        direction: str,
        amount: int,
        counterparty_account_id: Optional[int],
        description: Optional[str],
    ) -> Any: ...

    def list_entries(self, account_id: int) -> list[Any]: ...

    def list_all_entries(self) -> list[tuple[Any, Any]]: ...

    def query_entries(self, query: CompiledQuery) -> list[Any]: ...

    def fetch_idempotency(self, account_id: int, route: str, key: str) -> Optional[Any]: ...

    def save_idempotency(
        self,
        *,
        account_id: int,
        route: str,
        key: str,
        signature: str,
        payload: str,
    ) -> None: ...


class SqlLedgerStore:
    """Thin data access layer around the SQLModel session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except (IntegrityError, OperationalError) as exc:
            self.session.rollback()
            raise StoreConflictError("Ledger store write conflict") from exc
        except BaseException:
            self.session.rollback()
            raise

    @contextmanager
    def _reading(self) -> Iterator[None]:
        try:
            yield
        except OperationalError as exc:
            self.session.rollback()
            raise StoreConflictError("Ledger store unavailable") from exc

    # Account operations -------------------------------------------------
    def add_account(
        self,
        *,
        username: str,
        full_name: str,
        account_number: str,
        is_admin: bool,
    ) -> AccountModel:
        account = AccountModel(
            username=username,
            full_name=full_name,
            account_number=account_number,
            is_admin=is_admin,
        )
        self.session.add(account)
        self.session.flush()
        self.session.refresh(account)
        return account

    def get_account(self, account_id: int) -> Optional[AccountModel]:
        with self._reading():
            return self.session.get(AccountModel, account_id)

    def get_account_by_number(self, account_number: str) -> Optional[AccountModel]:
        stmt = select(AccountModel).where(AccountModel.account_number == account_number)
        with self._reading():
            return self.session.exec(stmt).first()

    def get_account_by_username(self, username: str) -> Optional[AccountModel]:
        stmt = select(AccountModel).where(AccountModel.username == username)
        with self._reading():
            return self.session.exec(stmt).first()

    def list_accounts(self) -> list[AccountModel]:
        stmt = select(AccountModel).order_by(AccountModel.id)
        with self._reading():
            return list(self.session.exec(stmt))

    def apply_delta(self, account_id: int, delta: int) -> Optional[AccountModel]:
        # Single conditional UPDATE: the row lock it takes serializes
        # concurrent writers and both bounds are re-checked against the latest row.
        table = AccountModel.__table__
        stmt = (
            update(table)
            .where(table.c.id == account_id)
            .where(table.c.balance + delta >= 0)
            .where(table.c.balance + delta <= MAX_MINOR_UNITS)
            .values(balance=table.c.balance + delta)
        )
        result = self.session.connection().execute(stmt)
        if result.rowcount != 1:
            return None
        return self.session.get(AccountModel, account_id, populate_existing=True)

    # Ledger entries -----------------------------------------------------
    def add_entry(
        self,
        *,
        account_id: int,
        kind: str,
        direction: str,
        amount: int,
        counterparty_account_id: Optional[int],
        description: Optional[str],
    ) -> LedgerEntryModel:
        entry = LedgerEntryModel(
            account_id=account_id,
            kind=kind,
            direction=direction,
            amount=amount,
            counterparty_account_id=counterparty_account_id,
            description=description,
        )
        self.session.add(entry)
        self.session.flush()
        self.session.refresh(entry)
        return entry

    def list_entries(self, account_id: int) -> list[LedgerEntryModel]:
        stmt = (
            select(LedgerEntryModel)
            .where(LedgerEntryModel.account_id == account_id)
            .order_by(LedgerEntryModel.occurred_at.desc(), LedgerEntryModel.id.desc())
        )
        with self._reading():
            return list(self.session.exec(stmt))

    def list_all_entries(self) -> list[tuple[LedgerEntryModel, AccountModel]]:
        stmt = (
            select(LedgerEntryModel, AccountModel)
            .join(AccountModel, LedgerEntryModel.account_id == AccountModel.id)
            .order_by(LedgerEntryModel.occurred_at.desc(), LedgerEntryModel.id.desc())
        )
        with self._reading():
            return [(entry, account) for entry, account in self.session.exec(stmt)]

    def query_entries(self, query: CompiledQuery) -> list[LedgerEntryModel]:
        sort_column = getattr(LedgerEntryModel, query.sort_column)
        if query.descending:
            ordering = (sort_column.desc(), LedgerEntryModel.id.desc())
        else:
            ordering = (sort_column.asc(), LedgerEntryModel.id.asc())
        stmt = (
            select(LedgerEntryModel)
            .where(*(to_clause(LedgerEntryModel, c) for c in query.conditions))
            .order_by(*ordering)
            .offset(query.skip)
            .limit(query.limit)
        )
        with self._reading():
            return list(self.session.exec(stmt))

    # Idempotency store --------------------------------------------------
    def fetch_idempotency(
        self, account_id: int, route: str, key: str
    ) -> Optional[IdempotencyRecordModel]:
        stmt = (
            select(IdempotencyRecordModel)
            .where(IdempotencyRecordModel.account_id == account_id)
            .where(IdempotencyRecordModel.route == route)
            .where(IdempotencyRecordModel.key == key)
        )
        with self._reading():
            return self.session.exec(stmt).first()

    def save_idempotency(
        self,
        *,
        account_id: int,
        route: str,
        key: str,
        signature: str,
        payload: str,
    ) -> None:
        record = IdempotencyRecordModel(
            account_id=account_id,
            route=route,
            key=key,
            request_signature=signature,
            response_payload=payload,
        )
        self.session.add(record)
