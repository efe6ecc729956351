from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..core.errors import DuplicateAccountError
from ..core.money import MAX_MINOR_UNITS
from .query import CompiledQuery, matches, sort_key

@dataclass
class _AccountRecord:
    id: int
    username: str
    full_name: str
    account_number: str
    is_admin: bool
    balance: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

@dataclass
class _LedgerEntryRecord:
    id: int
    account_id: int
    kind: str
    direction: str
    amount: int
    counterparty_account_id: Optional[int] = None
    description: Optional[str] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

@dataclass
class _IdempotencyRecord:
    request_signature: str
    response_payload: str

class InMemoryLedgerStore:
    """Dict-backed store for single-process deployments and tests.

    A re-entrant lock is held for the whole of ``transaction()``; writes made
    inside it push an undo callback that is replayed if the block raises.
    Records handed out are copies, never the stored objects.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._accounts: Dict[int, _AccountRecord] = {}
        self._entries: List[_LedgerEntryRecord] = []
        self._idempotency: Dict[Tuple[int, str, str], _IdempotencyRecord] = {}
        self._next_account_id = 1
        self._next_entry_id = 1
        self._undo: Optional[List[Callable[[], None]]] = None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            outermost = self._undo is None
            if outermost:
                self._undo = []
            try:
                yield
            except BaseException:
                if outermost:
                    for undo in reversed(self._undo):
                        undo()
                raise
            finally:
                if outermost:
                    self._undo = None

    def _on_rollback(self, undo: Callable[[], None]) -> None:
        if self._undo is not None:
            self._undo.append(undo)

    # Account operations -------------------------------------------------
    def add_account(
        self,
        *,
        username: str,
        full_name: str,
        account_number: str,
        is_admin: bool,
    ) -> _AccountRecord:
        with self._lock:
            for existing in self._accounts.values():
                if existing.username == username or existing.account_number == account_number:
                    raise DuplicateAccountError("Username or account number already in use")

            record = _AccountRecord(
                id=self._next_account_id,
                username=username,
                full_name=full_name,
                account_number=account_number,
                is_admin=is_admin,
            )
            self._next_account_id += 1
            self._accounts[record.id] = record
            self._on_rollback(lambda: self._accounts.pop(record.id, None))
            return replace(record)

    def get_account(self, account_id: int) -> Optional[_AccountRecord]:
        with self._lock:
            record = self._accounts.get(account_id)
            return replace(record) if record is not None else None

    def get_account_by_number(self, account_number: str) -> Optional[_AccountRecord]:
        with self._lock:
            for record in self._accounts.values():
                if record.account_number == account_number:
                    return replace(record)
            return None

    def get_account_by_username(self, username: str) -> Optional[_AccountRecord]:
        with self._lock:
            for record in self._accounts.values():
                if record.username == username:
                    return replace(record)
            return None

    def list_accounts(self) -> List[_AccountRecord]:
        with self._lock:
            return [replace(self._accounts[key]) for key in sorted(self._accounts)]

    def apply_delta(self, account_id: int, delta: int) -> Optional[_AccountRecord]:
        with self._lock:
            record = self._accounts.get(account_id)
            if record is None or not 0 <= record.balance + delta <= MAX_MINOR_UNITS:
                return None
            previous = record.balance
            record.balance = previous + delta

            def undo() -> None:
                record.balance = previous

            self._on_rollback(undo)
            return replace(record)

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
    ) -> _LedgerEntryRecord:
        with self._lock:
            entry = _LedgerEntryRecord(
                id=self._next_entry_id,
                account_id=account_id,
                kind=kind,
                direction=direction,
                amount=amount,
                counterparty_account_id=counterparty_account_id,
                description=description,
            )
            self._next_entry_id += 1
            self._entries.append(entry)
            self._on_rollback(lambda: self._entries.remove(entry))
            return replace(entry)

    def _newest_first(self, entries: List[_LedgerEntryRecord]) -> List[_LedgerEntryRecord]:
        ordered = sorted(entries, key=lambda e: (e.occurred_at, e.id), reverse=True)
        return [replace(entry) for entry in ordered]

    def list_entries(self, account_id: int) -> List[_LedgerEntryRecord]:
        with self._lock:
            return self._newest_first([e for e in self._entries if e.account_id == account_id])

    def list_all_entries(self) -> List[Tuple[_LedgerEntryRecord, _AccountRecord]]:
        with self._lock:
            return [
                (entry, replace(self._accounts[entry.account_id]))
                for entry in self._newest_first(self._entries)
            ]

    def query_entries(self, query: CompiledQuery) -> List[_LedgerEntryRecord]:
        with self._lock:
            selected = [
                entry
                for entry in self._entries
                if all(matches(entry, condition) for condition in query.conditions)
            ]
        selected.sort(key=sort_key(query.sort_column), reverse=query.descending)
        window = selected[query.skip : query.skip + query.limit]
        return [replace(entry) for entry in window]

    # Idempotency store --------------------------------------------------
    def fetch_idempotency(
        self, account_id: int, route: str, key: str
    ) -> Optional[_IdempotencyRecord]:
        with self._lock:
            return self._idempotency.get((account_id, route, key))

    def save_idempotency(
        self,
        *,
        account_id: int,
        route: str,
        key: str,
        signature: str,
        payload: str,
    ) -> None:
        with self._lock:
            slot = (account_id, route, key)
            self._idempotency[slot] = _IdempotencyRecord(
                request_signature=signature,
                response_payload=payload,
            )
            self._on_rollback(lambda: self._idempotency.pop(slot, None))
