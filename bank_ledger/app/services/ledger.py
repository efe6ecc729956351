from __future__ import annotations

import json
import logging
import secrets
from typing import Any, Callable, Optional, Tuple, TypeVar

from ..core.config import Settings, get_settings
from ..core.errors import (
    AccountNotFoundError,
    BalanceLimitExceededError,
    DuplicateAccountError,
    DuplicateIdempotencyKeyError,
    InsufficientFundsError,
    RecipientNotFoundError,
    SelfTransferNotAllowedError,
    StoreConflictError,
)
from ..core.money import format_amount, from_minor_units, parse_amount, to_minor_units
from ..models import (
    AccountCreate,
    AccountResponse,
    EntryQuery,
    EntryQueryResponse,
    LedgerEntryResponse,
)
from .query import compile_query, describe
from .repository import LedgerStore


logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerService:
    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Helper utilities
    # ------------------------------------------------------------------
    def _retrying(
        self,
        operation: str,
        attempts: int,
        func: Callable[[], T],
        transactional: bool,
    ) -> T:
        for attempt in range(1, attempts + 1):
            try:
                if not transactional:
                    return func()
                with self.store.transaction():
                    return func()
            except StoreConflictError:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "ledger.retry",
                    extra={"operation": operation, "attempt": attempt},
                )
        raise AssertionError("unreachable")

    def _run_write(self, operation: str, func: Callable[[], T]) -> T:
        # The whole read-check-write sequence is re-run from the top on conflict.
        return self._retrying(operation, self.settings.write_retries + 1, func, True)

    def _run_read(self, operation: str, func: Callable[[], T]) -> T:
        return self._retrying(operation, self.settings.read_retries + 1, func, False)

    def _encode_signature(self, signature: Tuple[Any, ...]) -> str:
        return json.dumps(signature, sort_keys=True)

    def _get_account(self, account_id: int) -> Any:
        account = self.store.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    def _check_idempotency(
        self,
        account_id: int,
        route: str,
        idempotency_key: Optional[str],
        request_signature: Tuple[Any, ...],
    ) -> Optional[LedgerEntryResponse]:
        if idempotency_key is None:
            return None
        record = self.store.fetch_idempotency(account_id, route, idempotency_key)
        if record is None:
            return None

        signature = self._encode_signature(request_signature)
        if record.request_signature != signature:
            raise DuplicateIdempotencyKeyError(
                "Idempotency key was previously used with different parameters"
            )

        logger.info(
            f"idempotent.{route}.hit",
            extra={"account_id": account_id, "idempotency_key": idempotency_key},
        )
        return LedgerEntryResponse.model_validate_json(record.response_payload)

    def _record_idempotent(
        self,
        account_id: int,
        route: str,
        idempotency_key: Optional[str],
        request_signature: Tuple[Any, ...],
        response: LedgerEntryResponse,
    ) -> None:
        if idempotency_key is None:
            return
        self.store.save_idempotency(
            account_id=account_id,
            route=route,
            key=idempotency_key,
            signature=self._encode_signature(request_signature),
            payload=response.model_dump_json(by_alias=True),
        )

    def _account_to_response(self, account: Any) -> AccountResponse:
        return AccountResponse(
            id=account.id,
            username=account.username,
            full_name=account.full_name,
            account_number=account.account_number,
            balance=from_minor_units(account.balance),
            is_admin=account.is_admin,
            created_at=account.created_at,
        )

    def _entry_to_response(self, entry: Any) -> LedgerEntryResponse:
        return LedgerEntryResponse(
            id=entry.id,
            account_id=entry.account_id,
            kind=entry.kind,
            direction=entry.direction,
            amount=from_minor_units(entry.amount),
            counterparty_account_id=entry.counterparty_account_id,
            description=entry.description,
            occurred_at=entry.occurred_at,
        )

    def _generate_account_number(self) -> str:
        while True:
            candidate = f"ACC{secrets.randbelow(10**7):07d}"
            if self.store.get_account_by_number(candidate) is None:
                return candidate

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    def open_account(self, payload: AccountCreate) -> AccountResponse:
        def apply() -> AccountResponse:
            if self.store.get_account_by_username(payload.username) is not None:
                raise DuplicateAccountError("Username already exists")
            if payload.account_number is None:
                account_number = self._generate_account_number()
            elif self.store.get_account_by_number(payload.account_number) is not None:
                raise DuplicateAccountError("Account number already in use")
            else:
                account_number = payload.account_number

            account = self.store.add_account(
                username=payload.username,
                full_name=payload.full_name,
                account_number=account_number,
                is_admin=payload.is_admin,
            )
            return self._account_to_response(account)

        account = self._run_write("open_account", apply)
        logger.info(
            "account.opened",
            extra={"account_id": account.id, "account_number": account.account_number},
        )
        return account

    def get_account(self, account_id: int) -> AccountResponse:
        account = self._run_read("get_account", lambda: self._get_account(account_id))
        return self._account_to_response(account)

    def get_account_by_id(self, account_id: int) -> Optional[AccountResponse]:
        account = self._run_read("get_account", lambda: self.store.get_account(account_id))
        return self._account_to_response(account) if account is not None else None

    def get_account_by_number(self, account_number: str) -> Optional[AccountResponse]:
        account = self._run_read(
            "get_account_by_number",
            lambda: self.store.get_account_by_number(account_number),
        )
        return self._account_to_response(account) if account is not None else None

    def list_accounts(self) -> list[AccountResponse]:
        accounts = self._run_read("list_accounts", self.store.list_accounts)
        return [self._account_to_response(account) for account in accounts]

    # ------------------------------------------------------------------
    # Balance movements
    # ------------------------------------------------------------------
    def deposit(
        self,
        account_id: int,
        amount: Any,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> LedgerEntryResponse:
        value = parse_amount(amount)
        description = description or "Cash Deposit"
        request_signature = ("deposit", account_id, format_amount(value), description)

        def apply() -> Tuple[LedgerEntryResponse, bool]:
            cached = self._check_idempotency(
                account_id, "deposit", idempotency_key, request_signature
            )
            if cached is not None:
                return cached, True

            self._get_account(account_id)
            if self.store.apply_delta(account_id, to_minor_units(value)) is None:
                raise BalanceLimitExceededError("Balance limit exceeded")

            entry = self.store.add_entry(
                account_id=account_id,
                kind="deposit",
                direction="in",
                amount=to_minor_units(value),
                counterparty_account_id=None,
                description=description,
            )
            response = self._entry_to_response(entry)
            self._record_idempotent(
                account_id, "deposit", idempotency_key, request_signature, response
            )
            return response, False

        response, replayed = self._run_write("deposit", apply)
        if not replayed:
            logger.info(
                "account.deposit",
                extra={"account_id": account_id, "amount": str(value), "entry_id": response.id},
            )
        return response

    def withdraw(
        self,
        account_id: int,
        amount: Any,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> LedgerEntryResponse:
        value = parse_amount(amount)
        description = description or "Cash Withdrawal"
        request_signature = ("withdraw", account_id, format_amount(value), description)

        def apply() -> Tuple[LedgerEntryResponse, bool]:
            cached = self._check_idempotency(
                account_id, "withdraw", idempotency_key, request_signature
            )
            if cached is not None:
                return cached, True

            self._get_account(account_id)
            # Floor check and debit are one atomic store step.
            if self.store.apply_delta(account_id, -to_minor_units(value)) is None:
                raise InsufficientFundsError("Insufficient funds")

            entry = self.store.add_entry(
                account_id=account_id,
                kind="withdraw",
                direction="out",
                amount=to_minor_units(value),
                counterparty_account_id=None,
                description=description,
            )
            response = self._entry_to_response(entry)
            self._record_idempotent(
                account_id, "withdraw", idempotency_key, request_signature, response
            )
            return response, False

        try:
            response, replayed = self._run_write("withdraw", apply)
        except InsufficientFundsError:
            logger.warning(
                "account.withdraw.rejected",
                extra={"account_id": account_id, "amount": str(value)},
            )
            raise
        if not replayed:
            logger.info(
                "account.withdraw",
                extra={"account_id": account_id, "amount": str(value), "entry_id": response.id},
            )
        return response

    def transfer(
        self,
        sender_account_id: int,
        recipient_account_number: str,
        amount: Any,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> LedgerEntryResponse:
        """Move ``amount`` from the sender to the account holding ``recipient_account_number``.

        Both balance legs and both mirrored entries are written in one store
        transaction. Legs are applied in ascending account id so two opposing
        transfers lock rows in the same order. Returns the sender-side entry.
        """
        value = parse_amount(amount)
        minor = to_minor_units(value)
        request_signature = (
            "transfer",
            sender_account_id,
            recipient_account_number,
            format_amount(value),
            description,
        )

        def apply() -> Tuple[LedgerEntryResponse, bool, Optional[int]]:
            cached = self._check_idempotency(
                sender_account_id, "transfer", idempotency_key, request_signature
            )
            if cached is not None:
                return cached, True, None

            sender = self._get_account(sender_account_id)
            recipient = self.store.get_account_by_number(recipient_account_number)
            if recipient is None:
                raise RecipientNotFoundError("Recipient account not found")
            if recipient.id == sender.id:
                raise SelfTransferNotAllowedError("Cannot transfer to self")

            legs = sorted([(sender.id, -minor), (recipient.id, minor)])
            for account_id, delta in legs:
                if self.store.apply_delta(account_id, delta) is not None:
                    continue
                if delta < 0:
                    raise InsufficientFundsError("Insufficient funds")
                raise BalanceLimitExceededError("Balance limit exceeded")

            sent = self.store.add_entry(
                account_id=sender.id,
                kind="transfer",
                direction="out",
                amount=minor,
                counterparty_account_id=recipient.id,
                description=description or f"Transfer to {recipient.full_name}",
            )
            self.store.add_entry(
                account_id=recipient.id,
                kind="transfer",
                direction="in",
                amount=minor,
                counterparty_account_id=sender.id,
                description=description or f"Transfer from {sender.full_name}",
            )
            response = self._entry_to_response(sent)
            self._record_idempotent(
                sender_account_id, "transfer", idempotency_key, request_signature, response
            )
            return response, False, recipient.id

        try:
            response, replayed, recipient_id = self._run_write("transfer", apply)
        except (
            BalanceLimitExceededError,
            InsufficientFundsError,
            RecipientNotFoundError,
            SelfTransferNotAllowedError,
        ) as exc:
            logger.warning(
                "account.transfer.rejected",
                extra={
                    "source_account_id": sender_account_id,
                    "amount": str(value),
                    "reason": exc.message,
                },
            )
            raise
        if not replayed:
            logger.info(
                "account.transfer",
                extra={
                    "source_account_id": sender_account_id,
                    "dest_account_id": recipient_id,
                    "amount": str(value),
                },
            )
        return response

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def list_entries_for_account(self, account_id: int) -> list[LedgerEntryResponse]:
        def load() -> list[Any]:
            self._get_account(account_id)
            return self.store.list_entries(account_id)

        entries = self._run_read("list_entries", load)
        return [self._entry_to_response(entry) for entry in entries]

    def list_all_entries(self) -> list[Tuple[LedgerEntryResponse, AccountResponse]]:
        rows = self._run_read("list_all_entries", self.store.list_all_entries)
        return [
            (self._entry_to_response(entry), self._account_to_response(account))
            for entry, account in rows
        ]

    def query_entries(self, query: EntryQuery) -> EntryQueryResponse:
        compiled = compile_query(query)
        logger.info("ledger.query", extra={"query": describe(compiled)})
        entries = self._run_read("query_entries", lambda: self.store.query_entries(compiled))
        items = [self._entry_to_response(entry) for entry in entries]
        return EntryQueryResponse(data=items, count=len(items))
