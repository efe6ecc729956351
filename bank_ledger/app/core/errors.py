class LedgerError(Exception):
    """Base class for every error raised by the ledger service."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidAmountError(LedgerError):
    """Raised for non-positive, non-numeric or over-precise amounts."""


class InsufficientFundsError(LedgerError):
    """Raised when a withdrawal/transfer would drop balance below zero."""


class BalanceLimitExceededError(LedgerError):
    """Raised when a credit would push a balance past the supported ceiling."""


class RecipientNotFoundError(LedgerError):
    """Raised when a transfer names an unknown account number."""


class SelfTransferNotAllowedError(LedgerError):
    """Raised when sender and recipient are the same account."""


class DuplicateAccountError(LedgerError):
    """Raised when a username or account number is already taken."""


class DuplicateIdempotencyKeyError(LedgerError):
    """Raised when the same idempotency key is reused with different input."""


class InvalidQueryError(LedgerError):
    """Raised when a query console filter cannot be applied."""


class AccountNotFoundError(LedgerError):
    """Raised when an account id is missing from the store."""


class StoreConflictError(LedgerError):
    """Raised by a store adapter on a transient write conflict."""
