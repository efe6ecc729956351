from __future__ import annotations

import logging

from ..models import AccountCreate
from .ledger import LedgerService


logger = logging.getLogger(__name__)

DEMO_ACCOUNTS = (
    (AccountCreate(username="admin", full_name="Bank Administrator", account_number="ADM001", is_admin=True), None),
    (AccountCreate(username="john_doe", full_name="John Doe", account_number="ACC1001"), "5000.00"),
    (AccountCreate(username="jane_smith", full_name="Jane Smith", account_number="ACC1002"), "1000.00"),
)


def seed_demo_data(service: LedgerService) -> bool:
    """Open the demo accounts on an empty ledger. Returns False if it was not empty."""
    if service.list_accounts():
        return False

    logger.info("ledger.seed.start")
    for payload, opening_deposit in DEMO_ACCOUNTS:
        account = service.open_account(payload)
        if opening_deposit is not None:
            service.deposit(account.id, opening_deposit, "Initial Deposit")
    logger.info("ledger.seed.done", extra={"accounts": len(DEMO_ACCOUNTS)})
    return True
