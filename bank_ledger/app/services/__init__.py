from .ledger import LedgerService
from .memory import InMemoryLedgerStore
from .repository import LedgerStore, SqlLedgerStore
from .seed import seed_demo_data

__all__ = [
    "InMemoryLedgerStore",
    "LedgerService",
    "LedgerStore",
    "SqlLedgerStore",
    "seed_demo_data",
]
