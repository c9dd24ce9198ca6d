from .base import ACCOUNT_LOOKUP_FIELDS, LedgerStore, LedgerUnitOfWork
from .memory import MemoryLedgerStore

__all__ = [
    "ACCOUNT_LOOKUP_FIELDS",
    "LedgerStore",
    "LedgerUnitOfWork",
    "MemoryLedgerStore",
]
