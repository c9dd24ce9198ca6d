"""
Ledger store interface.

The engine only talks to persistence through these two classes, so the
backing technology (in-process dicts, SQL) stays substitutable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import AsyncContextManager, List, Optional

from ..domain import Account, TransactionRecord

ACCOUNT_LOOKUP_FIELDS = ("username", "wallet_id", "account_number", "email")


class LedgerUnitOfWork(ABC):
    """
    One atomic batch of balance writes and record appends.

    Nothing written through a unit of work is visible to readers until the
    surrounding context exits cleanly; an exception discards all of it.
    """

    @abstractmethod
    async def lock_account(self, account_id: str) -> Optional[Account]:
        """Read an account for update."""

    @abstractmethod
    async def set_balance(self, account_id: str, balance: Decimal) -> None:
        ...

    @abstractmethod
    async def add_record(self, record: TransactionRecord) -> None:
        ...


class LedgerStore(ABC):
    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def find_account(self, field: str, value: str) -> Optional[Account]:
        """Exact lookup on one of ACCOUNT_LOOKUP_FIELDS."""

    @abstractmethod
    async def list_accounts(self) -> List[Account]:
        ...

    @abstractmethod
    async def add_account(self, account: Account) -> Account:
        ...

    @abstractmethod
    def unit_of_work(self) -> AsyncContextManager[LedgerUnitOfWork]:
        ...

    @abstractmethod
    async def append_record(self, record: TransactionRecord) -> None:
        """Append a record outside of a balance mutation (FAILED audit rows)."""

    @abstractmethod
    async def records_for(self, account_id: str) -> List[TransactionRecord]:
        """All records where the account is sender or recipient, newest first."""

    async def close(self) -> None:
        return None


def check_lookup_field(field: str) -> None:
    if field not in ACCOUNT_LOOKUP_FIELDS:
        raise ValueError(f"Unsupported account lookup field: {field}")
