"""
In-process ledger store used for tests and demo mode.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from decimal import Decimal
from typing import AsyncIterator, Dict, List, Optional

from ..domain import Account, TransactionRecord
from ..errors import DuplicateAccount
from .base import LedgerStore, LedgerUnitOfWork, check_lookup_field


class _MemoryUnitOfWork(LedgerUnitOfWork):
    def __init__(self, store: "MemoryLedgerStore"):
        self._store = store
        self.balances: Dict[str, Decimal] = {}
        self.records: List[TransactionRecord] = []

    async def lock_account(self, account_id: str) -> Optional[Account]:
        account = self._store._accounts.get(account_id)
        if account is None:
            return None
        staged = replace(account)
        if account_id in self.balances:
            staged.balance = self.balances[account_id]
        return staged

    async def set_balance(self, account_id: str, balance: Decimal) -> None:
        if account_id not in self._store._accounts:
            raise KeyError(account_id)
        self.balances[account_id] = balance

    async def add_record(self, record: TransactionRecord) -> None:
        self.records.append(record)


class MemoryLedgerStore(LedgerStore):
    """
    Accounts and records kept in dicts/lists.

    Readers always get copies, so a balance can only change through a
    committed unit of work.
    """

    def __init__(self) -> None:
        self._accounts: Dict[str, Account] = {}
        self._records: List[TransactionRecord] = []
        self._write_lock = asyncio.Lock()

    async def get_account(self, account_id: str) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return replace(account) if account else None

    async def find_account(self, field: str, value: str) -> Optional[Account]:
        check_lookup_field(field)
        for account in self._accounts.values():
            if getattr(account, field) == value:
                return replace(account)
        return None

    async def list_accounts(self) -> List[Account]:
        return [replace(a) for a in self._accounts.values()]

    async def add_account(self, account: Account) -> Account:
        if account.id in self._accounts:
            raise DuplicateAccount(f"Account id {account.id} already exists")
        self._accounts[account.id] = replace(account)
        return replace(account)

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[LedgerUnitOfWork]:
        async with self._write_lock:
            uow = _MemoryUnitOfWork(self)
            yield uow
            # only reached when the body did not raise
            for account_id, balance in uow.balances.items():
                self._accounts[account_id].balance = balance
            self._records.extend(uow.records)

    async def append_record(self, record: TransactionRecord) -> None:
        async with self._write_lock:
            self._records.append(record)

    async def records_for(self, account_id: str) -> List[TransactionRecord]:
        matching = [
            r for r in self._records
            if r.sender_id == account_id or r.recipient_id == account_id
        ]
        matching.sort(key=lambda r: r.created_at, reverse=True)
        return matching
