"""
Settlement Engine
Atomically moves funds between two accounts and records the transaction.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import AsyncIterator, Awaitable, Callable, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from .domain import CENT, Account, Channel, TransactionRecord, TransactionStatus, parse_amount, utcnow
from .errors import (
    InsufficientFunds,
    RecipientNotFound,
    SelfTransferNotAllowed,
    SettlementFailed,
)
from .logging_config import get_logger
from .store.base import LedgerStore

logger = get_logger("trustport.settlement")

SettledListener = Callable[[TransactionRecord], Awaitable[None]]


class AccountLocks:
    """
    One asyncio.Lock per account id. Locks for a transfer are always taken
    in sorted id order so two opposite transfers cannot deadlock.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, account_id: str) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[account_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, *account_ids: str) -> AsyncIterator[None]:
        ordered = sorted(set(account_ids))
        acquired: List[asyncio.Lock] = []
        try:
            for account_id in ordered:
                lock = self._lock_for(account_id)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


def describe(channel: Channel, recipient_name: str) -> str:
    kind = "Bank transfer" if channel == Channel.BANK else "Payment"
    return f"{kind} to {recipient_name}"


class SettlementEngine:
    def __init__(
        self,
        store: LedgerStore,
        locks: AccountLocks = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.locks = locks or AccountLocks()
        self.clock = clock
        self._listeners: List[SettledListener] = []

    def add_listener(self, listener: SettledListener) -> None:
        """
        Called with every committed record, e.g. to refresh cached views.
        """
        self._listeners.append(listener)

    async def commit(
        self,
        sender_id: str,
        recipient_id: str,
        amount: Decimal,
        channel: Channel,
    ) -> TransactionRecord:
        """
        Debit sender, credit recipient and append a COMPLETED record as one
        unit. Raises InvalidAmount / InsufficientFunds before touching any
        balance, SettlementFailed if the store fails mid-way.

        Amounts are never rounded here: anything that is not a positive
        whole number of cents is rejected.
        """
        amount = parse_amount(amount)
        if sender_id == recipient_id:
            raise SelfTransferNotAllowed()

        async with self.locks.hold(sender_id, recipient_id):
            try:
                async with self.store.unit_of_work() as uow:
                    # row locks in the same order as the in-process locks
                    locked = {}
                    for account_id in sorted((sender_id, recipient_id)):
                        locked[account_id] = await uow.lock_account(account_id)
                    sender, recipient = locked[sender_id], locked[recipient_id]
                    if sender is None or recipient is None:
                        raise RecipientNotFound("Account not found")

                    if sender.balance < amount:
                        logger.warning(
                            "Settlement rejected - insufficient funds sender=%s balance=%s amount=%s",
                            sender_id,
                            sender.balance,
                            amount,
                        )
                        raise InsufficientFunds()

                    record = self._record(sender, recipient, amount, channel, TransactionStatus.COMPLETED)
                    await uow.set_balance(sender_id, (sender.balance - amount).quantize(CENT))
                    await uow.set_balance(recipient_id, (recipient.balance + amount).quantize(CENT))
                    await uow.add_record(record)
            except SQLAlchemyError as e:
                logger.exception("Settlement failed (DB error) sender=%s recipient=%s: %s", sender_id, recipient_id, e)
                await self._record_failure(sender_id, recipient_id, amount, channel)
                raise SettlementFailed()

        logger.info(
            "Settlement success txn=%s sender=%s recipient=%s amount=%s channel=%s",
            record.id,
            sender_id,
            recipient_id,
            amount,
            channel.value,
        )
        await self._notify(record)
        return record

    def _record(
        self,
        sender: Account,
        recipient: Account,
        amount: Decimal,
        channel: Channel,
        status: TransactionStatus,
    ) -> TransactionRecord:
        return TransactionRecord(
            id=str(uuid.uuid4()),
            sender_id=sender.id,
            recipient_id=recipient.id,
            amount=amount,
            channel=channel,
            status=status,
            created_at=self.clock(),
            description=describe(channel, recipient.username),
            sender_name=sender.username,
            recipient_name=recipient.username,
        )

    async def _record_failure(self, sender_id: str, recipient_id: str, amount: Decimal, channel: Channel) -> None:
        try:
            sender = await self.store.get_account(sender_id)
            recipient = await self.store.get_account(recipient_id)
            if sender is None or recipient is None:
                return
            record = self._record(sender, recipient, amount, channel, TransactionStatus.FAILED)
            await self.store.append_record(record)
            logger.info("Recorded FAILED transaction txn=%s", record.id)
            await self._notify(record)
        except Exception as e:
            logger.exception("Could not record FAILED transaction sender=%s: %s", sender_id, e)

    async def _notify(self, record: TransactionRecord) -> None:
        for listener in self._listeners:
            try:
                await listener(record)
            except Exception:
                logger.exception("Settlement listener failed for txn=%s", record.id)
