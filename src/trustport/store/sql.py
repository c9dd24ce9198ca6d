"""
SQLAlchemy-backed ledger store.

Balance mutations run inside one DB transaction with the touched account
rows locked FOR UPDATE (a no-op on SQLite, which locks the whole database).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker

from ..db import models
from ..domain import Account, Channel, TransactionRecord, TransactionStatus, utcnow
from ..errors import DuplicateAccount
from ..logging_config import get_logger
from .base import LedgerStore, LedgerUnitOfWork, check_lookup_field

logger = get_logger("trustport.store.sql")


def _to_account(row: models.Account) -> Account:
    return Account(
        id=row.account_id,
        username=row.username,
        wallet_id=row.wallet_id,
        balance=Decimal(row.balance if row.balance is not None else 0).quantize(Decimal("0.01")),
        account_number=row.account_number,
        phone_number=row.phone_number,
        email=row.email,
        created_at=row.created_at,
    )


def _to_record(row: models.Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=row.transaction_id,
        sender_id=row.sender_id,
        recipient_id=row.recipient_id,
        amount=Decimal(row.amount).quantize(Decimal("0.01")),
        channel=Channel(row.channel),
        status=TransactionStatus(row.status),
        created_at=row.created_at,
        description=row.description or "",
        sender_name=row.sender_name or "",
        recipient_name=row.recipient_name or "",
    )


def _record_row(record: TransactionRecord) -> models.Transaction:
    return models.Transaction(
        transaction_id=record.id,
        sender_id=record.sender_id,
        recipient_id=record.recipient_id,
        sender_name=record.sender_name,
        recipient_name=record.recipient_name,
        amount=record.amount,
        channel=record.channel.value,
        status=record.status.value,
        description=record.description,
        created_at=record.created_at,
    )


class _SqlUnitOfWork(LedgerUnitOfWork):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_account(self, account_id: str) -> Optional[Account]:
        stmt = (
            select(models.Account)
            .where(models.Account.account_id == account_id)
            .with_for_update()
        )
        res = await self.session.execute(stmt)
        row = res.scalars().first()
        return _to_account(row) if row else None

    async def set_balance(self, account_id: str, balance: Decimal) -> None:
        await self.session.execute(
            update(models.Account)
            .where(models.Account.account_id == account_id)
            .values(balance=balance, updated_at=utcnow())
        )

    async def add_record(self, record: TransactionRecord) -> None:
        self.session.add(_record_row(record))


class SqlLedgerStore(LedgerStore):
    def __init__(self, engine: AsyncEngine, session_factory: sessionmaker):
        self.engine = engine
        self.session_factory = session_factory

    async def get_account(self, account_id: str) -> Optional[Account]:
        async with self.session_factory() as db:
            stmt = select(models.Account).where(models.Account.account_id == account_id)
            res = await db.execute(stmt)
            row = res.scalars().first()
            return _to_account(row) if row else None

    async def find_account(self, field: str, value: str) -> Optional[Account]:
        check_lookup_field(field)
        async with self.session_factory() as db:
            stmt = select(models.Account).where(getattr(models.Account, field) == value)
            res = await db.execute(stmt)
            row = res.scalars().first()
            return _to_account(row) if row else None

    async def list_accounts(self) -> List[Account]:
        async with self.session_factory() as db:
            res = await db.execute(select(models.Account).order_by(models.Account.created_at))
            return [_to_account(r) for r in res.scalars().all()]

    async def add_account(self, account: Account) -> Account:
        now = utcnow()
        row = models.Account(
            account_id=account.id,
            username=account.username,
            email=account.email,
            wallet_id=account.wallet_id,
            account_number=account.account_number,
            phone_number=account.phone_number,
            balance=account.balance,
            created_at=account.created_at or now,
            updated_at=now,
        )
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    db.add(row)
        except IntegrityError as e:
            logger.warning("Account insert rejected username=%s: %s", account.username, e)
            raise DuplicateAccount("Account already exists")
        return _to_account(row)

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[LedgerUnitOfWork]:
        async with self.session_factory() as db:
            async with db.begin():
                yield _SqlUnitOfWork(db)

    async def append_record(self, record: TransactionRecord) -> None:
        async with self.session_factory() as db:
            async with db.begin():
                db.add(_record_row(record))

    async def records_for(self, account_id: str) -> List[TransactionRecord]:
        async with self.session_factory() as db:
            stmt = (
                select(models.Transaction)
                .where(
                    or_(
                        models.Transaction.sender_id == account_id,
                        models.Transaction.recipient_id == account_id,
                    )
                )
                .order_by(
                    models.Transaction.created_at.desc(),
                    models.Transaction.transaction_id.desc(),
                )
            )
            res = await db.execute(stmt)
            return [_to_record(r) for r in res.scalars().all()]

    async def close(self) -> None:
        try:
            await self.engine.dispose()
        except Exception:
            logger.exception("Error disposing engine on shutdown")
