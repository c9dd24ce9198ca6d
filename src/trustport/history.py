"""
Transaction History
Read-side projection of the append-only transaction records
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from .domain import Channel, TransactionRecord, utcnow
from .logging_config import get_logger
from .store.base import LedgerStore

logger = get_logger("trustport.history")


class DateRange(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_7_DAYS = "week"
    LAST_30_DAYS = "month"


def in_range(created_at: datetime, date_range: DateRange, now: datetime) -> bool:
    today = datetime(now.year, now.month, now.day)
    if date_range == DateRange.TODAY:
        return created_at >= today
    if date_range == DateRange.YESTERDAY:
        return today - timedelta(days=1) <= created_at < today
    if date_range == DateRange.LAST_7_DAYS:
        return created_at >= today - timedelta(days=7)
    if date_range == DateRange.LAST_30_DAYS:
        return created_at >= today - timedelta(days=30)
    return True


def counterparty_name(record: TransactionRecord, account_id: str) -> str:
    return record.recipient_name if record.sender_id == account_id else record.sender_name


def direction(record: TransactionRecord, account_id: str) -> str:
    return "debit" if record.sender_id == account_id else "credit"


class TransactionHistory:
    """
    Per-account views over the record store.

    Views are cached per account and dropped whenever a settlement touching
    that account is committed (see SettlementEngine.add_listener).
    """

    def __init__(self, store: LedgerStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock
        self._cache: Dict[str, List[TransactionRecord]] = {}

    async def refresh(self, record: TransactionRecord) -> None:
        self._cache.pop(record.sender_id, None)
        self._cache.pop(record.recipient_id, None)

    async def _records(self, account_id: str) -> List[TransactionRecord]:
        cached = self._cache.get(account_id)
        if cached is None:
            cached = await self.store.records_for(account_id)
            self._cache[account_id] = cached
        return cached

    async def list_for(
        self,
        account_id: str,
        channel: Optional[Channel] = None,
        search: Optional[str] = None,
        date_range: Optional[DateRange] = None,
        now: Optional[datetime] = None,
    ) -> List[TransactionRecord]:
        records = list(await self._records(account_id))

        if search:
            needle = search.strip().lower()
            records = [
                r for r in records
                if needle in counterparty_name(r, account_id).lower()
                or needle in (r.description or "").lower()
            ]
        if channel is not None:
            records = [r for r in records if r.channel == channel]
        if date_range is not None:
            now = now or self.clock()
            records = [r for r in records if in_range(r.created_at, date_range, now)]

        records.sort(key=lambda r: r.created_at, reverse=True)
        logger.debug("History for %s: %d records", account_id, len(records))
        return records
