"""
Wires the engine components together from Settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from .config import Settings
from .directory import Directory
from .domain import utcnow
from .history import TransactionHistory
from .logging_config import get_logger
from .notifier import SmsNotifier, build_notifier
from .settlement import SettlementEngine
from .store.base import LedgerStore
from .store.memory import MemoryLedgerStore
from .transfers import TransferService
from .verification import VerificationGate

logger = get_logger("trustport.container")


@dataclass
class Services:
    store: LedgerStore
    notifier: SmsNotifier
    directory: Directory
    gate: VerificationGate
    settlement: SettlementEngine
    history: TransactionHistory
    transfers: TransferService

    async def close(self) -> None:
        await self.notifier.aclose()
        await self.store.close()


def build_services(
    settings: Settings,
    store: LedgerStore,
    notifier: SmsNotifier = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    notifier = notifier or build_notifier(settings)
    directory = Directory(store, initial_balance=settings.initial_balance)
    gate = VerificationGate(
        pin_threshold=settings.pin_threshold,
        otp_threshold=settings.otp_threshold,
        otp_ttl_seconds=settings.otp_ttl_seconds,
        clock=clock,
    )
    settlement = SettlementEngine(store, clock=clock)
    history = TransactionHistory(store, clock=clock)
    settlement.add_listener(history.refresh)
    transfers = TransferService(directory, gate, notifier, settlement, clock=clock)
    return Services(
        store=store,
        notifier=notifier,
        directory=directory,
        gate=gate,
        settlement=settlement,
        history=history,
        transfers=transfers,
    )


async def build_store(settings: Settings) -> LedgerStore:
    if settings.store_backend == "sql":
        from .db.session import create_engine_and_sessionmaker, init_models
        from .store.sql import SqlLedgerStore

        engine, session_factory = create_engine_and_sessionmaker(settings.database_url)
        await init_models(engine)
        logger.info("Using SQL ledger store: %s", settings.database_url)
        return SqlLedgerStore(engine, session_factory)

    logger.info("Using in-memory ledger store")
    return MemoryLedgerStore()
