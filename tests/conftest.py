"""
Shared fixtures for the transfer engine tests.
"""

import re
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from trustport.config import Settings
from trustport.container import build_services
from trustport.domain import Account
from trustport.notifier import MockSmsNotifier
from trustport.store.memory import MemoryLedgerStore


class FakeClock:
    """Callable clock the tests move forward by hand."""

    def __init__(self, start=datetime(2024, 5, 10, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


def make_account(username, balance="1000.00", account_number=None, phone_number=None):
    return Account(
        id=str(uuid.uuid4()),
        username=username,
        wallet_id=f"wallet_{username}",
        balance=Decimal(balance),
        account_number=account_number,
        phone_number=phone_number,
        email=f"{username}@example.com",
    )


def sent_code(notifier):
    """Pull the six-digit code out of the last SMS the mock sent."""
    _, message = notifier.sent[-1]
    return re.search(r"\b(\d{6})\b", message).group(1)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def store():
    return MemoryLedgerStore()


@pytest.fixture
def notifier():
    return MockSmsNotifier()


@pytest.fixture
def services(settings, store, notifier, clock):
    return build_services(settings, store, notifier=notifier, clock=clock)


@pytest_asyncio.fixture
async def alice(store):
    return await store.add_account(make_account("alice", "1000.00", account_number="ACC000111", phone_number="9876543210"))


@pytest_asyncio.fixture
async def bob(store):
    return await store.add_account(make_account("bob", "250.00", account_number="ACC000123", phone_number="9123456780"))


@pytest_asyncio.fixture
async def carol(store):
    """Funded account without a phone number."""
    return await store.add_account(make_account("carol", "10000.00"))


async def balance_of(store, account_id):
    account = await store.get_account(account_id)
    return account.balance
