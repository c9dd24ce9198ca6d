"""
Directory
Resolves recipient tokens to accounts and registers new accounts
"""

from __future__ import annotations

import random
import string
import time
import uuid
from decimal import Decimal
from typing import List, Optional

from .domain import Account, Channel, utcnow
from .errors import AccountNotFound, DuplicateAccount, RecipientNotFound
from .logging_config import get_logger
from .store.base import LedgerStore

logger = get_logger("trustport.directory")

# lookup order for wallet / QR tokens
WALLET_LOOKUP_ORDER = ("username", "wallet_id", "account_number")
IDENTIFIER_FIELDS = ("username", "wallet_id", "account_number")


class Directory:
    def __init__(self, store: LedgerStore, initial_balance: Decimal = Decimal("1000.00")):
        self.store = store
        self.initial_balance = initial_balance

    async def get(self, account_id: str) -> Account:
        account = await self.store.get_account(account_id)
        if account is None:
            raise AccountNotFound(f"Account {account_id} not found")
        return account

    async def resolve(self, token: str, channel: Channel) -> Account:
        """
        BANK tokens match the account number only. Wallet and QR tokens try
        username, then wallet id, then account number.
        """
        clean = str(token or "").strip()
        if not clean:
            raise RecipientNotFound(self._not_found_message(channel))

        if channel == Channel.BANK:
            account = await self.store.find_account("account_number", clean)
        else:
            account = None
            for field in WALLET_LOOKUP_ORDER:
                account = await self.store.find_account(field, clean)
                if account is not None:
                    break

        if account is None:
            logger.info("Recipient not found token=%r channel=%s", clean, channel.value)
            raise RecipientNotFound(self._not_found_message(channel))

        logger.info("Resolved recipient token=%r channel=%s -> %s", clean, channel.value, account.id)
        return account

    async def suggest(self, query: str, exclude_id: Optional[str] = None, limit: int = 5) -> List[Account]:
        """
        Autocomplete candidates for the recipient field.
        """
        needle = (query or "").strip()
        if not needle:
            return []
        lowered = needle.lower()
        matches = []
        for account in await self.store.list_accounts():
            if exclude_id and account.id == exclude_id:
                continue
            if (
                lowered in (account.username or "").lower()
                or lowered in (account.wallet_id or "").lower()
                or (account.account_number and needle in account.account_number)
            ):
                matches.append(account)
            if len(matches) >= limit:
                break
        return matches

    async def register(
        self,
        username: str,
        email: Optional[str] = None,
        account_number: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> Account:
        username = (username or "").strip()
        if not username:
            raise ValueError("Username is required")
        email = (email or "").strip() or None
        account_number = (account_number or "").strip() or None
        phone_number = (phone_number or "").strip() or None

        # Identifiers must not collide with any identifier of another account,
        # otherwise a wallet lookup could match two people.
        for value in (username, account_number):
            if value and await self._identifier_taken(value):
                raise DuplicateAccount(f"{value} is already in use")
        if email and await self.store.find_account("email", email):
            raise DuplicateAccount("Email already exists")

        wallet_id = await self._new_wallet_id()
        account = Account(
            id=str(uuid.uuid4()),
            username=username,
            wallet_id=wallet_id,
            balance=self.initial_balance,
            account_number=account_number,
            phone_number=phone_number,
            email=email,
            created_at=utcnow(),
        )
        account = await self.store.add_account(account)
        logger.info("Registered account id=%s username=%s wallet_id=%s", account.id, username, wallet_id)
        return account

    async def _identifier_taken(self, value: str) -> bool:
        for field in IDENTIFIER_FIELDS:
            if await self.store.find_account(field, value):
                return True
        return False

    async def _new_wallet_id(self) -> str:
        wallet_id = f"wallet_{int(time.time() * 1000)}"
        while await self._identifier_taken(wallet_id):
            suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=4))
            wallet_id = f"wallet_{int(time.time() * 1000)}_{suffix}"
        return wallet_id

    @staticmethod
    def _not_found_message(channel: Channel) -> str:
        what = "account number" if channel == Channel.BANK else "username/wallet ID"
        return f"Recipient not found. Please check the {what}."
