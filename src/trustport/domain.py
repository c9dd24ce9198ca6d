"""
Domain types shared across the transfer engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from .errors import InvalidAmount, InvalidChannel

CENT = Decimal("0.01")


class Channel(str, Enum):
    WALLET = "wallet"
    QR = "qr"
    BANK = "bank"


class StepUp(str, Enum):
    NONE = "none"
    PIN = "pin"
    OTP = "otp"


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class AttemptState(str, Enum):
    INITIATED = "initiated"
    RESOLVING_RECIPIENT = "resolving_recipient"
    CHECKING_AMOUNT = "checking_amount"
    DETERMINING_STEP_UP = "determining_step_up"
    AWAITING_PIN = "awaiting_pin"
    AWAITING_OTP = "awaiting_otp"
    SETTLING = "settling"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AttemptState.COMPLETED, AttemptState.FAILED)


@dataclass
class Account:
    id: str
    username: str
    wallet_id: str
    balance: Decimal
    account_number: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class TransferRequest:
    recipient: str
    amount: Decimal
    channel: Channel
    contact: Optional[str] = None


@dataclass(frozen=True)
class TransactionRecord:
    id: str
    sender_id: str
    recipient_id: str
    amount: Decimal
    channel: Channel
    status: TransactionStatus
    created_at: datetime
    description: str = ""
    sender_name: str = ""
    recipient_name: str = ""


@dataclass(frozen=True)
class DeliveryResult:
    delivered: bool
    reason: Optional[str] = None

    @property
    def status(self) -> str:
        return "delivered" if self.delivered else "failed"


def parse_amount(value: Any) -> Decimal:
    """
    Coerce caller input (str, int, float, Decimal) into a positive currency
    amount with at most two decimal places.
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount("Please enter a valid amount")
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float)):
            amount = Decimal(str(value))
        elif isinstance(value, str) and value.strip():
            amount = Decimal(value.strip())
        else:
            raise InvalidAmount("Please enter a valid amount")

        if not amount.is_finite():
            raise InvalidAmount("Please enter a valid amount")
        if amount <= 0:
            raise InvalidAmount()
        if amount != amount.quantize(CENT):
            raise InvalidAmount("Amount cannot have more than 2 decimal places")
        return amount.quantize(CENT)
    except InvalidOperation:
        raise InvalidAmount("Please enter a valid amount")


def parse_channel(value: Any) -> Channel:
    if isinstance(value, Channel):
        return value
    try:
        return Channel(str(value).strip().lower())
    except ValueError:
        raise InvalidChannel(f"Unknown transfer channel: {value!r}")


def utcnow() -> datetime:
    """
    Naive UTC timestamp; the SQL columns store naive datetimes.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
