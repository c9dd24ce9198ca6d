from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, Field

from ..domain import Channel


class AccountCreate(BaseModel):
    username: str
    email: Optional[str] = None
    account_number: Optional[str] = None
    phone_number: Optional[str] = None


class AccountOut(BaseModel):
    account_id: str
    username: str
    wallet_id: str
    account_number: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    balance: float
    created_at: Optional[str] = None


class SuggestionOut(BaseModel):
    account_id: str
    username: str
    wallet_id: str
    account_number: Optional[str] = None


class TransactionOut(BaseModel):
    transaction_id: str
    sender_id: str
    recipient_id: str
    sender_name: str
    recipient_name: str
    counterparty: str
    direction: str  # 'debit' | 'credit'
    amount: float
    channel: Channel
    status: str
    description: Optional[str] = None
    created_at: Optional[str] = None


class TransferIn(BaseModel):
    sender_id: str
    recipient: str = Field(..., examples=["wallet_1712345678901"])
    # validated by parse_amount
    amount: Union[Decimal, str, float] = Field(..., examples=["300.00"])
    channel: Channel = Channel.WALLET
    contact: Optional[str] = None


class PinIn(BaseModel):
    pin: str


class OtpIn(BaseModel):
    code: str
