from typing import Any, Dict

from ..domain import Account, TransactionRecord
from ..history import counterparty_name, direction


def serialize_account(a: Account) -> Dict[str, Any]:
    return {
        "account_id": a.id,
        "username": a.username,
        "wallet_id": a.wallet_id,
        "account_number": a.account_number,
        "phone_number": a.phone_number,
        "email": a.email,
        "balance": float(a.balance) if a.balance is not None else 0.0,
        "created_at": a.created_at.isoformat() if a.created_at else None,
    }


def serialize_suggestion(a: Account) -> Dict[str, Any]:
    return {
        "account_id": a.id,
        "username": a.username,
        "wallet_id": a.wallet_id,
        "account_number": a.account_number,
    }


def serialize_tx(t: TransactionRecord, account_id: str) -> Dict[str, Any]:
    return {
        "transaction_id": t.id,
        "sender_id": t.sender_id,
        "recipient_id": t.recipient_id,
        "sender_name": t.sender_name,
        "recipient_name": t.recipient_name,
        "counterparty": counterparty_name(t, account_id),
        "direction": direction(t, account_id),
        "amount": float(t.amount),
        "channel": t.channel.value,
        "status": t.status.value,
        "description": t.description,
        "created_at": t.created_at.isoformat() if t.created_at else None,
    }
