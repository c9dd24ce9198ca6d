from sqlalchemy import Column, String, TIMESTAMP, DECIMAL, ForeignKey, Index

from .session import Base


class Account(Base):
    __tablename__ = "accounts"

    account_id = Column(String(36), primary_key=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    wallet_id = Column(String(64), unique=True, nullable=False)
    # External bank account number; optional for wallet-only users
    account_number = Column(String(34), unique=True, nullable=True)
    phone_number = Column(String(20), nullable=True)
    balance = Column(DECIMAL(15, 2), nullable=False)
    created_at = Column(TIMESTAMP)
    updated_at = Column(TIMESTAMP)


class Transaction(Base):
    __tablename__ = "transactions"

    transaction_id = Column(String(36), primary_key=True)
    sender_id = Column(String(36), ForeignKey("accounts.account_id"), nullable=False)
    recipient_id = Column(String(36), ForeignKey("accounts.account_id"), nullable=False)
    sender_name = Column(String(50))
    recipient_name = Column(String(50))
    amount = Column(DECIMAL(15, 2), nullable=False)
    channel = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False)
    description = Column(String)
    created_at = Column(TIMESTAMP, nullable=False)

    __table_args__ = (
        Index("ix_transactions_sender_created", "sender_id", "created_at"),
        Index("ix_transactions_recipient_created", "recipient_id", "created_at"),
    )
