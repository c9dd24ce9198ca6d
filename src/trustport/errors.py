"""
Transfer error taxonomy.

Components raise these internally; TransferService turns them into typed
results so callers never see an exception for a business failure.
"""

from typing import Optional


class TransferError(Exception):
    code = "transfer_error"
    default_message = "Transfer failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AccountNotFound(TransferError):
    code = "account_not_found"
    default_message = "Account not found"


class RecipientNotFound(AccountNotFound):
    code = "recipient_not_found"
    default_message = "Recipient not found"


class SelfTransferNotAllowed(TransferError):
    code = "self_transfer_not_allowed"
    default_message = "You cannot send money to yourself"


class InvalidAmount(TransferError):
    code = "invalid_amount"
    default_message = "Amount must be greater than 0"


class InsufficientFunds(TransferError):
    code = "insufficient_funds"
    default_message = "Insufficient funds"


class ContactRequired(TransferError):
    code = "contact_required"
    default_message = "Phone number required for verification"


class ChallengeExpired(TransferError):
    code = "challenge_expired"
    default_message = "Verification code has expired"


class ChallengeRejected(TransferError):
    code = "challenge_rejected"
    default_message = "Verification failed"


class SettlementFailed(TransferError):
    code = "settlement_failed"
    default_message = "Transaction processing failed"


class DeliveryFailed(TransferError):
    """
    Never raised across the engine; carried as DeliveryResult.reason.
    """

    code = "delivery_failed"
    default_message = "SMS service unavailable"


class AttemptNotFound(TransferError):
    code = "attempt_not_found"
    default_message = "Transfer attempt not found"


class InvalidChannel(TransferError):
    code = "invalid_channel"
    default_message = "Unknown transfer channel"


class TransferCancelled(TransferError):
    code = "cancelled"
    default_message = "Transfer cancelled"


class InvalidState(TransferError):
    code = "invalid_state"
    default_message = "Transfer attempt cannot accept this action"


class DuplicateAccount(TransferError):
    code = "duplicate_account"
    default_message = "Account already exists"


class AttemptExpired(TransferError):
    code = "attempt_expired"
    default_message = "Transfer request timed out"


class StoreUnavailable(TransferError):
    code = "store_unavailable"
    default_message = "Account service temporarily unavailable"
