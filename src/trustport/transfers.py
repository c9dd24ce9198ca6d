"""
Transfer Service
Drives one transfer attempt through resolution, step-up and settlement.

Every public method returns a TransferResult; business failures never
escape as exceptions. Attempts waiting for a PIN or OTP stay in the
registry until a verification result, a cancellation or expiry arrives.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from .directory import Directory
from .domain import (
    Account,
    AttemptState,
    Channel,
    DeliveryResult,
    StepUp,
    TransactionRecord,
    TransferRequest,
    parse_amount,
    parse_channel,
    utcnow,
)
from .errors import (
    AttemptExpired,
    AttemptNotFound,
    ChallengeExpired,
    ChallengeRejected,
    ContactRequired,
    DeliveryFailed,
    InsufficientFunds,
    InvalidState,
    SelfTransferNotAllowed,
    StoreUnavailable,
    TransferCancelled,
    TransferError,
)
from .logging_config import get_logger
from .notifier import SmsNotifier, otp_message
from .settlement import SettlementEngine
from .verification import OtpChallenge, VerificationGate

logger = get_logger("trustport.transfers")

# finished attempts are kept around this long for status queries
ATTEMPT_RETENTION = timedelta(hours=1)
SUSPENDED_STATES = (AttemptState.AWAITING_PIN, AttemptState.AWAITING_OTP)


class TransferResult(BaseModel):
    success: bool
    message: str
    state: Optional[AttemptState] = None
    attempt_id: Optional[str] = None
    error: Optional[str] = None
    requires_pin: bool = False
    requires_otp: bool = False
    otp_delivery_status: Optional[str] = None  # 'delivered' | 'failed'
    otp_expires_in: Optional[int] = None
    # Shown on screen only when SMS delivery failed (degraded mode)
    fallback_code: Optional[str] = None
    transaction_id: Optional[str] = None


@dataclass
class TransferAttempt:
    id: str
    sender_id: str
    recipient_token: str
    raw_amount: Any
    channel: Channel
    contact: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    state: AttemptState = AttemptState.INITIATED
    request: Optional[TransferRequest] = None
    recipient: Optional[Account] = None
    step_up: Optional[StepUp] = None
    challenge: Optional[OtpChallenge] = None
    delivery: Optional[DeliveryResult] = None
    record: Optional[TransactionRecord] = None
    error: Optional[TransferError] = None
    updated_at: Optional[datetime] = None
    trail: List[AttemptState] = field(default_factory=list)

    def transition(self, state: AttemptState, now: Optional[datetime] = None) -> None:
        if self.state.is_terminal:
            raise InvalidState(f"Attempt {self.id} is already {self.state.value}")
        self.trail.append(self.state)
        self.state = state
        self.updated_at = now or utcnow()


class TransferService:
    def __init__(
        self,
        directory: Directory,
        gate: VerificationGate,
        notifier: SmsNotifier,
        settlement: SettlementEngine,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.directory = directory
        self.gate = gate
        self.notifier = notifier
        self.settlement = settlement
        self.clock = clock
        self._attempts: Dict[str, TransferAttempt] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    async def start(
        self,
        sender_id: str,
        recipient: str,
        amount: Any,
        channel: Any,
        contact: Optional[str] = None,
    ) -> TransferResult:
        self._prune()
        try:
            channel = parse_channel(channel)
        except TransferError as e:
            return self._error_result(e)

        attempt = TransferAttempt(
            id=str(uuid.uuid4()),
            sender_id=sender_id,
            recipient_token=recipient,
            raw_amount=amount,
            channel=channel,
            contact=(contact or "").strip() or None,
            created_at=self.clock(),
        )
        self._attempts[attempt.id] = attempt
        logger.info(
            "Transfer attempt %s started sender=%s recipient=%r amount=%s channel=%s",
            attempt.id,
            sender_id,
            recipient,
            amount,
            channel.value,
        )

        try:
            sender = await self.directory.get(sender_id)

            self._move(attempt, AttemptState.RESOLVING_RECIPIENT)
            attempt.recipient = await self.directory.resolve(recipient, channel)
            if attempt.recipient.id == sender.id:
                raise SelfTransferNotAllowed()

            self._move(attempt, AttemptState.CHECKING_AMOUNT)
            value = parse_amount(amount)
            if value > sender.balance:
                raise InsufficientFunds()

            # BANK uses the number typed into the form; wallet/QR OTPs go to
            # the sender's registered phone unless an override was given.
            destination = attempt.contact
            if channel != Channel.BANK:
                destination = destination or sender.phone_number
            attempt.request = TransferRequest(
                recipient=recipient,
                amount=value,
                channel=channel,
                contact=destination,
            )

            self._move(attempt, AttemptState.DETERMINING_STEP_UP)
            attempt.step_up = self.gate.required_step(value, channel, attempt.contact)
            if attempt.step_up == StepUp.OTP and not destination:
                raise ContactRequired()
        except TransferError as e:
            return self._fail(attempt, e)
        except SQLAlchemyError as e:
            logger.exception("Account lookup failed for attempt %s (DB error): %s", attempt.id, e)
            return self._fail(attempt, StoreUnavailable())

        if attempt.step_up == StepUp.PIN:
            self._move(attempt, AttemptState.AWAITING_PIN)
            return self._result(attempt, True, "PIN verification required", requires_pin=True)
        if attempt.step_up == StepUp.OTP:
            self._move(attempt, AttemptState.AWAITING_OTP)
            return await self._send_challenge(attempt)
        return await self._settle(attempt)

    async def submit_pin(self, attempt_id: str, pin: str) -> TransferResult:
        try:
            attempt = self._awaiting(attempt_id, AttemptState.AWAITING_PIN)
        except TransferError as e:
            return self._error_result(e, attempt_id)

        if not self.gate.verify_pin(pin):
            return self._fail(attempt, ChallengeRejected("Please enter a 4-digit PIN"))
        logger.info("PIN accepted for attempt %s", attempt_id)
        return await self._settle(attempt)

    async def submit_otp(self, attempt_id: str, code: str) -> TransferResult:
        try:
            attempt = self._awaiting(attempt_id, AttemptState.AWAITING_OTP)
        except TransferError as e:
            return self._error_result(e, attempt_id)

        try:
            self.gate.check(code, attempt.challenge)
        except (ChallengeExpired, ChallengeRejected) as e:
            return self._fail(attempt, e)
        logger.info("OTP verified for attempt %s", attempt_id)
        return await self._settle(attempt)

    async def resend_otp(self, attempt_id: str) -> TransferResult:
        try:
            attempt = self._awaiting(attempt_id, AttemptState.AWAITING_OTP)
        except TransferError as e:
            return self._error_result(e, attempt_id)
        if attempt.challenge.is_expired(self.clock()):
            attempt.challenge.consumed = True
            return self._fail(attempt, ChallengeExpired())
        return await self._send_challenge(attempt)

    async def cancel(self, attempt_id: str) -> TransferResult:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            return self._error_result(AttemptNotFound(), attempt_id)
        if attempt.state.is_terminal:
            return self._error_result(InvalidState(), attempt_id, attempt)
        if attempt.state == AttemptState.SETTLING:
            return self._error_result(InvalidState("Transfer is already being settled"), attempt_id, attempt)
        return self._fail(attempt, TransferCancelled())

    async def status(self, attempt_id: str) -> TransferResult:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            return self._error_result(AttemptNotFound(), attempt_id)

        if attempt.state == AttemptState.AWAITING_OTP and attempt.challenge.is_expired(self.clock()):
            attempt.challenge.consumed = True
            return self._fail(attempt, ChallengeExpired())

        if attempt.state == AttemptState.COMPLETED:
            return self._completed_result(attempt)
        if attempt.state == AttemptState.FAILED:
            return self._result(attempt, False, attempt.error.message if attempt.error else "Transfer failed")
        if attempt.state == AttemptState.AWAITING_PIN:
            return self._result(attempt, True, "PIN verification required", requires_pin=True)
        if attempt.state == AttemptState.AWAITING_OTP:
            return self._otp_result(attempt, "Waiting for OTP")
        return self._result(attempt, True, "Transfer in progress")

    def get_attempt(self, attempt_id: str) -> Optional[TransferAttempt]:
        return self._attempts.get(attempt_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _move(self, attempt: TransferAttempt, state: AttemptState) -> None:
        attempt.transition(state, self.clock())

    def _awaiting(self, attempt_id: str, state: AttemptState) -> TransferAttempt:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFound()
        if attempt.state != state:
            raise InvalidState(f"Transfer is {attempt.state.value}, not {state.value}")
        return attempt

    async def _send_challenge(self, attempt: TransferAttempt) -> TransferResult:
        if attempt.challenge is not None:
            # a fresh code always replaces the previous one
            attempt.challenge.consumed = True
        destination = attempt.request.contact
        attempt.challenge = self.gate.issue_otp(destination=destination)

        try:
            attempt.delivery = await self.notifier.send(destination, otp_message(attempt.challenge.code))
        except Exception as exc:  # pragma: no cover - notifiers report failures, not raise
            logger.exception("Notifier raised for attempt %s: %s", attempt.id, exc)
            attempt.delivery = DeliveryResult(delivered=False, reason=DeliveryFailed.default_message)

        if attempt.delivery.delivered:
            logger.info("OTP challenge issued for attempt %s (delivered)", attempt.id)
            return self._otp_result(attempt, "OTP sent for verification")

        logger.warning(
            "OTP delivery failed for attempt %s (%s); falling back to on-screen code",
            attempt.id,
            attempt.delivery.reason,
        )
        return self._otp_result(attempt, "SMS service unavailable - using demo mode")

    async def _settle(self, attempt: TransferAttempt) -> TransferResult:
        self._move(attempt, AttemptState.SETTLING)
        try:
            attempt.record = await self.settlement.commit(
                attempt.sender_id,
                attempt.recipient.id,
                attempt.request.amount,
                attempt.channel,
            )
        except TransferError as e:
            return self._fail(attempt, e)
        self._move(attempt, AttemptState.COMPLETED)
        logger.info("Transfer attempt %s completed txn=%s", attempt.id, attempt.record.id)
        return self._completed_result(attempt)

    def _fail(self, attempt: TransferAttempt, error: TransferError) -> TransferResult:
        attempt.error = error
        self._move(attempt, AttemptState.FAILED)
        logger.info("Transfer attempt %s failed: %s (%s)", attempt.id, error.code, error.message)
        return self._result(attempt, False, error.message)

    def _prune(self) -> None:
        """
        Fail suspended attempts nobody came back to, and forget finished
        attempts whose last transition is older than ATTEMPT_RETENTION.
        """
        now = self.clock()
        cutoff = now - ATTEMPT_RETENTION
        for attempt_id, attempt in list(self._attempts.items()):
            last_seen = attempt.updated_at or attempt.created_at
            if (
                attempt.state == AttemptState.AWAITING_OTP
                and attempt.challenge is not None
                and attempt.challenge.is_expired(now)
            ):
                attempt.challenge.consumed = True
                self._fail(attempt, ChallengeExpired())
            elif attempt.state in SUSPENDED_STATES and last_seen < cutoff:
                self._fail(attempt, AttemptExpired())

            if attempt.state.is_terminal and last_seen < cutoff:
                self._attempts.pop(attempt_id, None)

    def _result(self, attempt: TransferAttempt, success: bool, message: str, **extra) -> TransferResult:
        return TransferResult(
            success=success,
            message=message,
            state=attempt.state,
            attempt_id=attempt.id,
            error=attempt.error.code if attempt.error else None,
            **extra,
        )

    def _otp_result(self, attempt: TransferAttempt, message: str) -> TransferResult:
        delivery = attempt.delivery
        return self._result(
            attempt,
            True,
            message,
            requires_otp=True,
            otp_delivery_status=delivery.status if delivery else None,
            otp_expires_in=self.gate.seconds_remaining(attempt.challenge),
            fallback_code=attempt.challenge.code if delivery and not delivery.delivered else None,
        )

    def _completed_result(self, attempt: TransferAttempt) -> TransferResult:
        return self._result(
            attempt,
            True,
            "Transaction completed successfully",
            transaction_id=attempt.record.id,
        )

    @staticmethod
    def _error_result(
        error: TransferError,
        attempt_id: Optional[str] = None,
        attempt: Optional[TransferAttempt] = None,
    ) -> TransferResult:
        return TransferResult(
            success=False,
            message=error.message,
            state=attempt.state if attempt else None,
            attempt_id=attempt_id,
            error=error.code,
        )
