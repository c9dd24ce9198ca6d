"""
Verification Gate
Decides the step-up a transfer needs and manages the OTP lifecycle
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from .domain import Channel, StepUp, utcnow
from .errors import ChallengeExpired, ChallengeRejected, ContactRequired
from .logging_config import get_logger

logger = get_logger("trustport.verification")

OTP_MIN = 100000
OTP_MAX = 999999
PIN_LENGTH = 4

_rng = random.SystemRandom()


@dataclass
class OtpChallenge:
    code: str
    issued_at: datetime
    ttl_seconds: int = 300
    consumed: bool = False
    destination: Optional[str] = None

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class VerificationGate:
    def __init__(
        self,
        pin_threshold: Decimal = Decimal("500"),
        otp_threshold: Decimal = Decimal("5000"),
        otp_ttl_seconds: int = 300,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.pin_threshold = pin_threshold
        self.otp_threshold = otp_threshold
        self.otp_ttl_seconds = otp_ttl_seconds
        self.clock = clock

    def required_step(self, amount: Decimal, channel: Channel, contact: Optional[str] = None) -> StepUp:
        """
        BANK always needs an OTP and a contact destination. Wallet and QR
        transfers step up to OTP above the OTP threshold, to PIN above the
        PIN threshold, and settle immediately otherwise.
        """
        if channel == Channel.BANK:
            if not (contact or "").strip():
                raise ContactRequired()
            return StepUp.OTP
        if amount > self.otp_threshold:
            return StepUp.OTP
        if amount > self.pin_threshold:
            return StepUp.PIN
        return StepUp.NONE

    def issue_otp(self, destination: Optional[str] = None) -> OtpChallenge:
        code = str(_rng.randint(OTP_MIN, OTP_MAX))
        return OtpChallenge(
            code=code,
            issued_at=self.clock(),
            ttl_seconds=self.otp_ttl_seconds,
            destination=destination,
        )

    def seconds_remaining(self, challenge: OtpChallenge) -> int:
        remaining = (challenge.expires_at - self.clock()).total_seconds()
        return max(0, int(remaining))

    def check(self, submitted: str, challenge: OtpChallenge) -> None:
        """
        Raise ChallengeExpired / ChallengeRejected, or consume the challenge.
        """
        if challenge.consumed:
            raise ChallengeRejected("Verification code has already been used")
        if challenge.is_expired(self.clock()):
            challenge.consumed = True
            raise ChallengeExpired()
        if submitted != challenge.code:
            raise ChallengeRejected("The OTP you entered is incorrect")
        challenge.consumed = True

    def verify(self, submitted: str, challenge: OtpChallenge) -> bool:
        try:
            self.check(submitted, challenge)
        except (ChallengeExpired, ChallengeRejected) as e:
            logger.info("OTP verification failed: %s", e.code)
            return False
        return True

    def verify_pin(self, submitted: str) -> bool:
        """
        Demo-mode PIN policy: exactly four ASCII digits, no secret compare.
        """
        pin = submitted if isinstance(submitted, str) else ""
        return len(pin) == PIN_LENGTH and all(ch in "0123456789" for ch in pin)
