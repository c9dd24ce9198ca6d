"""
Configuration
Environment-driven settings for the transfer engine
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv(), override=False)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./trustport.db"


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    store_backend: str = "memory"  # 'memory' | 'sql'
    log_level: str = "INFO"

    # Step-up tiers
    pin_threshold: Decimal = Decimal("500")
    otp_threshold: Decimal = Decimal("5000")
    otp_ttl_seconds: int = 300

    # New accounts are funded with this amount
    initial_balance: Decimal = Decimal("1000.00")

    # SMS gateway
    infobip_api_key: Optional[str] = None
    infobip_base_url: str = "api.infobip.com"
    sms_sender: str = "TrustPort"
    sms_timeout_seconds: float = 8.0


def _env_decimal(name: str, default: str) -> Decimal:
    return Decimal(os.getenv(name, default).strip())


def get_settings() -> Settings:
    """
    Build settings from the current environment.
    """
    return Settings(
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        store_backend=os.getenv("STORE_BACKEND", "memory").strip().lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        pin_threshold=_env_decimal("PIN_THRESHOLD", "500"),
        otp_threshold=_env_decimal("OTP_THRESHOLD", "5000"),
        otp_ttl_seconds=int(os.getenv("OTP_TTL_SECONDS", "300")),
        initial_balance=_env_decimal("INITIAL_BALANCE", "1000.00"),
        infobip_api_key=os.getenv("INFOBIP_API_KEY") or None,
        infobip_base_url=os.getenv("INFOBIP_BASE_URL", "api.infobip.com"),
        sms_sender=os.getenv("SMS_SENDER", "TrustPort"),
        sms_timeout_seconds=float(os.getenv("SMS_TIMEOUT_SECONDS", "8")),
    )
