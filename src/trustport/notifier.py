"""
Notifier Adapter
Delivers one-time passcodes by SMS and reports the delivery outcome
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from .domain import DeliveryResult
from .logging_config import get_logger

logger = get_logger("trustport.notifier")

OTP_MESSAGE_TEMPLATE = "Your verification code is: {code}. Do not share this code with anyone."


def otp_message(code: str) -> str:
    return OTP_MESSAGE_TEMPLATE.format(code=code)


def normalize_phone(phone: Optional[str]) -> str:
    """
    E.164-ish normalisation for Indian numbers: 10 digits get +91,
    12 digits starting with 91 get a plus, anything else just a plus.
    """
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        return ""
    if digits.startswith("91") and len(digits) == 12:
        return "+" + digits
    if len(digits) == 10:
        return "+91" + digits
    return "+" + digits


def _mask(phone: str) -> str:
    return f"***{phone[-4:]}" if phone else "?"


class SmsNotifier(ABC):
    @abstractmethod
    async def send(self, destination: str, message: str) -> DeliveryResult:
        """Deliver a message; never raises for delivery problems."""

    async def aclose(self) -> None:
        return None


class MockSmsNotifier(SmsNotifier):
    """
    Mock SMS provider for development/testing
    """

    def __init__(self, fail: bool = False, reason: str = "Mock SMS provider configured to fail"):
        self.fail = fail
        self.reason = reason
        self.sent = []

    async def send(self, destination: str, message: str) -> DeliveryResult:
        if self.fail:
            logger.warning("[MOCK SMS] Delivery to %s failed: %s", _mask(destination), self.reason)
            return DeliveryResult(delivered=False, reason=self.reason)
        # In production, this would call actual SMS gateway
        logger.info("[MOCK SMS] Sending to %s: %s", _mask(destination), message)
        self.sent.append((destination, message))
        return DeliveryResult(delivered=True)


class InfobipSmsNotifier(SmsNotifier):
    """
    Infobip "advanced text" SMS gateway.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "api.infobip.com",
        sender: str = "TrustPort",
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        base = base_url.rstrip("/")
        self.base_url = base if base.startswith("http") else f"https://{base}"
        self.sender = sender
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _payload(self, phone: str, message: str) -> Dict[str, Any]:
        return {
            "messages": [
                {
                    "destinations": [{"to": phone}],
                    "from": self.sender,
                    "text": message,
                }
            ]
        }

    async def send(self, destination: str, message: str) -> DeliveryResult:
        if not self.api_key:
            logger.error("SMS service configuration error: INFOBIP_API_KEY not set")
            return DeliveryResult(delivered=False, reason="SMS service configuration error")

        phone = normalize_phone(destination)
        if not phone:
            return DeliveryResult(delivered=False, reason="Invalid phone number")

        url = f"{self.base_url}/sms/2/text/advanced"
        headers = {
            "Authorization": f"App {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            response = await self.client.post(url, json=self._payload(phone, message), headers=headers)
        except httpx.HTTPError as exc:
            logger.exception("SMS request to %s failed: %s", _mask(phone), exc)
            return DeliveryResult(delivered=False, reason="SMS gateway unreachable")

        if response.is_success:
            logger.info("SMS sent to %s (status=%s)", _mask(phone), response.status_code)
            return DeliveryResult(delivered=True)

        reason = self._error_text(response)
        logger.error("Infobip API error status=%s for %s: %s", response.status_code, _mask(phone), reason)
        return DeliveryResult(delivered=False, reason=reason)

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return "Failed to send SMS"
        if not isinstance(data, dict):
            return "Failed to send SMS"
        service_exc = (data.get("requestError") or {}).get("serviceException") or {}
        return service_exc.get("text") or "Failed to send SMS"

    async def aclose(self) -> None:
        await self.client.aclose()


def build_notifier(settings) -> SmsNotifier:
    """
    Infobip when a key is configured, otherwise the mock provider.
    """
    if settings.infobip_api_key:
        return InfobipSmsNotifier(
            api_key=settings.infobip_api_key,
            base_url=settings.infobip_base_url,
            sender=settings.sms_sender,
            timeout=settings.sms_timeout_seconds,
        )
    logger.warning("INFOBIP_API_KEY not set; using mock SMS provider")
    return MockSmsNotifier()
