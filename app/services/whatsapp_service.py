"""
WhatsApp Messaging Service

Two interchangeable providers for emergency-contact messages:
1. Twilio WhatsApp API (primary)
2. Meta WhatsApp Cloud API (secondary)

Both return a result dict {success, error, message_id, provider}. A provider
without credentials answers {"success": False, "error": "not configured"}
without touching the network. ``FallbackMessagingSender`` moves on to the
next provider only when the current one is not configured.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx

from app.core.config import settings
from app.models.emergency_alert import MessagingProvider
from app.utils.emergency_numbers import clean_phone

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "not configured"
MIN_PHONE_DIGITS = 10
MAX_BODY_LENGTH = 1600
_NON_DIGITS = re.compile(r"\D")


def mask_phone(phone: Optional[str]) -> str:
    digits = _NON_DIGITS.sub("", phone or "")
    if len(digits) < 4:
        return "***"
    return f"***{digits[-4:]}"


def to_e164(phone: Optional[str], default_country_code: Optional[str] = None) -> Optional[str]:
    """Normalize to +<digits>; local numbers get the default country code."""
    if not phone:
        return None
    raw = re.sub(r"[\s\-()]", "", phone)
    if raw.lower().startswith("whatsapp:"):
        raw = raw[len("whatsapp:"):]
    if raw.startswith("+"):
        digits = _NON_DIGITS.sub("", raw)
    else:
        local = clean_phone(raw)
        if local.startswith("0"):
            local = local[1:]
        code = (default_country_code or settings.DEFAULT_COUNTRY_CODE).lstrip("+")
        digits = code + _NON_DIGITS.sub("", local)
    if len(digits) < MIN_PHONE_DIGITS:
        return None
    return f"+{digits}"


def _result(provider: str, *, success: bool = False, error: Optional[str] = None, message_id: Optional[str] = None) -> Dict[str, Any]:
    return {"success": success, "error": error, "message_id": message_id, "provider": provider}


class TwilioWhatsAppSender:
    name = MessagingProvider.TWILIO.value

    def __init__(
        self,
        *,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.account_sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else settings.TWILIO_WHATSAPP_FROM
        self.api_url = api_url or settings.TWILIO_API_URL
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def send(self, phone: str, body: str) -> Dict[str, Any]:
        if not self.configured:
            return _result(self.name, error=NOT_CONFIGURED)
        to = to_e164(phone)
        if to is None:
            return _result(self.name, error="invalid phone number")
        sender = self.from_number if self.from_number.startswith("whatsapp:") else f"whatsapp:{self.from_number}"

        url = f"{self.api_url}/Accounts/{self.account_sid}/Messages.json"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    auth=(self.account_sid, self.auth_token),
                    data={"From": sender, "To": f"whatsapp:{to}", "Body": body[:MAX_BODY_LENGTH]},
                )
                response.raise_for_status()
                data = response.json()
            logger.info("[alerts] Twilio WhatsApp sent to %s", mask_phone(to))
            return _result(self.name, success=True, message_id=data.get("sid"))
        except httpx.HTTPStatusError as e:
            logger.error("[alerts] Twilio WhatsApp error %s for %s", e.response.status_code, mask_phone(to))
            return _result(self.name, error=f"HTTP {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("[alerts] Twilio WhatsApp request timed out")
            return _result(self.name, error="request timed out")
        except httpx.HTTPError as e:
            logger.error("[alerts] Twilio WhatsApp transport error: %s", e)
            return _result(self.name, error=str(e))


class WhatsAppCloudSender:
    name = MessagingProvider.WHATSAPP_CLOUD.value

    def __init__(
        self,
        *,
        access_token: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.access_token = access_token if access_token is not None else settings.WHATSAPP_ACCESS_TOKEN
        self.phone_number_id = phone_number_id if phone_number_id is not None else settings.WHATSAPP_PHONE_NUMBER_ID
        self.api_version = api_version or settings.WHATSAPP_API_VERSION
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    @property
    def endpoint(self) -> str:
        return f"https://graph.facebook.com/{self.api_version}/{self.phone_number_id}/messages"

    async def send(self, phone: str, body: str) -> Dict[str, Any]:
        if not self.configured:
            return _result(self.name, error=NOT_CONFIGURED)
        to = to_e164(phone)
        if to is None:
            return _result(self.name, error="invalid phone number")

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to.lstrip("+"),
            "type": "text",
            "text": {"preview_url": False, "body": body[:MAX_BODY_LENGTH]},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.access_token}"},
                )
                response.raise_for_status()
                data = response.json()
            messages = data.get("messages") or [{}]
            logger.info("[alerts] WhatsApp Cloud message sent to %s", mask_phone(to))
            return _result(self.name, success=True, message_id=messages[0].get("id"))
        except httpx.HTTPStatusError as e:
            logger.error("[alerts] WhatsApp Cloud error %s for %s", e.response.status_code, mask_phone(to))
            return _result(self.name, error=f"HTTP {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("[alerts] WhatsApp Cloud request timed out")
            return _result(self.name, error="request timed out")
        except httpx.HTTPError as e:
            logger.error("[alerts] WhatsApp Cloud transport error: %s", e)
            return _result(self.name, error=str(e))


class FallbackMessagingSender:
    """Try providers in priority order, skipping the unconfigured ones."""

    name = "fallback"

    def __init__(self, providers: Sequence[Any]) -> None:
        self.providers: List[Any] = list(providers)

    @property
    def configured(self) -> bool:
        return any(p.configured for p in self.providers)

    async def send(self, phone: str, body: str) -> Dict[str, Any]:
        for provider in self.providers:
            if not provider.configured:
                logger.debug("[alerts] messaging provider %s not configured; trying next", provider.name)
                continue
            return await provider.send(phone, body)
        return _result(self.name, error=NOT_CONFIGURED)


def build_default_messaging_sender() -> FallbackMessagingSender:
    return FallbackMessagingSender([TwilioWhatsAppSender(), WhatsAppCloudSender()])
