"""SMS gateway — outbound delivery of verification messages.

Gateways receive phone numbers in E.164 format and are responsible for
converting them to whatever dialing format their provider expects.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from phone_verification.config import Settings
from phone_verification.services.masking import mask_phone_number
from phone_verification.services.phone import to_national_digits

logger = logging.getLogger(__name__)


@dataclass
class SMSResult:
    """Value object returned by a gateway after a send attempt."""

    success: bool
    message_id: str | None = None
    error: str | None = None


class SMSGateway(ABC):
    """Abstract base class for SMS providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (used in logs)."""

    @abstractmethod
    async def send_sms(self, phone_number: str, message: str) -> SMSResult:
        """Deliver *message* to *phone_number*.

        Parameters
        ----------
        phone_number:
            Recipient in E.164 format.
        message:
            Text body.  May contain a plaintext code, so never log it
            outside of development gateways.
        """


class ConsoleSMSGateway(SMSGateway):
    """Development gateway: logs the message instead of sending it."""

    @property
    def name(self) -> str:
        return "console"

    async def send_sms(self, phone_number: str, message: str) -> SMSResult:
        logger.info(
            "📱 [DEV] SMS not sent to %s. Message: %s",
            mask_phone_number(phone_number),
            message,
        )
        return SMSResult(success=True, message_id="console")


class NetgsmSMSGateway(SMSGateway):
    """Async HTTP client for the NetGSM REST v2 SMS API."""

    def __init__(
        self,
        username: str,
        password: str,
        msgheader: str,
        api_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._username = username
        self._password = password
        self._msgheader = msgheader
        self._api_url = api_url
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "netgsm"

    async def send_sms(self, phone_number: str, message: str) -> SMSResult:
        masked = mask_phone_number(phone_number)

        if not self._username or not self._password:
            logger.error("NetGSM credentials not configured; cannot send SMS to %s", masked)
            return SMSResult(success=False, error="SMS credentials not configured")
        if not self._msgheader:
            logger.error("NetGSM sender header not configured; cannot send SMS to %s", masked)
            return SMSResult(success=False, error="SMS sender not configured")

        local_number = to_national_digits(phone_number)
        if not local_number:
            logger.error("Cannot convert %s to a local dialing number", masked)
            return SMSResult(success=False, error="Invalid phone number")

        payload = {
            "msgheader": self._msgheader,
            "encoding": "TR",
            "messages": [{"msg": message, "no": local_number}],
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    self._api_url,
                    json=payload,
                    auth=(self._username, self._password),
                )
        except httpx.HTTPError as exc:
            logger.exception("NetGSM request error for %s: %s", masked, exc)
            return SMSResult(success=False, error=str(exc) or exc.__class__.__name__)

        if resp.status_code != 200:
            logger.error("NetGSM send failed for %s: %s %s", masked, resp.status_code, resp.text)
            return SMSResult(success=False, error=f"HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            logger.error("NetGSM returned a non-JSON body for %s: %s", masked, resp.text)
            return SMSResult(success=False, error="Invalid response from SMS provider")

        if data.get("code") == "00":
            logger.info("SMS sent to %s (job %s)", masked, data.get("jobid"))
            return SMSResult(success=True, message_id=data.get("jobid"))

        error = f"NetGSM error {data.get('code', 'N/A')}: {data.get('description', 'unknown')}"
        logger.error("SMS to %s rejected: %s", masked, error)
        return SMSResult(success=False, error=error)


def build_sms_gateway(settings: Settings) -> SMSGateway:
    """Create the gateway selected by ``settings.sms_provider``."""
    if settings.sms_provider == "netgsm":
        return NetgsmSMSGateway(
            username=settings.netgsm_username,
            password=settings.netgsm_password,
            msgheader=settings.netgsm_msgheader,
            api_url=settings.netgsm_api_url,
            timeout=settings.sms_timeout_seconds,
        )
    return ConsoleSMSGateway()
