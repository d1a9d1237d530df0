"""Outbound call placement through the Twilio REST API."""
import asyncio
import logging
from typing import Optional
from urllib.parse import urlencode

import phonenumbers
from phonenumbers import NumberParseException
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from app.core.config import settings
from app.core.retry import with_retry
from app.services.call_session.models import ProductContext

logger = logging.getLogger(__name__)

SCRIPT_PATH = "/api/call-script"
STATUS_PATH = "/api/call-status"
DEFAULT_LAST_PRODUCT = "your previous order"

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)
RETRYABLE_MESSAGE_MARKERS = ("timeout", "timed out", "connection", "network", "rate limit", "429")


class OutboundCallError(Exception):
    """Placing an outbound call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class OutboundNotConfiguredError(OutboundCallError):
    """Twilio credentials are missing."""


def normalize_phone_number(phone: str, default_region: Optional[str] = None) -> Optional[str]:
    """
    Normalize a phone number to E.164.

    Returns:
        The E.164 number, or None if it cannot be parsed or is not valid
    """
    if not phone or not phone.strip():
        return None
    try:
        parsed = phonenumbers.parse(phone.strip(), default_region or settings.default_phone_region)
    except NumberParseException as e:
        logger.debug(f"[OUTREACH] Unparseable phone number: {phone} ({e})")
        return None
    if not phonenumbers.is_valid_number(parsed):
        logger.debug(f"[OUTREACH] Invalid phone number: {phone}")
        return None
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def is_retryable_twilio_error(error: BaseException) -> bool:
    """Rate limits, provider 5xx and transport failures are transient."""
    if isinstance(error, TwilioRestException) and error.status in RETRYABLE_STATUS_CODES:
        return True
    message = str(error).lower()
    return any(marker in message for marker in RETRYABLE_MESSAGE_MARKERS)


def build_script_url(base_url: str, product_context: ProductContext) -> str:
    """Webhook the provider fetches the opening document from."""
    query = urlencode(
        {
            "hotelName": product_context.hotel_name,
            "managerName": product_context.manager_name,
            "recommendedProduct": product_context.recommended_product,
            "lastProduct": product_context.last_product or DEFAULT_LAST_PRODUCT,
        }
    )
    return f"{base_url.rstrip('/')}{SCRIPT_PATH}?{query}"


class OutboundDialer:
    """Service for placing outbound campaign calls."""

    def __init__(self, client: Optional[TwilioClient] = None):
        self.phone_number = settings.twilio_phone_number
        self.client = client
        if self.client is None and settings.twilio_configured:
            self.client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)

    @property
    def is_configured(self) -> bool:
        return self.client is not None and bool(self.phone_number)

    async def place_call(
        self, to_number: str, product_context: ProductContext, base_url: str
    ) -> str:
        """
        Place an outbound call that opens with the campaign script.

        The blocking REST call runs in a worker thread and is retried with
        exponential backoff on transient failures only.

        Returns:
            Provider call SID

        Raises:
            OutboundNotConfiguredError: Twilio credentials are missing
            OutboundCallError: The provider rejected the request
        """
        if not self.is_configured:
            raise OutboundNotConfiguredError(
                "Server configuration error: Missing Twilio credentials"
            )

        script_url = build_script_url(base_url, product_context)
        status_url = f"{base_url.rstrip('/')}{STATUS_PATH}"
        logger.info(f"[OUTREACH] Placing call to {to_number} - Script URL: {script_url}")

        def _create():
            return self.client.calls.create(
                to=to_number,
                from_=self.phone_number,
                url=script_url,
                status_callback=status_url,
                status_callback_event=["initiated", "ringing", "answered", "completed"],
                status_callback_method="POST",
            )

        try:
            call = await with_retry(
                lambda: asyncio.to_thread(_create),
                max_retries=settings.twilio_max_retries,
                initial_delay=settings.twilio_retry_delay_ms / 1000,
                backoff_factor=settings.twilio_retry_backoff,
                is_retryable=is_retryable_twilio_error,
                label="Twilio call placement",
            )
        except TwilioRestException as e:
            raise OutboundCallError(e.msg or str(e), status_code=e.status) from e
        except Exception as e:
            raise OutboundCallError(str(e)) from e

        logger.info(f"[OUTREACH] Call placed - CallSid: {call.sid}, Status: {call.status}")
        return call.sid
