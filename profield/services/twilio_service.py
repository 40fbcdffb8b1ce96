"""
Outbound SMS through the Twilio Messages REST endpoint.

One organization-wide sender number from config. Failures are reported in
the result, never raised, so a text that can't go out never breaks the
change that triggered it.
"""

import logging
from typing import NamedTuple, Optional

import httpx

from ..config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"

# Twilio rejects bodies over 1600 characters
MAX_BODY_LENGTH = 1600


class SmsResult(NamedTuple):
    sent: bool
    error: Optional[str] = None
    sid: Optional[str] = None


def is_configured() -> bool:
    return all((TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER))


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    return f"[{body.get('code')}] {body.get('message', 'Unknown error')}"


async def send_sms(
    to_phone: str,
    body: str,
    message_type: str = "notification",
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SmsResult:
    """
    Text an E.164 number (+15552013344).
    message_type only labels the log lines (job_assigned, ...).
    """
    if not to_phone or not to_phone.startswith("+"):
        return SmsResult(False, "Recipient must be an E.164 phone number")
    if not is_configured():
        logger.debug(f"Twilio not configured - {message_type} SMS skipped")
        return SmsResult(False, "Twilio not configured")

    if len(body) > MAX_BODY_LENGTH:
        body = body[: MAX_BODY_LENGTH - 3] + "..."

    url = f"{TWILIO_API_BASE}/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json"
    try:
        async with httpx.AsyncClient(transport=transport, timeout=10.0) as client:
            response = await client.post(
                url,
                auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
                data={"To": to_phone, "From": TWILIO_FROM_NUMBER, "Body": body},
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Twilio request failed ({message_type}): {e}")
        return SmsResult(False, str(e))

    if response.status_code not in (200, 201):
        error = _error_text(response)
        logger.error(f"❌ Twilio rejected {message_type} SMS to {to_phone}: {error}")
        return SmsResult(False, error)

    try:
        sid = response.json().get("sid")
    except ValueError:
        sid = None
    logger.info(f"📱 {message_type} SMS sent to {to_phone} (sid={sid})")
    return SmsResult(True, sid=sid)
