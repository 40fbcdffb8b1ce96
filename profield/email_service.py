"""
Email Service using Resend
Quote and invoice emails sent to customers
"""

import html
import logging
from decimal import Decimal
from typing import Optional, Union

import resend

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def is_configured() -> bool:
    return bool(RESEND_API_KEY)


def _render(title: str, intro: str, lines: list[tuple[str, str]], message: Optional[str] = None) -> str:
    """Minimal HTML layout shared by document emails"""
    rows = "".join(
        f"<tr><td style='padding:4px 12px 4px 0;color:#666'>{html.escape(label)}</td>"
        f"<td style='padding:4px 0'><strong>{html.escape(value)}</strong></td></tr>"
        for label, value in lines
    )
    note = f"<p>{html.escape(message)}</p>" if message else ""
    return (
        "<div style='font-family:Arial,sans-serif;max-width:560px'>"
        f"<h2 style='color:#00C4B4'>{html.escape(title)}</h2>"
        f"<p>{html.escape(intro)}</p>{note}<table>{rows}</table>"
        f"<p style='color:#999;font-size:12px'>Sent from ProField Manager · {FRONTEND_URL}</p>"
        "</div>"
    )


async def send_email(to: Union[str, list[str]], subject: str, html_content: str) -> bool:
    """
    Send an email through Resend

    Returns:
        True when Resend accepted the email, False when sending is not configured

    Raises:
        Exception: when Resend rejects the request
    """
    recipients = [to] if isinstance(to, str) else to

    if not is_configured():
        logger.info(f"📭 RESEND_API_KEY not set - skipping email '{subject}' to {recipients}")
        return False

    email_data = {
        "from": EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "html": html_content,
    }

    try:
        response = resend.Emails.send(email_data)
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return True
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


async def send_quote_email(
    to: str,
    customer_name: str,
    quote_number: str,
    total: Decimal,
    currency: str = "USD",
    subject: Optional[str] = None,
    message: Optional[str] = None,
) -> bool:
    subject = subject or f"Quote {quote_number}"
    content = _render(
        title=f"Quote {quote_number}",
        intro=f"Hi {customer_name}, here is your quote.",
        lines=[("Quote", quote_number), ("Total", f"{total} {currency}")],
        message=message,
    )
    return await send_email(to, subject, content)


async def send_invoice_email(
    to: str,
    customer_name: str,
    invoice_number: str,
    total: Decimal,
    due_date: Optional[str] = None,
    currency: str = "USD",
) -> bool:
    lines = [("Invoice", invoice_number), ("Amount due", f"{total} {currency}")]
    if due_date:
        lines.append(("Due", due_date))
    content = _render(
        title=f"Invoice {invoice_number}",
        intro=f"Hi {customer_name}, a new invoice is ready.",
        lines=lines,
    )
    return await send_email(to, f"Invoice {invoice_number}", content)
