"""Field normalizers shared by the pydantic schemas. Each returns the clean value or raises ValueError."""

import re
from datetime import datetime, timezone
from typing import Optional

EMAIL_RE = re.compile(r"^[\w.%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
NON_DIGITS_RE = re.compile(r"\D")
NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def validate_us_phone(phone: Optional[str]) -> Optional[str]:
    """
    "(555) 201-3344", "555.201.3344" and "+1 555 201 3344" all become "+15552013344".
    Empty values pass through untouched.
    """
    if not phone:
        return phone

    digits = NON_DIGITS_RE.sub("", phone)
    if len(digits) == 11 and digits[0] == "1":
        digits = digits[1:]
    if len(digits) != 10:
        raise ValueError("Phone number must be 10 digits for US numbers")
    return "+1" + digits


def validate_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return email
    email = email.strip().lower()
    if not EMAIL_RE.match(email):
        raise ValueError("Invalid email format")
    return email


def validate_hex_color(color: Optional[str]) -> Optional[str]:
    if not color:
        return color
    if not HEX_COLOR_RE.match(color):
        raise ValueError("Color must be a hex value like #00C4B4")
    return color.upper()


def slugify(value: str) -> str:
    # "Acme Field Services, LLC" -> "acme-field-services-llc"
    return NON_SLUG_RE.sub("-", (value or "").lower()).strip("-") or "org"


def mask_card_number(card_number: Optional[str]) -> str:
    digits = NON_DIGITS_RE.sub("", card_number or "")
    return "****" + digits[-4:] if digits else ""


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes are converted to UTC and stored naive, like the server's utcnow() stamps"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
