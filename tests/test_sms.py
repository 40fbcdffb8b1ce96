import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import add_user
from profield.services import notification_service, twilio_service
from profield.services.twilio_service import SmsResult, send_sms
from profield.shared.validators import mask_card_number, slugify, to_naive_utc, validate_us_phone


@pytest.fixture
def twilio_configured(monkeypatch):
    monkeypatch.setattr(twilio_service, "TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setattr(twilio_service, "TWILIO_AUTH_TOKEN", "secret")
    monkeypatch.setattr(twilio_service, "TWILIO_FROM_NUMBER", "+15550000000")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("(555) 201-3344", "+15552013344"),
        ("+1 555 201 3344", "+15552013344"),
        ("555.201.3344", "+15552013344"),
        ("", ""),
    ],
)
def test_phone_normalization(raw, expected):
    assert validate_us_phone(raw) == expected


def test_short_phone_rejected():
    with pytest.raises(ValueError):
        validate_us_phone("201-3344")


def test_small_normalizers():
    assert slugify("Acme Field Services, LLC") == "acme-field-services-llc"
    assert slugify("!!!") == "org"
    assert mask_card_number("4111-1111-1111-9876") == "****9876"
    assert mask_card_number(None) == ""
    aware = datetime(2024, 6, 3, 9, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert to_naive_utc(aware) == datetime(2024, 6, 3, 14, 0)


def test_sms_skipped_without_credentials():
    result = asyncio.run(send_sms("+15552013344", "Hello"))
    assert result == SmsResult(False, "Twilio not configured")


def test_sms_requires_e164(twilio_configured):
    assert asyncio.run(send_sms("5552013344", "Hello")).sent is False


def test_sms_posts_to_twilio(twilio_configured):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content.decode()
        return httpx.Response(201, json={"sid": "SM42"})

    result = asyncio.run(send_sms("+15552013344", "x" * 2000, transport=httpx.MockTransport(handler)))

    assert result == SmsResult(True, sid="SM42")
    assert seen["url"].endswith("/Accounts/AC123/Messages.json")
    assert "To=%2B15552013344" in seen["body"]
    # Truncated to Twilio's limit
    assert seen["body"].count("x") == 1597


def test_sms_reports_twilio_errors(twilio_configured):
    transport = httpx.MockTransport(
        lambda request: httpx.Response(400, json={"code": 21211, "message": "Invalid 'To' Phone Number"})
    )
    result = asyncio.run(send_sms("+15552013344", "Hello", transport=transport))

    assert result.sent is False
    assert result.error == "[21211] Invalid 'To' Phone Number"


def test_job_assignment_texts_technician(client, admin_headers, monkeypatch):
    texts = []

    async def fake_send_sms(to_phone, body, message_type="notification", transport=None):
        texts.append((to_phone, body, message_type))
        return SmsResult(True, sid="SM1")

    monkeypatch.setattr(notification_service, "send_sms", fake_send_sms)
    _, tech = add_user(client, admin_headers, "tech", phone="(555) 201-3344")

    resp = client.post(
        "/dispatch/jobs",
        json={"title": "Furnace tune-up", "scheduled_start": "2024-06-03T09:00:00", "assigned_user_id": tech["id"]},
        headers=admin_headers,
    )
    assert resp.status_code == 201

    assert len(texts) == 1
    phone, body, kind = texts[0]
    assert phone == "+15552013344"
    assert kind == "job_assigned"
    assert body.startswith("New job assigned: Furnace tune-up on Jun 03")
