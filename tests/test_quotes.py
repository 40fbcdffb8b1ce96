from datetime import datetime

from profield.domain.quotes import service as quote_service
from profield.domain.quotes.repository import QuoteRepository

LINE_ITEMS = [
    {"description": "Spring cleanup", "quantity": 1, "rate": "250.00"},
    {"description": "Mulch (yards)", "quantity": 3, "rate": "45.00"},
]


def create_quote(client, headers, customer_id, **extra):
    resp = client.post(
        "/quotes", json={"customer_id": customer_id, "line_items": LINE_ITEMS, "tax_rate": 5, **extra}, headers=headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_quote_defaults(client, admin_headers, customer):
    quote = create_quote(client, admin_headers, customer["id"])

    assert quote["status"] == "draft"
    assert quote["quote_number"] == f"QUO-{datetime.utcnow().year}-{customer['organization_id']:04d}-0001"
    assert quote["subtotal"] == 385.0
    assert quote["tax_amount"] == 19.25
    assert quote["total"] == 404.25
    assert quote["expiry_date"] is not None


def test_quote_number_collision_is_retried(client, admin_headers, customer, monkeypatch):
    first = create_quote(client, admin_headers, customer["id"])
    allocate = QuoteRepository.next_quote_number
    handed_out = [first["quote_number"]]

    def stale_then_fresh(db, organization_id, year):
        return handed_out.pop() if handed_out else allocate(db, organization_id, year)

    monkeypatch.setattr(QuoteRepository, "next_quote_number", staticmethod(stale_then_fresh))

    second = create_quote(client, admin_headers, customer["id"])
    assert second["quote_number"].endswith("-0002")


def test_unaccepted_quote_cannot_be_converted(client, admin_headers, customer):
    quote = create_quote(client, admin_headers, customer["id"])

    resp = client.post(f"/quotes/{quote['id']}/convert-to-invoice", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Quote cannot be converted. It must be accepted first."


def test_accept_and_convert_to_invoice(client, admin_headers, customer):
    quote = create_quote(client, admin_headers, customer["id"], notes="Back yard only")
    client.post(f"/quotes/{quote['id']}/send", headers=admin_headers)

    accepted = client.post(f"/quotes/{quote['id']}/accept", headers=admin_headers)
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"
    assert accepted.json()["accepted_at"] is not None

    resp = client.post(f"/quotes/{quote['id']}/convert-to-invoice", headers=admin_headers)
    assert resp.status_code == 201
    invoice = resp.json()
    assert invoice["status"] == "draft"
    assert invoice["quote_id"] == quote["id"]
    assert invoice["customer_id"] == customer["id"]
    assert invoice["total"] == 404.25
    assert invoice["notes"] == "Back yard only"
    assert [i["description"] for i in invoice["line_items"]] == ["Spring cleanup", "Mulch (yards)"]

    due = datetime.fromisoformat(invoice["due_date"])
    issued = datetime.fromisoformat(invoice["invoice_date"])
    assert (due - issued).days == 30

    converted = client.get(f"/quotes/{quote['id']}", headers=admin_headers).json()
    assert converted["status"] == "converted"
    assert converted["converted_invoice_id"] == invoice["id"]

    # Converting twice or deleting a converted quote is refused
    assert client.post(f"/quotes/{quote['id']}/convert-to-invoice", headers=admin_headers).status_code == 400
    assert client.delete(f"/quotes/{quote['id']}", headers=admin_headers).status_code == 400


def test_deleting_converted_invoice_reopens_quote(client, admin_headers, customer):
    quote = create_quote(client, admin_headers, customer["id"])
    client.post(f"/quotes/{quote['id']}/send", headers=admin_headers)
    client.post(f"/quotes/{quote['id']}/accept", headers=admin_headers)
    invoice = client.post(f"/quotes/{quote['id']}/convert-to-invoice", headers=admin_headers).json()

    assert client.delete(f"/invoices/{invoice['id']}", headers=admin_headers).status_code == 204

    reopened = client.get(f"/quotes/{quote['id']}", headers=admin_headers).json()
    assert reopened["status"] == "accepted"
    assert reopened["converted_invoice_id"] is None

    again = client.post(f"/quotes/{quote['id']}/convert-to-invoice", headers=admin_headers)
    assert again.status_code == 201
    assert again.json()["quote_id"] == quote["id"]


def test_rejected_quote_cannot_be_accepted(client, admin_headers, customer):
    quote = create_quote(client, admin_headers, customer["id"])
    assert client.post(f"/quotes/{quote['id']}/reject", headers=admin_headers).json()["status"] == "rejected"
    assert client.post(f"/quotes/{quote['id']}/accept", headers=admin_headers).status_code == 400


def test_expired_quote_reported_and_not_acceptable(client, admin_headers, customer):
    quote = create_quote(
        client,
        admin_headers,
        customer["id"],
        quote_date="2020-01-01T00:00:00",
        expiry_date="2020-01-15T00:00:00",
    )
    assert quote["status"] == "expired"
    assert client.post(f"/quotes/{quote['id']}/accept", headers=admin_headers).status_code == 400


def test_email_quote_without_provider_marks_sent(client, admin_headers, customer):
    quote = create_quote(client, admin_headers, customer["id"])

    resp = client.post(f"/quotes/{quote['id']}/email", json={"to": "Jane@Example.com"}, headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["sent"] is False
    assert body["to"] == "jane@example.com"
    assert body["subject"] == f"Quote {quote['quote_number']}"
    assert client.get(f"/quotes/{quote['id']}", headers=admin_headers).json()["status"] == "sent"


def test_email_quote_provider_failure_is_502(client, admin_headers, customer, monkeypatch):
    async def failing_send(**kwargs):
        raise Exception("Resend rejected the request")

    monkeypatch.setattr(quote_service, "send_quote_email", failing_send)
    quote = create_quote(client, admin_headers, customer["id"])

    resp = client.post(f"/quotes/{quote['id']}/email", json={"to": "jane@example.com"}, headers=admin_headers)
    assert resp.status_code == 502
    assert client.get(f"/quotes/{quote['id']}", headers=admin_headers).json()["status"] == "draft"
