import httpx

from conftest import add_user, register
from profield.main import app
from profield.services.directions import DirectionsClient, get_directions_client


def test_create_customer_normalizes_contact_fields(customer):
    assert customer["email"] == "jane@example.com"
    assert customer["phone"] == "+15552013344"
    assert customer["country"] == "US"


def test_invalid_phone_is_rejected(client, admin_headers):
    resp = client.post("/customers", json={"name": "Bad Phone", "phone": "12345"}, headers=admin_headers)
    assert resp.status_code == 422


def test_search_matches_name_email_and_phone(client, admin_headers, customer):
    client.post("/customers", json={"name": "Bob Builder", "email": "bob@builds.io"}, headers=admin_headers)

    by_name = client.get("/customers", params={"search": "jane"}, headers=admin_headers).json()
    assert [c["name"] for c in by_name] == ["Jane Homeowner"]

    by_email = client.get("/customers", params={"search": "BUILDS"}, headers=admin_headers).json()
    assert [c["name"] for c in by_email] == ["Bob Builder"]

    by_phone = client.get("/customers", params={"search": "2013344"}, headers=admin_headers).json()
    assert [c["name"] for c in by_phone] == ["Jane Homeowner"]


def test_update_and_delete_customer(client, admin_headers, customer):
    resp = client.put(f"/customers/{customer['id']}", json={"notes": "Gate code 4411"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["notes"] == "Gate code 4411"
    assert resp.json()["name"] == "Jane Homeowner"

    assert client.delete(f"/customers/{customer['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/customers/{customer['id']}", headers=admin_headers).status_code == 404


def test_deleting_customer_keeps_their_jobs(client, admin_headers, customer):
    job = client.post(
        "/dispatch/jobs",
        json={"title": "Roof check", "scheduled_start": "2024-06-03T09:00:00", "customer_id": customer["id"]},
        headers=admin_headers,
    ).json()

    assert client.delete(f"/customers/{customer['id']}", headers=admin_headers).status_code == 204

    resp = client.get(f"/dispatch/jobs/{job['id']}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["customer_id"] is None
    assert resp.json()["address"] == "12 Elm St, Springfield, IL, 62701"
    assert resp.json()["latitude"] == 39.7817


def test_customer_with_invoice_cannot_be_deleted(client, admin_headers, customer):
    client.post(
        "/invoices",
        json={"customer_id": customer["id"], "line_items": [{"description": "Visit", "quantity": 1, "rate": 50}]},
        headers=admin_headers,
    )
    resp = client.delete(f"/customers/{customer['id']}", headers=admin_headers)
    assert resp.status_code == 400
    assert "cannot be deleted" in resp.json()["detail"]


def test_technician_can_view_but_not_create(client, admin_headers, customer):
    tech_headers, _ = add_user(client, admin_headers, "tech")
    assert client.get("/customers", headers=tech_headers).status_code == 200
    assert client.post("/customers", json={"name": "Nope"}, headers=tech_headers).status_code == 403


def test_customers_are_isolated_between_organizations(client, customer):
    other_headers, _ = register(client, organization_name="Other Org", username="other")
    assert client.get("/customers", headers=other_headers).json() == []
    assert client.get(f"/customers/{customer['id']}", headers=other_headers).status_code == 404


def test_export_csv(client, admin_headers, customer):
    resp = client.get("/customers/export", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    lines = resp.text.strip().splitlines()
    assert lines[0].startswith("ID,Name,Email")
    assert "Jane Homeowner" in lines[1]


def test_customer_without_coordinates_is_geocoded(client, admin_headers):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/geocode/json")
        assert request.url.params["address"] == "1 Loop Rd, Austin, TX"
        return httpx.Response(
            200, json={"status": "OK", "results": [{"geometry": {"location": {"lat": 30.27, "lng": -97.74}}}]}
        )

    app.dependency_overrides[get_directions_client] = lambda: DirectionsClient(
        api_key="test-key", transport=httpx.MockTransport(handler), use_cache=False
    )

    resp = client.post(
        "/customers",
        json={"name": "Geo Customer", "address": "1 Loop Rd", "city": "Austin", "state": "TX"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    assert resp.json()["latitude"] == 30.27
    assert resp.json()["longitude"] == -97.74
