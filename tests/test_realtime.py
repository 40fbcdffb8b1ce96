import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import add_user, register
from profield.main import app
from profield.routes import realtime
from profield.services.websocket_manager import ConnectionManager, manager


@pytest.fixture
def live_client():
    # One portal for HTTP and WebSocket traffic so broadcasts reach open sockets
    with TestClient(app) as c:
        yield c


def token_of(headers):
    return headers["Authorization"].split(" ", 1)[1]


def authenticate(ws, headers, **extra):
    ws.send_json({"type": "auth", "token": token_of(headers), **extra})
    return ws.receive_json()


def test_handshake_and_ping(live_client):
    headers, user = register(live_client)

    with live_client.websocket_connect("/ws") as ws:
        reply = authenticate(ws, headers, userType="mobile")
        assert reply == {"type": "auth_success", "userId": user["id"], "organizationId": user["organization_id"]}

        ws.send_json({"type": "ping"})
        pong = ws.receive_json()
        assert pong["type"] == "pong"
        assert pong["timestamp"]

        status = live_client.get("/realtime/status", headers=headers).json()
        assert status["total_connections"] == 1
        assert status["connections"][0]["user_type"] == "mobile"

    assert manager.connection_count() == 0


@pytest.mark.parametrize(
    "first_message",
    [
        {"type": "auth", "token": "not-a-jwt"},
        {"type": "ping"},
        {"type": "auth"},
    ],
)
def test_bad_handshake_is_rejected(live_client, first_message):
    with live_client.websocket_connect("/ws") as ws:
        ws.send_json(first_message)
        reply = ws.receive_json()
        assert reply["type"] == "auth_error"
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == 4401

    assert manager.connection_count() == 0


def test_customer_events_reach_connected_clients(live_client):
    headers, user = register(live_client)

    with live_client.websocket_connect("/ws") as ws:
        authenticate(ws, headers)

        resp = live_client.post("/customers", json={"name": "Bob Builder"}, headers=headers)
        assert resp.status_code == 201

        event = ws.receive_json()
        assert event["type"] == "update"
        assert event["eventType"] == "customer_created"
        assert event["organizationId"] == user["organization_id"]
        assert event["data"]["name"] == "Bob Builder"


def test_subscription_filters_events(live_client):
    headers, _ = register(live_client)

    with live_client.websocket_connect("/ws") as ws:
        authenticate(ws, headers)
        ws.send_json({"type": "subscribe", "events": ["job_created", "customer_deleted"]})
        assert ws.receive_json() == {"type": "subscribed", "events": ["customer_deleted", "job_created"]}

        # customer_created is filtered out, so the next frame is the job event
        customer = live_client.post("/customers", json={"name": "Filtered"}, headers=headers).json()
        live_client.post(
            "/dispatch/jobs",
            json={"title": "Roof check", "scheduled_start": "2024-06-03T09:00:00", "customer_id": customer["id"]},
            headers=headers,
        )

        event = ws.receive_json()
        assert event["eventType"] == "job_created"
        assert event["data"]["title"] == "Roof check"


def test_events_never_cross_organizations(live_client):
    acme_headers, _ = register(live_client)
    rival_headers, _ = register(live_client, organization_name="Rival Co", username="rival")

    with live_client.websocket_connect("/ws") as ws:
        authenticate(ws, acme_headers)

        live_client.post("/customers", json={"name": "Rival customer"}, headers=rival_headers)
        live_client.post("/customers", json={"name": "Acme customer"}, headers=acme_headers)

        event = ws.receive_json()
        assert event["data"]["name"] == "Acme customer"

    rival_status = live_client.get("/realtime/status", headers=rival_headers).json()
    assert rival_status["total_connections"] == 0


def test_status_requires_user_permissions(live_client):
    admin_headers, _ = register(live_client)
    tech_headers, _ = add_user(live_client, admin_headers, "tech")

    assert live_client.get("/realtime/status", headers=tech_headers).status_code == 403


def test_root_and_health(live_client):
    assert live_client.get("/").json() == {"message": "ProField API is running"}
    health = live_client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["database"] == "ok"
    assert live_client.get("/health/redis").json()["status"] == "not_configured"


def test_unparsable_frame_keeps_session_open(live_client):
    headers, _ = register(live_client)

    with live_client.websocket_connect("/ws") as ws:
        authenticate(ws, headers)

        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "message": "Invalid message"}

        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"
        assert manager.connection_count() == 1


def test_silent_client_is_closed_after_auth_timeout(live_client, monkeypatch):
    monkeypatch.setattr(realtime, "AUTH_TIMEOUT_SECONDS", 0.05)

    with live_client.websocket_connect("/ws") as ws:
        assert ws.receive_json() == {"type": "auth_error", "message": "Authentication timeout"}
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == 4401

    assert manager.connection_count() == 0


def test_job_status_event_payload(live_client):
    headers, user = register(live_client)
    job = live_client.post(
        "/dispatch/jobs", json={"title": "Drain snake", "scheduled_start": "2024-06-03T09:00:00"}, headers=headers
    ).json()

    with live_client.websocket_connect("/ws") as ws:
        authenticate(ws, headers)
        ws.send_json({"type": "subscribe", "events": ["job_status_updated"]})
        ws.receive_json()

        resp = live_client.patch(f"/dispatch/jobs/{job['id']}/status", json={"status": "in_progress"}, headers=headers)
        assert resp.status_code == 200

        event = ws.receive_json()
        assert event["eventType"] == "job_status_updated"
        assert event["data"]["previous_status"] == "scheduled"
        assert event["data"]["updated_by"] == user["id"]
        assert event["data"]["job"]["id"] == job["id"]
        assert event["data"]["job"]["status"] == "in_progress"


def test_route_optimized_event_payload(live_client):
    headers, user = register(live_client)

    with live_client.websocket_connect("/ws") as ws:
        authenticate(ws, headers)

        resp = live_client.post(
            "/dispatch/optimize-route",
            json={
                "start_location": "39.7817,-89.6501",
                "jobs": [
                    {"id": 1, "title": "Far", "lat": 39.90, "lng": -89.6501},
                    {"id": 2, "title": "Near", "lat": 39.80, "lng": -89.6501},
                ],
            },
            headers=headers,
        )
        assert resp.status_code == 200, resp.text
        route = resp.json()

        event = ws.receive_json()
        assert event["eventType"] == "route_optimized"
        data = event["data"]
        assert set(data) == {"date", "optimized_order", "total_distance", "total_duration", "requested_by"}
        assert data["optimized_order"] == route["optimized_order"] == [1, 0]
        assert data["total_distance"] == route["total_distance"]
        assert data["requested_by"] == user["id"]


class FakeSocket:
    def __init__(self, broken=False):
        self.broken = broken
        self.sent = []

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(message)


def test_failed_send_drops_only_that_socket():
    connections = ConnectionManager()
    healthy, broken = FakeSocket(), FakeSocket(broken=True)

    async def scenario():
        await connections.connect(healthy, user_id=1, organization_id=7)
        await connections.connect(broken, user_id=2, organization_id=7)
        return await connections.broadcast_to_organization(7, "customer_created", {"id": 3})

    assert asyncio.run(scenario()) == 1
    assert healthy.sent[0]["eventType"] == "customer_created"
    assert healthy.sent[0]["organizationId"] == 7
    assert list(connections.organizations[7]) == [healthy]
