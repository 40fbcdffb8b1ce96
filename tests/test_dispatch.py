import asyncio

import httpx
import pytest
from fastapi import HTTPException

from conftest import add_user, register
from profield.config import DISPATCH_RATE_LIMIT_RPM
from profield.domain.dispatch.optimizer import nearest_neighbour_order, resolve_start
from profield.domain.dispatch.schemas import JobStop
from profield.main import app
from profield.services.directions import DirectionsClient, get_directions_client

START = "39.7817,-89.6501"


def make_job(client, headers, **extra):
    payload = {"title": "Gutter cleaning", "scheduled_start": "2024-06-03T09:00:00", **extra}
    resp = client.post("/dispatch/jobs", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def set_status(client, headers, job_id, status, **extra):
    return client.patch(f"/dispatch/jobs/{job_id}/status", json={"status": status, **extra}, headers=headers)


# ============================================================================
# OPTIMIZER
# ============================================================================


def test_nearest_neighbour_visits_closest_first():
    stops = [
        JobStop(id="far", lat=39.90, lng=-89.65),
        JobStop(id="near", lat=39.80, lng=-89.65),
        JobStop(id="mid", lat=39.85, lng=-89.65),
    ]
    assert nearest_neighbour_order((39.78, -89.65), stops) == [1, 2, 0]


def test_nearest_neighbour_ties_keep_request_order_and_unlocated_go_last():
    stops = [
        JobStop(id="no-coords-1"),
        JobStop(id="a", lat=39.80, lng=-89.65),
        JobStop(id="b", lat=39.80, lng=-89.65),
        JobStop(id="no-coords-2", lat=39.80),
    ]
    assert nearest_neighbour_order((39.78, -89.65), stops) == [1, 2, 0, 3]


def test_resolve_start_prefers_literal_coordinates():
    client = DirectionsClient(api_key=None, use_cache=False)
    start = asyncio.run(resolve_start("39.5, -89.1", [], client))
    assert (start.latitude, start.longitude, start.source) == (39.5, -89.1, "coordinates")


def test_resolve_start_falls_back_to_first_located_stop():
    client = DirectionsClient(api_key=None, use_cache=False)
    stops = [JobStop(id=1), JobStop(id=2, lat=39.8, lng=-89.6, address="4 Oak Ave")]

    start = asyncio.run(resolve_start("the shop", stops, client))
    assert start.source == "first_stop"
    assert start.address == "4 Oak Ave"

    with pytest.raises(HTTPException) as exc:
        asyncio.run(resolve_start("the shop", [JobStop(id=1)], client))
    assert exc.value.status_code == 400


# ============================================================================
# JOBS
# ============================================================================


def test_job_copies_location_from_customer(client, admin_headers, customer):
    job = make_job(client, admin_headers, customer_id=customer["id"])

    assert job["status"] == "scheduled"
    assert job["customer_name"] == "Jane Homeowner"
    assert job["address"] == "12 Elm St, Springfield, IL, 62701"
    assert (job["latitude"], job["longitude"]) == (39.7817, -89.6501)

    explicit = make_job(
        client, admin_headers, customer_id=customer["id"], address="Back lot", latitude=39.0, longitude=-89.0
    )
    assert explicit["address"] == "Back lot"
    assert explicit["latitude"] == 39.0


def test_job_references_must_exist(client, admin_headers):
    resp = client.post(
        "/dispatch/jobs",
        json={"title": "X", "scheduled_start": "2024-06-03T09:00:00", "customer_id": 999},
        headers=admin_headers,
    )
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Customer not found"

    resp = client.post(
        "/dispatch/jobs",
        json={"title": "X", "scheduled_start": "2024-06-03T09:00:00", "assigned_user_id": 999},
        headers=admin_headers,
    )
    assert resp.status_code == 404

    bad_priority = client.post(
        "/dispatch/jobs",
        json={"title": "X", "scheduled_start": "2024-06-03T09:00:00", "priority": "asap"},
        headers=admin_headers,
    )
    assert bad_priority.status_code == 422


def test_scheduled_jobs_for_one_day(client, admin_headers):
    late = make_job(client, admin_headers, title="Late", scheduled_start="2024-06-03T16:00:00")
    early = make_job(client, admin_headers, title="Early", scheduled_start="2024-06-03T08:00:00")
    make_job(client, admin_headers, title="Tomorrow", scheduled_start="2024-06-04T08:00:00")
    cancelled = make_job(client, admin_headers, title="Called off", scheduled_start="2024-06-03T10:00:00")
    assert set_status(client, admin_headers, cancelled["id"], "cancelled").status_code == 200

    resp = client.get("/dispatch/scheduled-jobs", params={"date": "2024-06-03"}, headers=admin_headers)
    assert resp.status_code == 200
    assert [j["id"] for j in resp.json()] == [early["id"], late["id"]]


def test_scheduled_jobs_filtered_by_technician(client, admin_headers):
    _, tech = add_user(client, admin_headers, "tech")
    mine = make_job(client, admin_headers, assigned_user_id=tech["id"])
    make_job(client, admin_headers)

    resp = client.get(
        "/dispatch/scheduled-jobs",
        params={"date": "2024-06-03", "assigned_user_id": tech["id"]},
        headers=admin_headers,
    )
    assert [j["id"] for j in resp.json()] == [mine["id"]]


def test_assignment_notifies_technician(client, admin_headers):
    tech_headers, tech = add_user(client, admin_headers, "tech")
    job = make_job(client, admin_headers, priority="urgent")

    updated = client.put(f"/dispatch/jobs/{job['id']}", json={"assigned_user_id": tech["id"]}, headers=admin_headers)
    assert updated.status_code == 200
    assert updated.json()["assigned_user_id"] == tech["id"]

    notifications = client.get("/notifications", headers=tech_headers).json()
    assert [(n["type"], n["priority"], n["related_entity_id"]) for n in notifications] == [
        ("job_assigned", "high", job["id"])
    ]


def test_technicians_cannot_manage_jobs(client, admin_headers):
    tech_headers, _ = add_user(client, admin_headers, "tech")
    job = make_job(client, admin_headers)

    assert client.get(f"/dispatch/jobs/{job['id']}", headers=tech_headers).status_code == 200
    assert client.post(
        "/dispatch/jobs", json={"title": "Mine", "scheduled_start": "2024-06-03T09:00:00"}, headers=tech_headers
    ).status_code == 403
    assert client.delete(f"/dispatch/jobs/{job['id']}", headers=tech_headers).status_code == 403

    assert client.delete(f"/dispatch/jobs/{job['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/dispatch/jobs/{job['id']}", headers=admin_headers).status_code == 404


def test_deleting_job_detaches_its_expenses(client, admin_headers):
    job = make_job(client, admin_headers)
    expense = client.post(
        "/expenses", json={"amount": "42.00", "vendor": "Home Depot", "job_id": job["id"]}, headers=admin_headers
    ).json()
    assert expense["job_id"] == job["id"]

    assert client.delete(f"/dispatch/jobs/{job['id']}", headers=admin_headers).status_code == 204

    resp = client.get(f"/expenses/{expense['id']}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["job_id"] is None
    assert resp.json()["amount"] == 42.0


def test_jobs_are_scoped_to_organization(client, admin_headers):
    job = make_job(client, admin_headers)
    other_headers, _ = register(client, organization_name="Rival Co", username="rival")

    assert client.get(f"/dispatch/jobs/{job['id']}", headers=other_headers).status_code == 404
    listed = client.get("/dispatch/scheduled-jobs", params={"date": "2024-06-03"}, headers=other_headers)
    assert listed.json() == []


# ============================================================================
# STATUS WORKFLOW
# ============================================================================


def test_status_workflow_by_assigned_technician(client, admin_headers):
    tech_headers, tech = add_user(client, admin_headers, "tech")
    job = make_job(client, admin_headers, assigned_user_id=tech["id"])

    resp = set_status(client, tech_headers, job["id"], "in_progress", location="39.78,-89.65", notes="On site")
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Job status updated to in_progress"
    assert body["job"]["started_at"] is not None
    assert body["job"]["status_notes"] == "On site"
    assert body["job"]["last_known_location"] == "39.78,-89.65"

    done = set_status(client, tech_headers, job["id"], "completed").json()["job"]
    assert done["status"] == "completed"
    assert done["completed_at"] is not None

    # Terminal
    resp = set_status(client, admin_headers, job["id"], "in_progress")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot change job status from completed to in_progress"


def test_back_to_scheduled_clears_start(client, admin_headers):
    job = make_job(client, admin_headers)
    set_status(client, admin_headers, job["id"], "in_progress")

    job = set_status(client, admin_headers, job["id"], "scheduled").json()["job"]
    assert job["status"] == "scheduled"
    assert job["started_at"] is None

    assert set_status(client, admin_headers, job["id"], "completed").status_code == 400
    assert set_status(client, admin_headers, job["id"], "paused").status_code == 422


def test_only_assignee_or_dispatcher_updates_status(client, admin_headers):
    tech_headers, tech = add_user(client, admin_headers, "tech1")
    other_headers, _ = add_user(client, admin_headers, "tech2")
    job = make_job(client, admin_headers, assigned_user_id=tech["id"])

    resp = set_status(client, other_headers, job["id"], "in_progress")
    assert resp.status_code == 403
    assert resp.json()["detail"] == "You can only update jobs assigned to you"

    # Dispatcher changes notify the technician
    assert set_status(client, admin_headers, job["id"], "in_progress").status_code == 200
    titles = [n["title"] for n in client.get("/notifications", headers=tech_headers).json()]
    assert "Job status updated" in titles


# ============================================================================
# ROUTE OPTIMISATION
# ============================================================================


def test_optimize_route_without_directions_key(client, admin_headers):
    payload = {
        "start_location": START,
        "jobs": [
            {"id": 11, "title": "Far", "lat": 39.90, "lng": -89.6501, "estimated_duration": 60},
            {"id": 12, "title": "Near", "lat": 39.80, "lng": -89.6501, "estimated_duration": 30},
            {"id": 13, "title": "Unknown", "address": "somewhere", "estimated_duration": 45},
        ],
    }
    resp = client.post("/dispatch/optimize-route", json=payload, headers=admin_headers)
    assert resp.status_code == 200, resp.text
    route = resp.json()

    assert route["optimized_order"] == [1, 0, 2]
    assert route["start"]["source"] == "coordinates"

    legs = route["route_legs"]
    assert [(leg["from_stop"], leg["to_stop"]) for leg in legs] == [(-1, 1), (1, 0), (0, 2)]
    assert all(leg["source"] == "estimate" for leg in legs)
    assert legs[-1]["directions"] == "Location unavailable"
    assert legs[-1]["distance"] == 0

    driving = sum(leg["duration"] + leg["traffic_delay"] for leg in legs)
    assert route["total_duration"] == driving + 60 + 30 + 45
    assert route["total_distance"] == pytest.approx(sum(leg["distance"] for leg in legs), abs=0.01)


def test_optimize_route_with_live_traffic(client, admin_headers):
    def handler(request: httpx.Request) -> httpx.Response:
        if "geocode" in request.url.path:
            return httpx.Response(
                200, json={"status": "OK", "results": [{"geometry": {"location": {"lat": 39.78, "lng": -89.65}}}]}
            )
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "routes": [
                    {
                        "summary": "IL-29",
                        "legs": [
                            {
                                "distance": {"value": 16093},
                                "duration": {"value": 1200},
                                "duration_in_traffic": {"value": 1500},
                            }
                        ],
                    }
                ],
            },
        )

    app.dependency_overrides[get_directions_client] = lambda: DirectionsClient(
        api_key="test-key", transport=httpx.MockTransport(handler), use_cache=False
    )

    payload = {
        "start_location": "100 Main St, Springfield, IL",
        "jobs": [
            {"id": 1, "lat": 39.80, "lng": -89.65, "estimated_duration": 60},
            {"id": 2, "lat": 39.85, "lng": -89.65, "estimated_duration": 45},
        ],
    }
    route = client.post("/dispatch/optimize-route", json=payload, headers=admin_headers).json()

    assert route["start"]["source"] == "geocoded"
    assert route["optimized_order"] == [0, 1]
    assert route["total_distance"] == 20.0
    assert route["total_duration"] == 2 * (20 + 5) + 60 + 45
    assert {leg["traffic_condition"] for leg in route["route_legs"]} == {"moderate"}
    assert route["route_legs"][0]["directions"] == "via IL-29"


@pytest.mark.parametrize(
    "payload, detail",
    [
        ({"start_location": START, "jobs": []}, "At least one job is required"),
        ({"start_location": "  ", "jobs": [{"id": 1, "lat": 39.8, "lng": -89.6}]}, "Start location is required"),
    ],
)
def test_optimize_route_rejects_bad_requests(client, admin_headers, payload, detail):
    resp = client.post("/dispatch/optimize-route", json=payload, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == detail


def test_optimize_route_is_rate_limited(client, admin_headers):
    payload = {"start_location": START, "jobs": []}
    for _ in range(DISPATCH_RATE_LIMIT_RPM):
        assert client.post("/dispatch/optimize-route", json=payload, headers=admin_headers).status_code == 400

    resp = client.post("/dispatch/optimize-route", json=payload, headers=admin_headers)
    assert resp.status_code == 429
    assert "Retry-After" in resp.headers
