import asyncio

import httpx
import pytest

from profield import cache
from profield.services.directions import (
    DirectionsClient,
    classify_traffic,
    estimate_leg,
    parse_coordinates,
    parse_directions_response,
)


def directions_payload(distance_m=16093, duration_s=1200, in_traffic_s=1500, summary="I-55 N", steps=None):
    leg = {
        "distance": {"value": distance_m},
        "duration": {"value": duration_s},
        "steps": steps or [],
    }
    if in_traffic_s is not None:
        leg["duration_in_traffic"] = {"value": in_traffic_s}
    return {"status": "OK", "routes": [{"summary": summary, "legs": [leg]}]}


@pytest.mark.parametrize(
    "duration, in_traffic, expected",
    [
        (600, None, "unknown"),
        (600, 600, "normal"),
        (600, 540, "normal"),
        (600, 660, "light"),
        (600, 720, "moderate"),
        (600, 840, "heavy"),
    ],
)
def test_classify_traffic(duration, in_traffic, expected):
    assert classify_traffic(duration, in_traffic) == expected


def test_parse_coordinates():
    assert parse_coordinates("39.78, -89.65") == (39.78, -89.65)
    assert parse_coordinates("100 Main St, Springfield") is None
    assert parse_coordinates("91,0") is None
    assert parse_coordinates("") is None


def test_parse_directions_response_with_traffic():
    leg = parse_directions_response(directions_payload())

    assert leg.source == "google"
    assert leg.distance == 10.0
    assert leg.duration == 20
    assert leg.traffic_delay == 5
    assert leg.traffic_condition == "moderate"
    assert leg.directions == "via I-55 N"


def test_parse_directions_response_uses_first_step_without_summary():
    payload = directions_payload(
        summary="", steps=[{"html_instructions": "Head <b>north</b> on <b>Elm St</b>"}], in_traffic_s=None
    )
    leg = parse_directions_response(payload)

    assert leg.directions == "Head north on Elm St"
    assert leg.traffic_delay == 0
    assert leg.traffic_condition == "unknown"


def test_parse_directions_response_rejects_non_ok():
    assert parse_directions_response({"status": "ZERO_RESULTS", "routes": []}) is None


def test_estimate_leg_applies_road_factor():
    leg = estimate_leg((39.7817, -89.6501), (39.8017, -89.6501))

    assert leg.source == "estimate"
    assert leg.traffic_condition == "unknown"
    assert leg.distance == pytest.approx(1.8, abs=0.01)
    assert leg.duration == 4
    assert estimate_leg((39.78, -89.65), (39.78, -89.65)).duration == 1


def test_client_without_key_estimates_without_network():
    def handler(request):
        raise AssertionError("no request expected")

    client = DirectionsClient(api_key=None, transport=httpx.MockTransport(handler), use_cache=False)
    leg = asyncio.run(client.get_leg((39.78, -89.65), (39.80, -89.65)))

    assert leg.source == "estimate"
    assert asyncio.run(client.geocode("1 Main St")) is None


def test_client_sends_driving_request_with_departure_now():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(dict(request.url.params))
        return httpx.Response(200, json=directions_payload())

    client = DirectionsClient(api_key="k", transport=httpx.MockTransport(handler), use_cache=False)
    leg = asyncio.run(client.get_leg((39.78, -89.65), (39.80, -89.65)))

    assert leg.source == "google"
    assert seen["mode"] == "driving"
    assert seen["departure_time"] == "now"
    assert seen["origin"] == "39.78,-89.65"
    assert seen["key"] == "k"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"status": "REQUEST_DENIED", "routes": []}),
        httpx.Response(500, text="upstream exploded"),
        httpx.Response(200, text="not json"),
    ],
)
def test_client_falls_back_to_estimate(response):
    client = DirectionsClient(api_key="k", transport=httpx.MockTransport(lambda request: response), use_cache=False)
    leg = asyncio.run(client.get_leg((39.78, -89.65), (39.80, -89.65)))

    assert leg.source == "estimate"
    assert leg.directions == "Estimated route (directions unavailable)"


def test_client_falls_back_on_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = DirectionsClient(api_key="k", transport=httpx.MockTransport(handler), use_cache=False)
    leg = asyncio.run(client.get_leg((39.78, -89.65), (39.80, -89.65)))
    assert leg.source == "estimate"


class FakeRedis:
    """In-memory stand-in for the get/setex calls the lookup cache makes"""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl


def test_directions_are_cached_under_rounded_coordinates(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(cache, "try_get_redis_client", lambda: fake)
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        return httpx.Response(200, json=directions_payload())

    client = DirectionsClient(api_key="k", transport=httpx.MockTransport(handler))
    first = asyncio.run(client.get_leg((39.78, -89.65), (39.80, -89.65)))
    # Differences past the fourth decimal share the entry
    second = asyncio.run(client.get_leg((39.780001, -89.65), (39.80, -89.650002)))

    assert len(calls) == 1
    assert second == first
    key = "profield:directions:39.7800,-89.6500:39.8000,-89.6500"
    assert list(fake.store) == [key]
    assert fake.ttls[key] == cache.directions_cache.ttl
