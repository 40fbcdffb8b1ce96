"""
Google Maps Directions + Geocoding client used by dispatch routing.

Every lookup fails open: a missing API key, a network error or a non-OK
status produces a straight-line estimate instead of an error, so route
optimisation always returns a full set of legs.
"""

import logging
import re
from dataclasses import asdict, dataclass
from typing import Optional

import httpx

from ..cache import directions_cache, directions_key, geocode_cache, geocode_key
from ..config import GOOGLE_MAPS_API_KEY, GOOGLE_MAPS_BASE_URL
from .gps import haversine_distance

logger = logging.getLogger(__name__)

METERS_PER_MILE = 1609.344

# Straight-line distance understates road distance
ROAD_FACTOR = 1.3
FALLBACK_SPEED_MPH = 30

HTML_TAG = re.compile(r"<[^>]+>")

Coordinates = tuple[float, float]


@dataclass
class LegEstimate:
    distance: float  # miles
    duration: int  # minutes, free-flow
    traffic_delay: int = 0  # minutes
    traffic_condition: str = "unknown"
    directions: str = ""
    source: str = "estimate"  # google, estimate


def classify_traffic(duration_seconds: Optional[float], in_traffic_seconds: Optional[float]) -> str:
    """
    Bucket the in-traffic / free-flow ratio:
    <= 1.0 normal, < 1.15 light, < 1.4 moderate, otherwise heavy.
    """
    if not in_traffic_seconds or not duration_seconds:
        return "unknown"
    ratio = in_traffic_seconds / duration_seconds
    if ratio <= 1.0:
        return "normal"
    if ratio < 1.15:
        return "light"
    if ratio < 1.4:
        return "moderate"
    return "heavy"


def strip_html(text: Optional[str]) -> str:
    return HTML_TAG.sub("", text or "").strip()


def estimate_leg(origin: Coordinates, destination: Coordinates) -> LegEstimate:
    """Straight-line fallback: haversine x road factor at a flat city speed"""
    miles = haversine_distance(origin[0], origin[1], destination[0], destination[1]) * ROAD_FACTOR
    minutes = max(1, round(miles / FALLBACK_SPEED_MPH * 60))
    return LegEstimate(
        distance=round(miles, 2),
        duration=minutes,
        directions="Estimated route (directions unavailable)",
        source="estimate",
    )


def unavailable_leg() -> LegEstimate:
    """Leg touching a stop that has no coordinates"""
    return LegEstimate(distance=0.0, duration=0, directions="Location unavailable", source="estimate")


def parse_coordinates(value: Optional[str]) -> Optional[Coordinates]:
    """Parse a "lat,lng" literal; None when the text is not one"""
    if not value or "," not in value:
        return None
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 2:
        return None
    try:
        lat, lng = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return lat, lng


def parse_directions_response(payload: dict) -> Optional[LegEstimate]:
    """Turn a Directions API body into a leg, or None when unusable"""
    if payload.get("status") != "OK" or not payload.get("routes"):
        return None

    route = payload["routes"][0]
    legs = route.get("legs") or []
    if not legs:
        return None
    leg = legs[0]

    distance_meters = (leg.get("distance") or {}).get("value")
    duration_seconds = (leg.get("duration") or {}).get("value")
    if distance_meters is None or duration_seconds is None:
        return None
    in_traffic_seconds = (leg.get("duration_in_traffic") or {}).get("value")

    delay = 0
    if in_traffic_seconds:
        delay = max(0, round((in_traffic_seconds - duration_seconds) / 60))

    if route.get("summary"):
        text = f"via {route['summary']}"
    else:
        steps = leg.get("steps") or []
        text = strip_html(steps[0].get("html_instructions")) if steps else ""

    return LegEstimate(
        distance=round(distance_meters / METERS_PER_MILE, 2),
        duration=round(duration_seconds / 60),
        traffic_delay=delay,
        traffic_condition=classify_traffic(duration_seconds, in_traffic_seconds),
        directions=text,
        source="google",
    )


class DirectionsClient:
    """Thin async wrapper over the Google Maps web services"""

    def __init__(
        self,
        api_key: Optional[str] = GOOGLE_MAPS_API_KEY,
        base_url: str = GOOGLE_MAPS_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
        use_cache: bool = True,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout
        self.use_cache = use_cache

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _get_json(self, path: str, params: dict) -> Optional[dict]:
        params = {**params, "key": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(f"{self.base_url}/{path}", params=params)
            if resp.status_code >= 400:
                logger.warning(f"⚠️ Google Maps {path} HTTP {resp.status_code}: {resp.text[:200]}")
                return None
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ Google Maps {path} request failed: {e}")
            return None

    async def geocode(self, address: str) -> Optional[Coordinates]:
        """Resolve a street address to coordinates"""
        address = (address or "").strip()
        if not address or not self.enabled:
            return None

        key = geocode_key(address)
        if self.use_cache:
            cached = geocode_cache.get(key)
            if cached:
                return cached[0], cached[1]

        payload = await self._get_json("geocode/json", {"address": address})
        if not payload or payload.get("status") != "OK" or not payload.get("results"):
            logger.info(f"📍 Geocoding found nothing for '{address}'")
            return None

        location = payload["results"][0]["geometry"]["location"]
        coords = (float(location["lat"]), float(location["lng"]))
        if self.use_cache:
            geocode_cache.set(key, list(coords))
        return coords

    async def get_leg(self, origin: Coordinates, destination: Coordinates) -> LegEstimate:
        """Driving leg with live traffic, or a straight-line estimate"""
        if not self.enabled:
            return estimate_leg(origin, destination)

        key = directions_key(origin, destination)
        if self.use_cache:
            cached = directions_cache.get(key)
            if cached:
                return LegEstimate(**cached)

        payload = await self._get_json(
            "directions/json",
            {
                "origin": f"{origin[0]},{origin[1]}",
                "destination": f"{destination[0]},{destination[1]}",
                "mode": "driving",
                "departure_time": "now",
            },
        )
        leg = parse_directions_response(payload) if payload else None
        if leg is None:
            status = payload.get("status") if payload else "no response"
            logger.info(f"🧭 Directions unavailable ({status}); using estimate")
            return estimate_leg(origin, destination)

        if self.use_cache:
            directions_cache.set(key, asdict(leg))
        return leg


def get_directions_client() -> DirectionsClient:
    """FastAPI dependency; tests override it with a stubbed transport"""
    return DirectionsClient()
