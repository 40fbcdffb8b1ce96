"""
Route optimisation for a technician's day.

Stops are ordered greedily: from the current position always drive to the
nearest unvisited stop (straight-line distance). Stops without coordinates
cannot be placed, so they keep their request order at the end of the route.
Each consecutive pair then gets a driving leg from the directions client,
which falls back to a straight-line estimate on its own.
"""

import asyncio
import logging
from typing import Optional

from fastapi import HTTPException

from ...services.directions import Coordinates, DirectionsClient, LegEstimate, parse_coordinates, unavailable_leg
from ...services.gps import haversine_distance
from .schemas import JobStop, RouteLeg, RouteOptimization, RouteStart

logger = logging.getLogger(__name__)

START_INDEX = -1


def nearest_neighbour_order(start: Coordinates, stops: list[JobStop]) -> list[int]:
    """Indices into stops; ties keep request order"""
    remaining = [(i, s.coordinates) for i, s in enumerate(stops) if s.coordinates is not None]
    unlocated = [i for i, s in enumerate(stops) if s.coordinates is None]

    order = []
    current = start
    while remaining:
        # min() returns the first of equal keys, so earlier stops win ties
        nearest = min(remaining, key=lambda item: haversine_distance(current[0], current[1], item[1][0], item[1][1]))
        order.append(nearest[0])
        current = nearest[1]
        remaining.remove(nearest)

    return order + unlocated


async def resolve_start(
    start_location: str, stops: list[JobStop], client: DirectionsClient
) -> RouteStart:
    """"lat,lng" literal, then geocoding, then the first located stop"""
    coords = parse_coordinates(start_location)
    if coords:
        return RouteStart(latitude=coords[0], longitude=coords[1], source="coordinates")

    coords = await client.geocode(start_location)
    if coords:
        return RouteStart(latitude=coords[0], longitude=coords[1], source="geocoded", address=start_location)

    for stop in stops:
        if stop.coordinates is not None:
            logger.info(f"📍 Could not resolve start '{start_location}'; starting from stop {stop.id or stop.title}")
            return RouteStart(
                latitude=stop.lat, longitude=stop.lng, source="first_stop", address=stop.address
            )

    raise HTTPException(status_code=400, detail="Could not resolve the start location or any stop coordinates")


async def _leg(
    client: DirectionsClient, origin: Optional[Coordinates], destination: Optional[Coordinates]
) -> LegEstimate:
    if origin is None or destination is None:
        return unavailable_leg()
    return await client.get_leg(origin, destination)


async def optimize_route(
    stops: list[JobStop], start_location: str, client: DirectionsClient
) -> RouteOptimization:
    if not stops:
        raise HTTPException(status_code=400, detail="At least one job is required")
    if not (start_location or "").strip():
        raise HTTPException(status_code=400, detail="Start location is required")

    start = await resolve_start(start_location.strip(), stops, client)
    start_coords = (start.latitude, start.longitude)
    order = nearest_neighbour_order(start_coords, stops)

    path = [START_INDEX] + order

    def coords_of(index: int) -> Optional[Coordinates]:
        return start_coords if index == START_INDEX else stops[index].coordinates

    estimates = await asyncio.gather(
        *(_leg(client, coords_of(a), coords_of(b)) for a, b in zip(path, path[1:]))
    )

    legs = [
        RouteLeg(
            from_stop=a,
            to_stop=b,
            distance=est.distance,
            duration=est.duration,
            directions=est.directions,
            traffic_delay=est.traffic_delay,
            traffic_condition=est.traffic_condition,
            source=est.source,
        )
        for (a, b), est in zip(zip(path, path[1:]), estimates)
    ]

    driving = sum(leg.duration + leg.traffic_delay for leg in legs)
    on_site = sum(stop.estimated_duration for stop in stops)
    result = RouteOptimization(
        optimized_order=order,
        total_distance=round(sum(leg.distance for leg in legs), 2),
        total_duration=driving + on_site,
        route_legs=legs,
        start=start,
    )
    logger.info(
        f"🗺️ Optimized {len(stops)} stops: {result.total_distance} mi, {result.total_duration} min "
        f"({sum(1 for leg in legs if leg.source == 'google')}/{len(legs)} legs from Google)"
    )
    return result
