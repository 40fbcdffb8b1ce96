"""
GPS helpers - great-circle distance and movement detection for vehicle pings
and route estimates
"""

from math import atan2, cos, radians, sin, sqrt

EARTH_RADIUS_MILES = 3959

# A ping counts as movement only past ~150m at walking pace or faster
MIN_MOVEMENT_MILES = 0.093
MIN_MOVING_SPEED_MPH = 0.5


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in miles between two coordinates"""
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def calculate_speed(distance_miles: float, elapsed_seconds: float) -> float:
    """Average speed in mph; 0 when no time has passed"""
    if elapsed_seconds <= 0:
        return 0.0
    return distance_miles / (elapsed_seconds / 3600)


def is_significant_movement(distance_miles: float, speed_mph: float) -> bool:
    return distance_miles >= MIN_MOVEMENT_MILES and speed_mph >= MIN_MOVING_SPEED_MPH
