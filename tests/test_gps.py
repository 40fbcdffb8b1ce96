import pytest

from profield.services.gps import calculate_speed, haversine_distance, is_significant_movement


def test_haversine_known_distance():
    # New York City to Los Angeles
    assert haversine_distance(40.7128, -74.0060, 34.0522, -118.2437) == pytest.approx(2445, abs=5)


def test_haversine_same_point_is_zero():
    assert haversine_distance(39.78, -89.65, 39.78, -89.65) == 0


def test_speed_from_distance_and_time():
    assert calculate_speed(1.0, 120) == pytest.approx(30.0)
    assert calculate_speed(1.0, 0) == 0.0


@pytest.mark.parametrize(
    "distance, speed, moving",
    [
        (0.5, 25.0, True),
        (0.05, 25.0, False),  # GPS jitter
        (0.2, 0.1, False),  # drifted over a long gap
        (0.093, 0.5, True),
    ],
)
def test_significant_movement(distance, speed, moving):
    assert is_significant_movement(distance, speed) is moving
