import math

import pytest

from circlerun.geo import (
    EARTH_RADIUS_M,
    METERS_PER_MILE,
    bearing_degrees,
    distance_meters,
    offset,
    segment_distances_miles,
    total_distance_miles,
)
from circlerun.models import Coordinate
from conftest import SF, fixed_loop


def test_offset_north_and_east_round_trip_through_haversine():
    north = offset(SF, 0.0, 1000.0)
    east = offset(SF, 1000.0, 0.0)
    assert north.longitude == SF.longitude
    assert north.latitude > SF.latitude
    assert distance_meters(SF, north) == pytest.approx(1000.0, rel=1e-4)
    assert distance_meters(SF, east) == pytest.approx(1000.0, rel=1e-3)


def test_offset_uses_single_earth_radius():
    moved = offset(Coordinate(latitude=0.0, longitude=0.0), 0.0, EARTH_RADIUS_M * math.pi / 180)
    assert moved.latitude == pytest.approx(1.0)


def test_offset_wraps_longitude_across_antimeridian():
    near = Coordinate(latitude=10.0, longitude=179.999)
    moved = offset(near, 1000.0, 0.0)
    assert -180.0 <= moved.longitude < -179.0


def test_distance_is_zero_for_same_point():
    assert distance_meters(SF, SF) == 0.0


def test_bearing_cardinal_directions():
    assert bearing_degrees(SF, offset(SF, 0.0, 500.0)) == pytest.approx(0.0, abs=1e-6)
    assert bearing_degrees(SF, offset(SF, 500.0, 0.0)) == pytest.approx(90.0, abs=0.01)
    assert bearing_degrees(SF, offset(SF, 0.0, -500.0)) == pytest.approx(180.0, abs=1e-6)
    west = bearing_degrees(SF, offset(SF, -500.0, 0.0))
    assert west == pytest.approx(270.0, abs=0.01)
    assert 0.0 <= west < 360.0


def test_total_distance_is_zero_below_two_points():
    assert total_distance_miles([]) == 0.0
    assert total_distance_miles([SF]) == 0.0


def test_total_distance_is_symmetric_under_reversal():
    coords = fixed_loop().coordinates
    forward = total_distance_miles(coords)
    assert forward > 0
    assert total_distance_miles(list(reversed(coords))) == pytest.approx(forward, rel=1e-12)


def test_total_distance_matches_segments():
    a, b, c = SF, offset(SF, 800.0, 0.0), offset(SF, 800.0, 600.0)
    segments = segment_distances_miles([a, b, c])
    assert len(segments) == 2
    assert total_distance_miles([a, b, c]) == pytest.approx(sum(segments))
    assert total_distance_miles([a, b]) == pytest.approx(800.0 / METERS_PER_MILE, rel=1e-3)
