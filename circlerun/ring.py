"""Waypoint ring placement around the start point."""
import math
from typing import List, Sequence

from .geo import METERS_PER_MILE, offset, total_distance_miles
from .models import Coordinate, Waypoint, WaypointRole

# Routed paths run longer than the idealised circle, and the gap widens with
# distance, so the initial radius is inflated by 1 + target/5 and then capped.
MAX_INITIAL_SCALE_MILES = 2.0
DEFAULT_ACCURACY_M = 5.0


def initial_scale(target_miles: float) -> float:
    """First ring radius (miles) to try for a loop of ``target_miles``."""
    if target_miles <= 0:
        raise ValueError(f"target distance must be positive, got {target_miles}")
    base = math.sqrt(target_miles / (2 * math.pi))
    adjustment = 1.0 + target_miles / 5.0
    return min(base * adjustment, MAX_INITIAL_SCALE_MILES)


def ring_points(center: Coordinate, radius_miles: float, num_points: int) -> List[Coordinate]:
    radius_m = radius_miles * METERS_PER_MILE
    step = 2.0 * math.pi / num_points
    points = []
    for i in range(num_points):
        angle = step * i
        points.append(offset(center, radius_m * math.cos(angle), radius_m * math.sin(angle)))
    return points


def build_ring(
    center: Coordinate,
    radius_miles: float,
    num_points: int,
    accuracy_m: float = DEFAULT_ACCURACY_M,
) -> List[Waypoint]:
    """Return [start] + ``num_points`` ring waypoints + [start] for one request.

    Ring point i sits at angle 2*pi*i/N, counter-clockwise from east.
    """
    if num_points < 3:
        raise ValueError(f"a ring needs at least 3 points, got {num_points}")
    if radius_miles <= 0:
        raise ValueError(f"ring radius must be positive, got {radius_miles}")

    waypoints = [Waypoint(coordinate=center, role=WaypointRole.START, accuracy_m=accuracy_m, name="Start")]
    for i, point in enumerate(ring_points(center, radius_miles, num_points)):
        waypoints.append(Waypoint(
            coordinate=point,
            role=WaypointRole.RING,
            index=i,
            accuracy_m=accuracy_m,
            name=f"Point {i + 1}",
        ))
    waypoints.append(Waypoint(coordinate=center, role=WaypointRole.RETURN, accuracy_m=accuracy_m, name="Start"))
    return waypoints


def ring_perimeter_miles(waypoints: Sequence[Waypoint]) -> float:
    """Straight-line length of the waypoint sequence, start to start."""
    return total_distance_miles([w.coordinate for w in waypoints])
