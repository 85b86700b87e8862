import asyncio
import math
from typing import List, Optional, Sequence

import pytest

from circlerun.errors import DirectionsError
from circlerun.geo import distance_meters, METERS_PER_MILE
from circlerun.models import Coordinate, ProviderRoute, Waypoint
from circlerun.ring import build_ring

SF = Coordinate(latitude=37.7749, longitude=-122.4194)


def densify(points: Sequence[Coordinate], step_miles: float = 0.05) -> List[Coordinate]:
    """Split every leg into equal pieces no longer than ``step_miles``."""
    out = [points[0]]
    for a, b in zip(points, points[1:]):
        n = max(1, math.ceil(distance_meters(a, b) / METERS_PER_MILE / step_miles))
        for j in range(1, n + 1):
            t = j / n
            out.append(Coordinate(
                latitude=a.latitude + (b.latitude - a.latitude) * t,
                longitude=a.longitude + (b.longitude - a.longitude) * t,
            ))
    return out


def stretched_route(waypoints: Sequence[Waypoint], stretch: float) -> ProviderRoute:
    """The waypoint polyline scaled about the start, so its length is ``stretch`` times the ring's."""
    origin = waypoints[0].coordinate
    points = [
        Coordinate(
            latitude=origin.latitude + stretch * (w.coordinate.latitude - origin.latitude),
            longitude=origin.longitude + stretch * (w.coordinate.longitude - origin.longitude),
        )
        for w in waypoints
    ]
    coords = densify(points)
    length_m = sum(distance_meters(a, b) for a, b in zip(coords, coords[1:]))
    return ProviderRoute(coordinates=coords, distance_m=length_m)


def fixed_loop(center: Coordinate = SF, radius_miles: float = 1.2, num_points: int = 12) -> ProviderRoute:
    return stretched_route(build_ring(center, radius_miles, num_points), 1.0)


class RingEchoProvider:
    """Routes exactly along the requested ring, ``stretch`` times longer."""

    def __init__(self, stretch: float = 1.05):
        self.stretch = stretch
        self.calls: List[Sequence[Waypoint]] = []
        self.profiles: List[str] = []

    async def route(self, waypoints, profile):
        self.calls.append(list(waypoints))
        self.profiles.append(profile)
        return [stretched_route(waypoints, self.stretch)]


class FixedRouteProvider:
    def __init__(self, route: ProviderRoute):
        self.fixed = route
        self.calls = 0

    async def route(self, waypoints, profile):
        self.calls += 1
        return [self.fixed]


class FailingProvider:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error or DirectionsError("service unavailable", status_code=503)
        self.calls = 0

    async def route(self, waypoints, profile):
        self.calls += 1
        raise self.error


class ScriptedProvider:
    """Plays back a list of answers; callables get the waypoints, exceptions are raised."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = 0

    async def route(self, waypoints, profile):
        answer = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(waypoints)
        return answer


class GatedProvider:
    """Holds every request until ``release`` is set. Build inside a running loop."""

    def __init__(self, inner):
        self.inner = inner
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def route(self, waypoints, profile):
        self.entered.set()
        await self.release.wait()
        return await self.inner.route(waypoints, profile)


@pytest.fixture
def start():
    return SF
