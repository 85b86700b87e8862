"""Directions providers: the contract the search loop relies on plus a Mapbox client."""
import logging
from typing import List, Optional, Protocol, Sequence

import httpx
from pydantic import ValidationError

from . import config
from .errors import DirectionsError
from .models import Coordinate, ProviderRoute, Waypoint

logger = logging.getLogger(__name__)


class DirectionsProvider(Protocol):
    async def route(self, waypoints: Sequence[Waypoint], profile: str) -> List[ProviderRoute]:
        """Return candidate routes through ``waypoints`` in order.

        An empty list means the service answered but found nothing. Any other
        failure raises DirectionsError.
        """
        ...


class MapboxDirections:
    """Mapbox Directions v5 over a shared httpx.AsyncClient, full resolution geometry."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        access_token: str = config.MAPBOX_ACCESS_TOKEN,
        base_url: str = config.MAPBOX_BASE_URL,
        exclude: Optional[Sequence[str]] = None,
        timeout: float = config.REQUEST_TIMEOUT,
    ):
        self.client = client
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.exclude = list(config.DIRECTIONS_EXCLUDE if exclude is None else exclude)
        self.timeout = timeout

    def build_request(self, waypoints: Sequence[Waypoint], profile: str):
        if len(waypoints) < 2:
            raise ValueError("a directions request needs at least two waypoints")
        path = ";".join(f"{w.coordinate.longitude:.6f},{w.coordinate.latitude:.6f}" for w in waypoints)
        url = f"{self.base_url}/directions/v5/mapbox/{profile}/{path}"
        params = {
            "access_token": self.access_token,
            "geometries": "geojson",
            "overview": "full",
            "alternatives": "false",
            "steps": "false",
            "radiuses": ";".join(
                f"{w.accuracy_m:g}" if w.accuracy_m else "unlimited" for w in waypoints
            ),
        }
        if self.exclude:
            params["exclude"] = ",".join(self.exclude)
        return url, params

    async def route(self, waypoints: Sequence[Waypoint], profile: str) -> List[ProviderRoute]:
        url, params = self.build_request(waypoints, profile)
        try:
            response = await self.client.get(url, params=params, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise DirectionsError(f"Directions request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200:
            message = data.get("message") if isinstance(data, dict) else None
            raise DirectionsError(
                f"Directions service returned {response.status_code}: {message or response.text[:200]}",
                status_code=response.status_code,
            )

        code = data.get("code")
        if code in ("NoRoute", "NoSegment"):
            logger.info(f"Directions service found no route ({code})")
            return []
        if code != "Ok":
            raise DirectionsError(f"Directions service answered {code!r}: {data.get('message', '')}")

        return [self._parse_route(r) for r in data.get("routes", [])]

    @staticmethod
    def _parse_route(raw: dict) -> ProviderRoute:
        try:
            coords = [
                Coordinate(latitude=lat, longitude=lon)
                for lon, lat, *_ in raw["geometry"]["coordinates"]
            ]
            return ProviderRoute(coordinates=coords, distance_m=float(raw["distance"]))
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise DirectionsError(f"Malformed route geometry: {e}") from e
