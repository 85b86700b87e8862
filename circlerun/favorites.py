"""Favorite routes kept in a JSON file.

Paths are stored as flat ``lat_i`` / ``lng_i`` pairs rather than a nested list so
files written by the mobile app stay readable.
"""
import json
import logging
import uuid
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from .errors import FavoriteExistsError, FavoriteNotFoundError
from .geo import total_distance_miles
from .models import Coordinate

logger = logging.getLogger(__name__)


class FavoriteRoute(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    path: List[Coordinate]
    run_count: int = 1
    best_time: float = Field(0.0, ge=0, description="Best run time in seconds")
    distance: float = Field(..., ge=0, description="Distance in miles")


def encode_path(path: Sequence[Coordinate]) -> Dict[str, float]:
    data = {}
    for i, c in enumerate(path):
        data[f"lat_{i}"] = c.latitude
        data[f"lng_{i}"] = c.longitude
    return data


def decode_path(data: Dict[str, float]) -> List[Coordinate]:
    indices = sorted(int(key[4:]) for key in data if key.startswith("lat_") and key[4:].isdigit())
    coords = []
    for i in indices:
        lat, lng = data.get(f"lat_{i}"), data.get(f"lng_{i}")
        if lat is None or lng is None:
            continue
        coords.append(Coordinate(latitude=lat, longitude=lng))
    return coords


def to_record(route: FavoriteRoute) -> dict:
    record = route.model_dump(exclude={"path"})
    record["path"] = encode_path(route.path)
    return record


def from_record(record: dict) -> FavoriteRoute:
    fields = dict(record)
    fields["path"] = decode_path(fields.get("path") or {})
    return FavoriteRoute(**fields)


class FavoritesStore:
    def __init__(self, path: Path):
        self.path = Path(path)

    def load_all(self) -> List[FavoriteRoute]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                records = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Favorites file {self.path} is not valid JSON, treating it as empty: {e}")
            return []
        if not isinstance(records, list):
            logger.warning(f"Favorites file {self.path} does not hold a list, treating it as empty")
            return []

        routes = []
        for record in records:
            try:
                routes.append(from_record(record))
            except (ValidationError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping unreadable favorite in {self.path}: {e}")
        return routes

    def get(self, name: str) -> FavoriteRoute:
        for route in self.load_all():
            if route.name == name:
                return route
        raise FavoriteNotFoundError(f"No favorite named {name!r}")

    def save(
        self,
        name: str,
        coordinates: Sequence[Coordinate],
        distance: Optional[float] = None,
        run_time: float = 0.0,
    ) -> FavoriteRoute:
        """Add a favorite. Names are unique; ``distance`` defaults to the measured path length."""
        routes = self.load_all()
        if any(r.name == name for r in routes):
            raise FavoriteExistsError(f"A favorite named {name!r} already exists")

        route = FavoriteRoute(
            name=name,
            path=list(coordinates),
            best_time=run_time,
            distance=total_distance_miles(coordinates) if distance is None else distance,
        )
        routes.append(route)
        self._write(routes)
        logger.info(f"Saved favorite {name!r} ({route.distance:.2f} mi, {len(route.path)} points)")
        return route

    def remove(self, name: str) -> None:
        routes = self.load_all()
        kept = [r for r in routes if r.name != name]
        if len(kept) == len(routes):
            raise FavoriteNotFoundError(f"No favorite named {name!r}")
        self._write(kept)
        logger.info(f"Removed favorite {name!r}")

    def _write(self, routes: List[FavoriteRoute]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump([to_record(r) for r in routes], f)
        tmp.replace(self.path)
