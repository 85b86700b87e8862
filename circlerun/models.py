from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# --- Core value types ---

class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")

    def as_lon_lat(self) -> List[float]:
        """GeoJSON ordering."""
        return [self.longitude, self.latitude]


class WaypointRole(str, Enum):
    START = "start"
    RING = "ring"
    RETURN = "return"


class Waypoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    role: WaypointRole
    index: Optional[int] = Field(None, description="Position on the ring, ring points only")
    accuracy_m: Optional[float] = Field(None, gt=0, description="Snapping radius hint for the provider")
    name: str = ""


class ProviderRoute(BaseModel):
    """One route exactly as the directions provider reported it."""
    model_config = ConfigDict(frozen=True)

    coordinates: List[Coordinate]
    distance_m: float = Field(..., ge=0)


class RouteCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    coordinates: List[Coordinate] = Field(..., min_length=2)
    reported_distance_m: float
    computed_distance_miles: float

    def error_miles(self, target_miles: float) -> float:
        return abs(self.computed_distance_miles - target_miles)


# --- Search outcome ---

class GenerationStatus(str, Enum):
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    FAILED = "failed"


class AttemptRecord(BaseModel):
    attempt: int
    scale_miles: float
    num_points: int
    distance_miles: Optional[float] = None
    outcome: str


class GenerationResult(BaseModel):
    """Terminal outcome of one search.

    ``candidate`` is the best route seen, whatever the status. ``within_tolerance``
    is only true when that route also passed the full quality check, distance
    tolerance included, so a best-effort fallback is never reported as a match.
    """
    model_config = ConfigDict(frozen=True)

    status: GenerationStatus
    target_miles: float
    candidate: Optional[RouteCandidate] = None
    attempts: int = 0
    within_tolerance: bool = False
    reason: Optional[str] = None
    history: List[AttemptRecord] = Field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.candidate is not None

    @property
    def distance_miles(self) -> Optional[float]:
        return self.candidate.computed_distance_miles if self.candidate else None

    @property
    def error_miles(self) -> Optional[float]:
        return self.candidate.error_miles(self.target_miles) if self.candidate else None
