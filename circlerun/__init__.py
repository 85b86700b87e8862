"""CircleRun loop engine: closed running loops of a requested distance built on a directions service."""

from .models import Coordinate, GenerationResult, GenerationStatus, RouteCandidate
from .postprocess import smooth_route
from .search import LoopGenerator
from .validation import QualityValidator

__all__ = [
    "Coordinate",
    "GenerationResult",
    "GenerationStatus",
    "LoopGenerator",
    "QualityValidator",
    "RouteCandidate",
    "smooth_route",
]
