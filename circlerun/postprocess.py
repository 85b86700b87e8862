"""Optional clean-up applied to a route after it has been measured."""
from typing import List, Sequence

from .models import Coordinate


def smooth_route(coords: Sequence[Coordinate], factor: float = 0.3) -> List[Coordinate]:
    """Pull every point toward the midpoint of its neighbours by ``factor``.

    The first and last points use themselves as the missing neighbour. Routes
    shorter than three points come back unchanged. Smoothing shortens a loop
    slightly, so measure distance before calling this.
    """
    if len(coords) < 3:
        return list(coords)
    if not 0.0 <= factor <= 1.0:
        raise ValueError(f"smoothing factor must be within [0, 1], got {factor}")

    last = len(coords) - 1
    smoothed = []
    for i, current in enumerate(coords):
        prev = coords[max(0, i - 1)]
        nxt = coords[min(last, i + 1)]
        smoothed.append(Coordinate(
            latitude=(1 - factor) * current.latitude + (factor / 2) * (prev.latitude + nxt.latitude),
            longitude=(1 - factor) * current.longitude + (factor / 2) * (prev.longitude + nxt.longitude),
        ))
    return smoothed
