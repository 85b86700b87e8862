"""Route quality heuristics.

The validator only judges; it never edits a route. See postprocess.smooth_route
for the optional smoothing pass.
"""
from typing import List, Sequence

import networkx as nx
from pydantic import BaseModel, Field

from .geo import segment_distances_miles
from .models import Coordinate, RouteCandidate

MIN_COORDINATES = 3
MAX_SEGMENT_MILES = 1.0
MIN_EDGE_MILES = 0.01  # ~16 m
DEFAULT_TOLERANCE_FRACTION = 0.01


class ValidationReport(BaseModel):
    reasons: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.reasons


def _edge_graph(segments: Sequence[float], min_edge_miles: float) -> nx.Graph:
    """Graph over point indices holding only the segments long enough to count as edges."""
    G = nx.Graph()
    G.add_nodes_from(range(len(segments) + 1))
    for i, length in enumerate(segments):
        if length > min_edge_miles:
            G.add_edge(i, i + 1, length=length)
    return G


class QualityValidator:
    def __init__(
        self,
        tolerance_fraction: float = DEFAULT_TOLERANCE_FRACTION,
        max_segment_miles: float = MAX_SEGMENT_MILES,
        min_edge_miles: float = MIN_EDGE_MILES,
    ):
        self.tolerance_fraction = tolerance_fraction
        self.max_segment_miles = max_segment_miles
        self.min_edge_miles = min_edge_miles

    def structural_reasons(self, coords: Sequence[Coordinate]) -> List[str]:
        """Everything wrong with the shape of a route, independent of its length."""
        if len(coords) < MIN_COORDINATES:
            return [f"only {len(coords)} coordinates, need at least {MIN_COORDINATES}"]

        reasons = []
        segments = segment_distances_miles(coords)
        longest = max(segments)
        if longest > self.max_segment_miles:
            reasons.append(f"segment of {longest:.2f} mi exceeds {self.max_segment_miles:.2f} mi")

        # Endpoints get one implicit edge for the loop closing on itself, so a
        # clean route has exactly two edges at every point.
        G = _edge_graph(segments, self.min_edge_miles)
        last = len(coords) - 1
        bad = [
            node for node in G.nodes
            if G.degree(node) + (1 if node in (0, last) else 0) != 2
        ]
        if bad:
            reasons.append(f"{len(bad)} points without exactly two edges (first at index {bad[0]})")
        return reasons

    def is_structurally_sound(self, coords: Sequence[Coordinate]) -> bool:
        return not self.structural_reasons(coords)

    def check(self, candidate: RouteCandidate, target_miles: float) -> ValidationReport:
        reasons = self.structural_reasons(candidate.coordinates)
        gap = candidate.error_miles(target_miles)
        allowed = target_miles * self.tolerance_fraction
        if gap > allowed:
            reasons.append(f"distance off by {gap:.3f} mi, allowed {allowed:.3f} mi")
        return ValidationReport(reasons=reasons)

    def accepts(self, candidate: RouteCandidate, target_miles: float) -> bool:
        return self.check(candidate, target_miles).ok
