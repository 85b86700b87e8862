"""Scale-correction search: grows or shrinks the waypoint ring until the routed
loop comes back at the requested distance.

Each attempt builds a ring at the current scale (ring radius in miles), asks the
directions provider for a route through it, measures the result and corrects
the scale. The first correction is the damped step ``scale * sqrt(target / d)``;
once two measurements at the same ring size exist the next scale comes from the
secant through them, which lands on the target in one step when routed distance
grows linearly with the radius.
"""
import asyncio
import logging
import math
import uuid
from typing import Callable, List, Optional

from pydantic import BaseModel

from . import config
from .directions import DirectionsProvider
from .errors import GeneratorBusyError
from .geo import total_distance_miles
from .models import (
    AttemptRecord,
    Coordinate,
    GenerationResult,
    GenerationStatus,
    ProviderRoute,
    RouteCandidate,
)
from .ring import DEFAULT_ACCURACY_M, build_ring, initial_scale, ring_perimeter_miles
from .validation import QualityValidator

logger = logging.getLogger(__name__)

MIN_POINTS = 4
# Successive distances closer than error_margin * STALL_FACTOR count as stalled,
# but only when the scale itself moved less than STALL_SCALE_FRACTION. A provider
# that ignores big scale changes is not converging and keeps being retried.
STALL_FACTOR = 0.01
STALL_SCALE_FRACTION = 0.02
MIN_SCALE_MILES = 0.01


class SearchState(BaseModel):
    target_miles: float
    current_scale: float
    num_points: int
    max_attempts: int
    error_margin: float
    attempt_count: int = 0
    previous_distance: Optional[float] = None
    previous_scale: Optional[float] = None
    previous_points: Optional[int] = None
    best_candidate: Optional[RouteCandidate] = None

    def consider(self, candidate: RouteCandidate) -> None:
        best = self.best_candidate
        if best is None or candidate.error_miles(self.target_miles) < best.error_miles(self.target_miles):
            self.best_candidate = candidate

    @property
    def attempts_left(self) -> bool:
        return self.attempt_count < self.max_attempts


class LoopGenerator:
    """Runs one loop search at a time against a directions provider.

    A second request while a search is running is rejected with
    GeneratorBusyError instead of queueing.
    """

    def __init__(
        self,
        provider: DirectionsProvider,
        validator: Optional[QualityValidator] = None,
        profile: str = config.DIRECTIONS_PROFILE,
        num_points: int = config.NUM_POINTS,
        min_points: int = MIN_POINTS,
        error_margin: float = config.ERROR_MARGIN,
        max_attempts: int = config.MAX_ATTEMPTS,
        retry_delay: float = config.RETRY_DELAY,
        accuracy_m: float = DEFAULT_ACCURACY_M,
        validate_structure: bool = True,
    ):
        self.provider = provider
        self.validator = validator or QualityValidator()
        self.profile = profile
        self.num_points = num_points
        self.min_points = min_points
        self.error_margin = error_margin
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.accuracy_m = accuracy_m
        self.validate_structure = validate_structure
        self.state: Optional[SearchState] = None
        self._in_progress = False

    @property
    def busy(self) -> bool:
        return self._in_progress

    def _acquire(self) -> None:
        if self._in_progress:
            raise GeneratorBusyError("a loop search is already running on this generator")
        self._in_progress = True

    def _release(self) -> None:
        self._in_progress = False
        self.state = None

    async def generate(
        self,
        start: Coordinate,
        target_miles: float,
        num_points: Optional[int] = None,
        error_margin: Optional[float] = None,
        max_attempts: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
        request_id: Optional[str] = None,
    ) -> GenerationResult:
        """Search for a loop of ``target_miles`` starting and ending at ``start``."""
        self._acquire()
        try:
            return await self._search(start, target_miles, num_points, error_margin, max_attempts, cancel, request_id)
        finally:
            self._release()

    def start(
        self,
        start: Coordinate,
        target_miles: float,
        on_result: Callable[[GenerationResult], None],
        cancel: Optional[asyncio.Event] = None,
        **options,
    ) -> "asyncio.Task[GenerationResult]":
        """Schedule a search and hand its result to ``on_result``.

        Must be called from a running event loop. If ``cancel`` is set by the
        time the result is ready, the callback is skipped.
        """
        loop = asyncio.get_running_loop()
        self._acquire()

        async def run() -> GenerationResult:
            try:
                result = await self._search(
                    start, target_miles,
                    options.get("num_points"), options.get("error_margin"), options.get("max_attempts"),
                    cancel, options.get("request_id"),
                )
            finally:
                self._release()
            if cancel is not None and cancel.is_set():
                logger.info("Search result dropped, caller cancelled")
            else:
                on_result(result)
            return result

        return loop.create_task(run())

    async def _search(
        self,
        start: Coordinate,
        target_miles: float,
        num_points: Optional[int],
        error_margin: Optional[float],
        max_attempts: Optional[int],
        cancel: Optional[asyncio.Event],
        request_id: Optional[str],
    ) -> GenerationResult:
        rid = request_id or str(uuid.uuid4())
        state = SearchState(
            target_miles=target_miles,
            current_scale=initial_scale(target_miles),
            num_points=num_points or self.num_points,
            max_attempts=max_attempts or self.max_attempts,
            error_margin=self.error_margin if error_margin is None else error_margin,
        )
        self.state = state
        history: List[AttemptRecord] = []

        logger.info(
            f"[{rid}] Loop search: target={target_miles:.2f} mi, scale={state.current_scale:.3f} mi, "
            f"points={state.num_points}, margin={state.error_margin:.3f} mi"
        )

        while state.attempts_left:
            if cancel is not None and cancel.is_set():
                logger.info(f"[{rid}] Cancelled before attempt {state.attempt_count + 1}")
                return self._finish(rid, state, GenerationStatus.CANCELLED, history, "search cancelled")

            state.attempt_count += 1
            scale, points = state.current_scale, state.num_points
            waypoints = build_ring(start, scale, points, self.accuracy_m)
            logger.info(
                f"[{rid}] Attempt {state.attempt_count}/{state.max_attempts}: scale={scale:.3f} mi, "
                f"points={points}, ring perimeter={ring_perimeter_miles(waypoints):.2f} mi"
            )

            try:
                routes = await self.provider.route(waypoints, self.profile)
            except Exception as e:
                routes, failure = None, f"provider error: {e}"
            else:
                failure = None if routes else "provider returned no routes"

            candidate = None
            if failure is None:
                candidate, failure = self._evaluate(routes[0])

            if failure is not None:
                history.append(AttemptRecord(
                    attempt=state.attempt_count, scale_miles=scale, num_points=points, outcome=failure,
                ))
                logger.warning(f"[{rid}] Attempt {state.attempt_count} failed: {failure}")
                if state.num_points > self.min_points and state.attempts_left:
                    state.num_points -= 1
                    await asyncio.sleep(self.retry_delay)
                    continue
                break

            distance = candidate.computed_distance_miles
            state.consider(candidate)
            history.append(AttemptRecord(
                attempt=state.attempt_count, scale_miles=scale, num_points=points,
                distance_miles=distance, outcome="measured",
            ))
            logger.info(
                f"[{rid}] Attempt {state.attempt_count}: {distance:.3f} mi "
                f"(off by {abs(distance - target_miles):.3f} mi, {len(candidate.coordinates)} points)"
            )

            if self._stalled(state, distance):
                logger.info(f"[{rid}] Distance stopped moving after {state.attempt_count} attempts")
                return self._finish(rid, state, GenerationStatus.CONVERGED, history)

            if abs(distance - target_miles) <= state.error_margin:
                return self._finish(rid, state, GenerationStatus.CONVERGED, history)

            if not state.attempts_left:
                break

            new_scale = self._corrected_scale(state, distance)
            logger.info(
                f"[{rid}] Adjusting scale {scale:.3f} -> {new_scale:.3f} mi "
                f"(factor {new_scale / scale:.3f})"
            )
            state.previous_distance = distance
            state.previous_scale = scale
            state.previous_points = points
            state.current_scale = new_scale
            await asyncio.sleep(self.retry_delay)

        return self._finish(rid, state, GenerationStatus.EXHAUSTED, history)

    def _evaluate(self, route: ProviderRoute):
        """Turn a provider route into a candidate, or explain why it cannot be one."""
        coords = route.coordinates
        if len(coords) < 2:
            return None, f"route has {len(coords)} coordinates"
        if self.validate_structure:
            reasons = self.validator.structural_reasons(coords)
            if reasons:
                return None, "failed quality check: " + "; ".join(reasons)
        distance = total_distance_miles(coords)
        if distance <= 0:
            return None, "route has zero length"
        return RouteCandidate(
            coordinates=coords,
            reported_distance_m=route.distance_m,
            computed_distance_miles=distance,
        ), None

    @staticmethod
    def _stalled(state: SearchState, distance: float) -> bool:
        if state.previous_distance is None:
            return False
        if abs(distance - state.previous_distance) >= state.error_margin * STALL_FACTOR:
            return False
        moved = abs(state.current_scale - state.previous_scale)
        return moved <= STALL_SCALE_FRACTION * state.previous_scale

    @staticmethod
    def _corrected_scale(state: SearchState, distance: float) -> float:
        scale = state.current_scale
        new_scale = scale * math.sqrt(state.target_miles / distance)

        if (
            state.previous_distance is not None
            and state.previous_points == state.num_points
            and abs(scale - state.previous_scale) > 1e-9
        ):
            slope = (distance - state.previous_distance) / (scale - state.previous_scale)
            if slope > 0:
                secant = scale + (state.target_miles - distance) / slope
                # keep the secant inside the range a few damped steps could reach
                if scale / 4 <= secant <= scale * 4:
                    new_scale = secant

        return max(new_scale, MIN_SCALE_MILES)

    def _finish(
        self,
        rid: str,
        state: SearchState,
        status: GenerationStatus,
        history: List[AttemptRecord],
        reason: Optional[str] = None,
    ) -> GenerationResult:
        best = state.best_candidate
        if best is None and status == GenerationStatus.EXHAUSTED:
            status = GenerationStatus.FAILED
            reason = reason or f"no usable route after {state.attempt_count} attempts"

        within = best is not None and self.validator.accepts(best, state.target_miles)

        logger.info(f"[{rid}] Loop search {status.value} after {state.attempt_count} attempts")
        for record in history:
            measured = f"{record.distance_miles:.3f} mi" if record.distance_miles is not None else record.outcome
            logger.info(f"[{rid}]   attempt {record.attempt}: scale {record.scale_miles:.3f} mi -> {measured}")
        if best is not None:
            logger.info(
                f"[{rid}] Best: {best.computed_distance_miles:.3f} mi for target {state.target_miles:.2f} mi "
                f"(within tolerance: {within})"
            )

        return GenerationResult(
            status=status,
            target_miles=state.target_miles,
            candidate=best,
            attempts=state.attempt_count,
            within_tolerance=within,
            reason=reason,
            history=history,
        )
