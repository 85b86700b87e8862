from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import List, Optional
from pathlib import Path
import datetime
import httpx
import uuid
import logging
from contextlib import asynccontextmanager

from circlerun import config
from circlerun.directions import MapboxDirections
from circlerun.errors import FavoriteExistsError, FavoriteNotFoundError, GeneratorBusyError
from circlerun.favorites import FavoritesStore
from circlerun.gpx import export_gpx, route_name, to_gpx
from circlerun.models import Coordinate, GenerationResult
from circlerun.postprocess import smooth_route
from circlerun.ring import build_ring, initial_scale, ring_perimeter_miles
from circlerun.search import LoopGenerator

# --- Logging ---
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Setup: one client for connection pooling, one generator for the process
    app.state.http_client = httpx.AsyncClient(timeout=config.REQUEST_TIMEOUT)
    if not config.MAPBOX_ACCESS_TOKEN:
        logger.warning("MAPBOX_ACCESS_TOKEN is not set; directions requests will be rejected")
    app.state.generator = LoopGenerator(MapboxDirections(app.state.http_client))
    app.state.favorites = FavoritesStore(Path(config.FAVORITES_PATH))
    logger.info(f"CircleRun Backend v{config.API_VERSION} started")
    yield
    # Teardown
    await app.state.http_client.aclose()
    logger.info("CircleRun Backend shutdown")

app = FastAPI(
    title="CircleRun API",
    description="Circular running loops of a requested distance",
    version=config.API_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# --- Models ---

class Geometry(BaseModel):
    type: str = "LineString"
    coordinates: List[List[float]]  # [lon, lat]

class LoopRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90, description="Start latitude")
    lon: float = Field(..., ge=-180, le=180, description="Start longitude")
    distance_miles: float = Field(..., gt=0, le=50, description="Target loop distance in miles")
    num_points: Optional[int] = Field(None, ge=4, le=23, description="Ring waypoints (provider allows 25 incl. start/end)")
    error_margin: Optional[float] = Field(None, gt=0, description="Accepted distance error in miles")
    max_attempts: Optional[int] = Field(None, ge=1, le=10)
    export_gpx: bool = False
    smooth: bool = Field(False, description="Smooth the returned shape; distance is measured before smoothing")

class AttemptInfo(BaseModel):
    attempt: int
    scale_miles: float
    num_points: int
    distance_miles: Optional[float] = None
    outcome: str

class LoopResponse(BaseModel):
    id: str
    status: str
    target_miles: float
    distance_miles: float
    error_miles: float
    within_tolerance: bool
    attempts: int
    generated_at: str
    geometry: Geometry
    history: List[AttemptInfo] = []
    gpx_path: Optional[str] = None

class RingWaypoint(BaseModel):
    name: str
    role: str
    lat: float
    lon: float

class RingPreview(BaseModel):
    scale_miles: float
    perimeter_miles: float
    waypoints: List[RingWaypoint]

class FavoriteRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    coordinates: List[List[float]] = Field(..., min_length=2, description="[lon, lat] pairs")
    distance_miles: Optional[float] = Field(None, ge=0)
    run_time_s: float = Field(0.0, ge=0)

class FavoriteInfo(BaseModel):
    id: str
    name: str
    distance_miles: float
    run_count: int
    best_time_s: float
    geometry: Geometry

# --- Helper Functions ---

def _geometry(coords: List[Coordinate]) -> Geometry:
    return Geometry(coordinates=[c.as_lon_lat() for c in coords])

def _to_coordinates(pairs: List[List[float]]) -> List[Coordinate]:
    try:
        return [Coordinate(latitude=p[1], longitude=p[0]) for p in pairs]
    except (IndexError, ValueError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid coordinates: {e}")

def _loop_response(request_id: str, result: GenerationResult, coords: List[Coordinate], gpx_path: Optional[Path]) -> LoopResponse:
    candidate = result.candidate
    return LoopResponse(
        id=request_id,
        status=result.status.value,
        target_miles=result.target_miles,
        distance_miles=round(candidate.computed_distance_miles, 3),
        error_miles=round(result.error_miles, 3),
        within_tolerance=result.within_tolerance,
        attempts=result.attempts,
        generated_at=datetime.datetime.now(datetime.timezone.utc).isoformat(),
        geometry=_geometry(coords),
        history=[AttemptInfo(**h.model_dump()) for h in result.history],
        gpx_path=str(gpx_path) if gpx_path else None,
    )

def _generator_busy(app: FastAPI) -> bool:
    generator = getattr(app.state, "generator", None)
    return bool(generator and generator.busy)

def _favorite_info(route) -> FavoriteInfo:
    return FavoriteInfo(
        id=route.id,
        name=route.name,
        distance_miles=round(route.distance, 3),
        run_count=route.run_count,
        best_time_s=route.best_time,
        geometry=_geometry(route.path),
    )

# --- Health & Status Endpoints ---

@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {
        "status": "ok",
        "version": config.API_VERSION,
        "busy": _generator_busy(app),
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat()
    }

# --- Loop Endpoints ---

@app.get("/ring", response_model=RingPreview)
async def preview_ring(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    distance_miles: float = Query(..., gt=0, le=50),
    num_points: int = Query(config.NUM_POINTS, ge=3, le=23),
):
    """Waypoints the first attempt would send to the directions provider."""
    scale = initial_scale(distance_miles)
    waypoints = build_ring(Coordinate(latitude=lat, longitude=lon), scale, num_points)
    return RingPreview(
        scale_miles=round(scale, 4),
        perimeter_miles=round(ring_perimeter_miles(waypoints), 3),
        waypoints=[
            RingWaypoint(name=w.name, role=w.role.value, lat=w.coordinate.latitude, lon=w.coordinate.longitude)
            for w in waypoints
        ],
    )

@app.post("/loops", response_model=LoopResponse)
async def create_loop(request: Request, body: LoopRequest):
    request_id = str(uuid.uuid4())
    generator: LoopGenerator = request.app.state.generator
    try:
        logger.info(f"[{request_id}] Generating loop: lat={body.lat}, lon={body.lon}, distance_miles={body.distance_miles}")
        result = await generator.generate(
            Coordinate(latitude=body.lat, longitude=body.lon),
            body.distance_miles,
            num_points=body.num_points,
            error_margin=body.error_margin,
            max_attempts=body.max_attempts,
            request_id=request_id,
        )

        if not result.found:
            logger.warning(f"[{request_id}] No loop found: {result.reason}")
            raise HTTPException(status_code=404, detail=f"Could not build a loop here: {result.reason}")

        coords = result.candidate.coordinates
        if body.smooth:
            coords = smooth_route(coords)

        gpx_path = None
        if body.export_gpx:
            gpx_path = export_gpx(coords, result.distance_miles, Path(config.GPX_EXPORT_DIR))

        logger.info(f"[{request_id}] Loop {result.status.value}: {result.distance_miles:.2f} mi in {result.attempts} attempts")
        return _loop_response(request_id, result, coords, gpx_path)

    except GeneratorBusyError as e:
        logger.warning(f"[{request_id}] Rejected: {e}")
        raise HTTPException(status_code=409, detail="A loop is already being generated. Try again shortly.")
    except HTTPException as e:
        logger.warning(f"[{request_id}] HTTP Error: {e.detail}")
        raise
    except Exception as e:
        logger.error(f"[{request_id}] Error generating loop: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to generate loop: {str(e)}")

# --- Favorites Endpoints ---

@app.get("/favorites", response_model=List[FavoriteInfo])
async def list_favorites(request: Request):
    return [_favorite_info(r) for r in request.app.state.favorites.load_all()]

@app.post("/favorites", response_model=FavoriteInfo, status_code=201)
async def add_favorite(request: Request, body: FavoriteRequest):
    coords = _to_coordinates(body.coordinates)
    try:
        route = request.app.state.favorites.save(body.name, coords, body.distance_miles, run_time=body.run_time_s)
    except FavoriteExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _favorite_info(route)

@app.delete("/favorites/{name}", status_code=204)
async def delete_favorite(request: Request, name: str):
    try:
        request.app.state.favorites.remove(name)
    except FavoriteNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(status_code=204)

@app.get("/favorites/{name}/gpx")
async def favorite_gpx(request: Request, name: str):
    try:
        route = request.app.state.favorites.get(name)
    except FavoriteNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    filename = f"{route_name(route.distance)}.gpx"
    return Response(
        content=to_gpx(route.path, route_name(route.distance)),
        media_type="application/gpx+xml",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
