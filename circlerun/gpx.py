"""GPX 1.1 export of a finished loop."""
import datetime
import logging
from pathlib import Path
from typing import Optional, Sequence

import gpxpy
import gpxpy.gpx

from .models import Coordinate

logger = logging.getLogger(__name__)

GPX_CREATOR = "CircleRun"


def route_name(distance_miles: float) -> str:
    return f"CircleRoute_{distance_miles:.1f}mi"


def to_gpx(coords: Sequence[Coordinate], name: str) -> str:
    """Single track, single segment GPX document for ``coords``."""
    gpx = gpxpy.gpx.GPX()
    gpx.creator = GPX_CREATOR
    track = gpxpy.gpx.GPXTrack(name=name)
    gpx.tracks.append(track)
    segment = gpxpy.gpx.GPXTrackSegment()
    track.segments.append(segment)
    for c in coords:
        segment.points.append(gpxpy.gpx.GPXTrackPoint(c.latitude, c.longitude))
    return gpx.to_xml(version="1.1")


def export_gpx(
    coords: Sequence[Coordinate],
    distance_miles: float,
    directory: Path,
    now: Optional[datetime.datetime] = None,
) -> Path:
    """Write the route to ``<directory>/CircleRoute_<d>mi_<timestamp>.gpx`` and return the path."""
    name = route_name(distance_miles)
    now = now or datetime.datetime.now(datetime.timezone.utc)
    # colons are not portable in file names
    timestamp = now.replace(microsecond=0).isoformat().replace(":", "-")
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}_{timestamp}.gpx"
    path.write_text(to_gpx(coords, name), encoding="utf-8")
    logger.info(f"GPX file exported to {path}")
    return path
