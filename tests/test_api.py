import gpxpy
import pytest
from fastapi.testclient import TestClient

import main
from circlerun import config
from circlerun.favorites import FavoritesStore
from circlerun.search import LoopGenerator
from conftest import FailingProvider, RingEchoProvider

LOOP_BODY = {"lat": 37.7749, "lon": -122.4194, "distance_miles": 3.0}


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "GPX_EXPORT_DIR", str(tmp_path / "exports"))
    main.app.state.generator = LoopGenerator(RingEchoProvider(stretch=1.05), retry_delay=0.0)
    main.app.state.favorites = FavoritesStore(tmp_path / "favorites.json")
    return TestClient(main.app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["busy"] is False


def test_ring_preview(client):
    response = client.get("/ring", params={"lat": 37.7749, "lon": -122.4194, "distance_miles": 3.0, "num_points": 8})
    assert response.status_code == 200
    body = response.json()
    assert len(body["waypoints"]) == 10
    assert body["waypoints"][0]["role"] == "start"
    assert body["waypoints"][-1]["role"] == "return"
    assert body["scale_miles"] > 0


def test_create_loop(client):
    response = client.post("/loops", json=LOOP_BODY)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "converged"
    assert body["within_tolerance"] is True
    assert abs(body["distance_miles"] - 3.0) <= 0.03
    assert body["error_miles"] <= 0.03
    assert body["geometry"]["type"] == "LineString"
    first = body["geometry"]["coordinates"][0]
    assert first == pytest.approx([-122.4194, 37.7749])
    assert len(body["history"]) == body["attempts"]
    assert body["gpx_path"] is None


def test_create_loop_with_gpx_export(client, tmp_path):
    response = client.post("/loops", json={**LOOP_BODY, "export_gpx": True})
    assert response.status_code == 200
    files = list((tmp_path / "exports").glob("CircleRoute_*.gpx"))
    assert len(files) == 1
    assert response.json()["gpx_path"] == str(files[0])


def test_create_loop_without_candidate_is_404(client):
    main.app.state.generator = LoopGenerator(FailingProvider(), retry_delay=0.0)
    response = client.post("/loops", json=LOOP_BODY)
    assert response.status_code == 404


def test_create_loop_while_busy_is_409(client):
    generator = main.app.state.generator
    generator._acquire()
    try:
        response = client.post("/loops", json=LOOP_BODY)
    finally:
        generator._release()
    assert response.status_code == 409


def test_create_loop_validates_input(client):
    response = client.post("/loops", json={**LOOP_BODY, "lat": 120.0})
    assert response.status_code == 422


def test_favorites_flow(client):
    coords = [[-122.4194, 37.7749], [-122.41, 37.7749], [-122.41, 37.78], [-122.4194, 37.7749]]
    created = client.post("/favorites", json={"name": "Marina Loop", "coordinates": coords})
    assert created.status_code == 201
    assert created.json()["distance_miles"] > 0

    assert client.post("/favorites", json={"name": "Marina Loop", "coordinates": coords}).status_code == 409

    listed = client.get("/favorites").json()
    assert [f["name"] for f in listed] == ["Marina Loop"]
    assert listed[0]["geometry"]["coordinates"][1] == pytest.approx([-122.41, 37.7749])

    gpx = client.get("/favorites/Marina Loop/gpx")
    assert gpx.status_code == 200
    assert gpx.headers["content-type"].startswith("application/gpx+xml")
    assert len(gpxpy.parse(gpx.text).tracks[0].segments[0].points) == 4

    assert client.delete("/favorites/Marina Loop").status_code == 204
    assert client.get("/favorites").json() == []
    assert client.delete("/favorites/Marina Loop").status_code == 404
    assert client.get("/favorites/Marina Loop/gpx").status_code == 404


def test_favorite_with_bad_coordinates_is_422(client):
    response = client.post("/favorites", json={"name": "Broken", "coordinates": [[0.0, 95.0], [0.0, 0.0]]})
    assert response.status_code == 422


def test_create_loop_with_smoothing_keeps_measured_distance(client):
    plain = client.post("/loops", json=LOOP_BODY).json()
    smoothed = client.post("/loops", json={**LOOP_BODY, "smooth": True})
    assert smoothed.status_code == 200
    body = smoothed.json()

    assert body["distance_miles"] == plain["distance_miles"]
    assert len(body["geometry"]["coordinates"]) == len(plain["geometry"]["coordinates"])
    assert body["geometry"]["coordinates"] != plain["geometry"]["coordinates"]
