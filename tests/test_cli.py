import json

from schoolbus.cli import main
from schoolbus.routing.models import RouteLeg


def test_cli_distance(capsys):
    assert main(["distance", "40.7128,-74.0060", "34.0522,-118.2437"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("39")
    assert "km" in out and "mi" in out


def test_cli_route_eta_json(monkeypatch, capsys):
    def fake_compute_route(self, origin, destination, provider=None, **kwargs):
        return RouteLeg(duration_minutes=12.5, distance_km=6.1, provider="osrm")

    monkeypatch.setattr("schoolbus.routing.backend.RoutingBackend.compute_route", fake_compute_route)

    assert main(["route-eta", "--origin", "37.0,-122.0", "--destination", "37.05,-122.0", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data == {"eta_minutes": 12.5, "distance_km": 6.1, "traffic_factor": 1.0, "provider": "osrm"}


def test_cli_optimize(tmp_path, capsys):
    stops = [
        {"id": "a", "name": "Oak", "coordinate": {"lat": 0, "lon": 0}},
        {"id": "b", "name": "Elm", "coordinate": {"lat": 0, "lon": 0.02}},
        {"id": "c", "name": "Pine", "coordinate": {"lat": 0, "lon": 0.01}},
    ]
    path = tmp_path / "stops.json"
    path.write_text(json.dumps(stops), encoding="utf-8")

    assert main(["optimize", "--stops", str(path), "--destination", "0,0.03", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert [s["id"] for s in data["ordered_stops"]] == ["a", "c", "b", "school"]


def test_cli_optimize_empty_stops_fails(tmp_path, capsys):
    path = tmp_path / "stops.json"
    path.write_text("[]", encoding="utf-8")

    assert main(["optimize", "--stops", str(path)]) == 1
    assert "No stops to optimize" in capsys.readouterr().out


def test_cli_route_report(tmp_path, capsys):
    route = {
        "id": "r1",
        "name": "North Loop",
        "capacity": 40,
        "estimated_distance_km": 10,
        "estimated_duration_minutes": 60,
        "school": {"lat": 0, "lon": 0.03},
        "stops": [
            {"id": "a", "name": "Oak", "coordinate": {"lat": 0, "lon": 0}},
            {"id": "b", "name": "Elm", "coordinate": {"lat": 0, "lon": 0.01}},
        ],
    }
    path = tmp_path / "route.json"
    path.write_text(json.dumps(route), encoding="utf-8")

    assert main(["route-report", "--routes", str(path), "--assignments", "20"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report[0]["route_id"] == "r1"
    assert report[0]["efficiency_score"] == 80.0
    assert report[0]["optimization"]["ordered_stops"][-1]["id"] == "school"


def test_cli_playback_window(tmp_path, capsys):
    positions = [
        {"coordinate": {"lat": 37.02, "lon": -122.0}, "timestamp": "2026-01-05T07:02:00Z", "speed": 20},
        {"coordinate": {"lat": 37.0, "lon": -122.0}, "timestamp": "2026-01-05T07:00:00Z", "speed": 0},
        {"coordinate": {"lat": 37.01, "lon": -122.0}, "timestamp": "2026-01-05T07:01:00Z", "speed": 20},
    ]
    path = tmp_path / "positions.json"
    path.write_text(json.dumps(positions), encoding="utf-8")

    assert main(["playback", "--positions", str(path), "--end", "2026-01-05T07:01:00Z"]) == 0
    metrics = json.loads(capsys.readouterr().out)
    assert metrics["duration_minutes"] == 1.0
    assert metrics["max_speed_mph"] == 20.0


def test_cli_log_level_override(capsys):
    import logging

    assert main(["--log-level", "debug", "distance", "0,0", "0,1"]) == 0
    assert logging.getLogger().level == logging.DEBUG

    assert main(["--log-level", "WARNING", "distance", "0,0", "0,1"]) == 0
    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


def test_cli_playback_window_on_trail_without_offsets(tmp_path, capsys):
    positions = [
        {"coordinate": {"lat": 37.0, "lon": -122.0}, "timestamp": "2026-01-05T05:30:00", "speed": 0},
        {"coordinate": {"lat": 37.0, "lon": -122.0}, "timestamp": "2026-01-05T07:00:00", "speed": 0},
        {"coordinate": {"lat": 37.01, "lon": -122.0}, "timestamp": "2026-01-05T07:02:00", "speed": 25},
    ]
    path = tmp_path / "positions.json"
    path.write_text(json.dumps(positions), encoding="utf-8")

    assert main(["playback", "--positions", str(path), "--start", "2026-01-05T06:00Z"]) == 0
    metrics = json.loads(capsys.readouterr().out)
    assert metrics["duration_minutes"] == 2.0
    assert metrics["max_speed_mph"] == 25.0
