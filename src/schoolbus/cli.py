"""
SchoolBus CLI entrypoint.

This CLI is intended for quick local checks and debugging without the API server.
It delegates routing to `schoolbus.routing.backend` and ordering to `schoolbus.optimization`.
"""

from __future__ import annotations

import argparse
import json

from schoolbus.catalog.loader import load_positions, load_routes, load_stops
from schoolbus.config.settings import get_settings
from schoolbus.core.geo import Coordinate, haversine_km, km_to_miles
from schoolbus.core.logging import configure_logging
from schoolbus.core.time import parse_datetime
from schoolbus.domain.models import PriorMetrics
from schoolbus.optimization.optimizer import efficiency_score, optimize, optimize_route, suggest_improvements
from schoolbus.playback.metrics import calculate_route_metrics
from schoolbus.routing.backend import RoutingBackend


def _cmd_distance(args: argparse.Namespace) -> int:
    a = Coordinate.parse(args.a)
    b = Coordinate.parse(args.b)
    km = haversine_km(a, b)
    print(f"{km:.2f} km ({km_to_miles(km):.2f} mi)")
    return 0


def _cmd_route_eta(args: argparse.Namespace) -> int:
    """Handle the `route-eta` subcommand."""
    settings = get_settings()
    backend = RoutingBackend(settings)
    leg = backend.compute_route(
        Coordinate.parse(args.origin), Coordinate.parse(args.destination), provider=args.provider
    )

    if args.json:
        payload = {
            "eta_minutes": leg.duration_minutes,
            "distance_km": leg.distance_km,
            "traffic_factor": leg.traffic_factor,
            "provider": leg.provider,
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    print(f"{leg.duration_minutes:.1f} min, {leg.distance_km:.2f} km via {leg.provider}")
    if leg.traffic_factor != 1.0:
        print(f"  traffic factor: {leg.traffic_factor:.2f}")
    return 0


def _cmd_optimize(args: argparse.Namespace) -> int:
    """Handle the `optimize` subcommand."""
    settings = get_settings()
    stops = load_stops(args.stops)
    destination = Coordinate.parse(args.destination) if args.destination else None

    prior = None
    if args.prior_distance is not None or args.prior_duration is not None:
        prior = PriorMetrics(
            distance_km=args.prior_distance or 0,
            duration_minutes=args.prior_duration or 0,
        )

    result = optimize(
        stops,
        destination,
        prior,
        destination_name=args.destination_name,
        speed_kmh=settings.optimization.average_speed_kmh,
        dwell_minutes=settings.optimization.dwell_minutes_per_stop,
    )

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return 0 if result.success else 1

    if not result.success:
        print(result.message)
        return 1

    for stop in result.ordered_stops:
        print(f"{stop.sequence:>2}. {stop.name} ({stop.coordinate.lat:.5f}, {stop.coordinate.lon:.5f})")
    print(f"Total: {result.total_distance_km:.2f} km, ~{result.estimated_duration_minutes:.0f} min")
    if prior is not None:
        s = result.savings
        print(f"Saved: {s.distance_saved_km:.2f} km ({s.distance_percentage}%), {s.time_saved_minutes} min")
    return 0


def _cmd_route_report(args: argparse.Namespace) -> int:
    """Handle the `route-report` subcommand."""
    settings = get_settings()
    routes = load_routes(args.routes)

    report = []
    for route in routes:
        result = optimize_route(
            route,
            speed_kmh=settings.optimization.average_speed_kmh,
            dwell_minutes=settings.optimization.dwell_minutes_per_stop,
        )
        report.append(
            {
                "route_id": route.id,
                "name": route.name,
                "efficiency_score": efficiency_score(route, int(args.assignments)),
                "suggestions": [s.model_dump() for s in suggest_improvements(route, int(args.assignments))],
                "optimization": result.model_dump(mode="json"),
            }
        )
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0


def _cmd_playback(args: argparse.Namespace) -> int:
    settings = get_settings()
    positions = load_positions(args.positions)
    if args.start:
        start = parse_datetime(args.start, settings.app.timezone)
        positions = [p for p in positions if p.timestamp >= start]
    if args.end:
        end = parse_datetime(args.end, settings.app.timezone)
        positions = [p for p in positions if p.timestamp <= end]
    metrics = calculate_route_metrics(positions, speed_limit_mph=settings.playback.speed_limit_mph)
    print(json.dumps(metrics.model_dump(mode="json"), ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the SchoolBus CLI."""
    parser = argparse.ArgumentParser(prog="schoolbus")
    parser.add_argument("--log-level", type=str, default=None, help="Override the configured log level")
    sub = parser.add_subparsers(dest="command", required=True)

    dist = sub.add_parser("distance", help="Great-circle distance between two points.")
    dist.add_argument("a", help="lat,lon")
    dist.add_argument("b", help="lat,lon")
    dist.set_defaults(func=_cmd_distance)

    eta = sub.add_parser("route-eta", help="Travel time between two points via the routing backend.")
    eta.add_argument("--origin", required=True, help="lat,lon")
    eta.add_argument("--destination", required=True, help="lat,lon")
    eta.add_argument("--provider", type=str, default=None, help="osrm, google or mapbox")
    eta.add_argument("--json", action="store_true", help="Print JSON output.")
    eta.set_defaults(func=_cmd_route_eta)

    opt = sub.add_parser("optimize", help="Order route stops by nearest neighbour.")
    opt.add_argument("--stops", required=True, help="JSON file with a list of stops")
    opt.add_argument("--destination", type=str, default=None, help="lat,lon of the school (appended last)")
    opt.add_argument("--destination-name", type=str, default="School")
    opt.add_argument("--prior-distance", type=float, default=None, help="Current route distance in km")
    opt.add_argument("--prior-duration", type=float, default=None, help="Current route duration in minutes")
    opt.add_argument("--json", action="store_true", help="Print JSON output.")
    opt.set_defaults(func=_cmd_optimize)

    rep = sub.add_parser("route-report", help="Efficiency score, suggestions and reordering per route.")
    rep.add_argument("--routes", required=True, help="JSON file with one route or a list of routes")
    rep.add_argument("--assignments", type=int, default=0, help="Active student assignments per route")
    rep.set_defaults(func=_cmd_route_report)

    play = sub.add_parser("playback", help="Distance/speed metrics for a recorded GPS trail.")
    play.add_argument("--positions", required=True, help="JSON file with a list of positions")
    play.add_argument("--start", type=str, default=None, help="ISO datetime (e.g. 2026-01-05T07:00Z)")
    play.add_argument("--end", type=str, default=None, help="ISO datetime (e.g. 2026-01-05T08:30Z)")
    play.set_defaults(func=_cmd_playback)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint (returns a process exit code)."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
