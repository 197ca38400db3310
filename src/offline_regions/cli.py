"""
Command-line interface for offline region planning and inspection.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import httpx
from dotenv import load_dotenv

from .bounds import (
    GeoPoint,
    calculate_bounds_for_radius,
    calculate_viewport_bounds,
    count_tiles_for_bounds,
)
from .config import OfflineConfig
from .connectivity import HttpConnectivityService
from .events import SourceTag, load_events_file, merge_events
from .orchestrator.pretty import print_bounds_info, print_region_plan_row


def _parse_center(args) -> GeoPoint:
    try:
        return GeoPoint(latitude=args.lat, longitude=args.lon)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _print_bounds(args, bounds, extra: dict):
    config = args.config
    tile_count = count_tiles_for_bounds(bounds, config.min_zoom, config.max_zoom)

    if args.output_format == "json":
        output = dict(extra)
        output.update({
            "region_id": bounds.region_id,
            "bounds": bounds.as_tuple(),
            "polygon": bounds.to_polygon(),
            "zoom_range": [config.min_zoom, config.max_zoom],
            "tile_count": tile_count,
        })
        print(json.dumps(output, indent=2))
        return

    print_bounds_info(bounds)
    print(f"Region id: {bounds.region_id}")
    print(f"Tiles at zoom {config.min_zoom}-{config.max_zoom}: {tile_count}")


def cmd_bounds(args):
    """Show the region downloaded around a point."""
    center = _parse_center(args)
    radius = args.radius if args.radius is not None else args.config.radius_km
    try:
        bounds = calculate_bounds_for_radius(center, radius)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    _print_bounds(args, bounds, {"center": center.as_lng_lat(), "radius_km": radius})


def cmd_viewport(args):
    """Show the region visible in a map viewport."""
    center = _parse_center(args)
    try:
        bounds = calculate_viewport_bounds(center, args.zoom, args.width, args.height)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    _print_bounds(
        args,
        bounds,
        {"center": center.as_lng_lat(), "zoom": args.zoom, "size_px": [args.width, args.height]},
    )


def cmd_plan(args):
    """Show which regions would be requested for saved/joined event lists."""
    config = args.config
    try:
        saved = load_events_file(Path(args.saved), SourceTag.SAVED) if args.saved else []
        joined = load_events_file(Path(args.joined), SourceTag.JOINED) if args.joined else []
    except (OSError, ValueError, KeyError) as e:
        print(f"Error reading events: {e}", file=sys.stderr)
        sys.exit(1)

    events = merge_events(saved, joined)
    max_regions = args.max_regions if args.max_regions is not None else config.max_regions
    if max_regions < 0:
        print(f"Error: max_regions must be >= 0, got {max_regions}", file=sys.stderr)
        sys.exit(1)
    radius = args.radius if args.radius is not None else config.radius_km

    already_downloaded = set()
    if args.history:
        from .history import DownloadHistory

        history = DownloadHistory(Path(args.history))
        already_downloaded = {r.event_id for r in history.get_records(status="downloaded")}

    print(f"{len(saved)} saved + {len(joined)} joined -> {len(events)} unique events")
    if len(events) > max_regions:
        print(f"Only the first {max_regions} events fit the region quota")
    print()

    total_tiles = 0
    for index, poi in enumerate(events[:max_regions], start=1):
        if poi.id in already_downloaded:
            print(f"{index:>4} {poi.id:<20} already downloaded")
            continue
        bounds = calculate_bounds_for_radius(poi.location, radius)
        tile_count = count_tiles_for_bounds(bounds, config.min_zoom, config.max_zoom)
        total_tiles += tile_count
        print_region_plan_row(index, poi, bounds, tile_count)

    print(f"\nTotal tiles to request: {total_tiles}")


def cmd_connectivity(args):
    """Probe network connectivity."""
    url = args.url or args.config.connectivity_url

    async def probe():
        async with httpx.AsyncClient() as client:
            service = HttpConnectivityService(client, url=url, timeout=args.timeout)
            return await service.is_online()

    online = asyncio.run(probe())
    print(f"{url}: {'online' if online else 'offline'}")
    if not online:
        sys.exit(2)


def cmd_stats(args):
    """Show download history statistics."""
    from .history import DownloadHistory

    db_path = Path(args.history)
    if not db_path.exists():
        print(f"No history database found at {db_path}", file=sys.stderr)
        sys.exit(1)

    history = DownloadHistory(db_path)
    print(f"User: {history.get_metadata('user_id')}")
    print("\nRegion Statistics:")
    for status, count in history.get_stats().items():
        print(f"  {status}: {count}")

    if args.verbose:
        print()
        for record in history.get_records():
            line = (
                f"  {record.event_id:<20} {record.status:<12} attempts={record.attempts} "
                f"({record.lat:.5f}, {record.lon:.5f})"
            )
            if record.error_message:
                line += f" error={record.error_message}"
            print(line)


def _add_center_args(parser):
    parser.add_argument("--lat", type=float, required=True, help="Center latitude")
    parser.add_argument("--lon", type=float, required=True, help="Center longitude")
    parser.add_argument(
        "--output-format",
        "-f",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )


def main():
    """Main CLI entry point."""
    load_dotenv()

    # Configure logging - write to file with tracebacks
    logging.basicConfig(
        level=logging.WARNING,  # Default for external libs
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler("offline_regions.log"),
            logging.StreamHandler(sys.stderr),
        ],
    )
    # Enable INFO logs only for our application code
    logging.getLogger("offline_regions").setLevel(logging.INFO)

    try:
        config = OfflineConfig.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    parser = argparse.ArgumentParser(
        description="Plan and inspect offline map region downloads",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.set_defaults(config=config)

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    bounds_parser = subparsers.add_parser(
        "bounds",
        help="Show the region downloaded around a point",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --lat 46.5 --lon 6.5
  %(prog)s --lat 46.5 --lon 6.5 --radius 5 -f json
        """,
    )
    _add_center_args(bounds_parser)
    bounds_parser.add_argument(
        "--radius",
        "-r",
        type=float,
        help=f"Radius in km (default: {config.radius_km})",
    )
    bounds_parser.set_defaults(func=cmd_bounds)

    viewport_parser = subparsers.add_parser(
        "viewport",
        help="Show the region visible in a map viewport",
    )
    _add_center_args(viewport_parser)
    viewport_parser.add_argument("--zoom", "-z", type=float, required=True, help="Zoom level")
    viewport_parser.add_argument("--width", type=int, default=1080, help="Width in px (default: 1080)")
    viewport_parser.add_argument("--height", type=int, default=1920, help="Height in px (default: 1920)")
    viewport_parser.set_defaults(func=cmd_viewport)

    plan_parser = subparsers.add_parser(
        "plan",
        help="Show the regions that would be downloaded for event lists",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Event files are JSON arrays of {"id", "latitude", "longitude", "title"} objects.

Examples:
  %(prog)s --saved saved.json --joined joined.json
  %(prog)s --saved saved.json --max-regions 10 --history ./history.db
        """,
    )
    plan_parser.add_argument("--saved", "-s", help="JSON file with saved events")
    plan_parser.add_argument("--joined", "-j", help="JSON file with joined events")
    plan_parser.add_argument(
        "--max-regions",
        "-n",
        type=int,
        help=f"Region quota (default: {config.max_regions})",
    )
    plan_parser.add_argument(
        "--radius",
        "-r",
        type=float,
        help=f"Radius in km (default: {config.radius_km})",
    )
    plan_parser.add_argument("--history", help="History database; downloaded events are skipped")
    plan_parser.set_defaults(func=cmd_plan)

    connectivity_parser = subparsers.add_parser(
        "connectivity",
        help="Check whether the network is reachable",
    )
    connectivity_parser.add_argument(
        "--url",
        help=f"Probe URL (default: {config.connectivity_url})",
    )
    connectivity_parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Probe timeout in seconds (default: 5)",
    )
    connectivity_parser.set_defaults(func=cmd_connectivity)

    stats_parser = subparsers.add_parser(
        "stats",
        help="Show download history statistics",
    )
    stats_parser.add_argument(
        "--history",
        default="./offline_history.db",
        help="History database (default: ./offline_history.db)",
    )
    stats_parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="List every region",
    )
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
