#!/usr/bin/env python3
"""PulseMap incident sync CLI.

Commands:
    run      - Sync recent incidents for a district
    incident - Sync a single incident by feed id
    geocode  - Retry geocoding for stored incidents without coordinates
    stats    - Show store and geocode cache statistics
"""

import argparse
import asyncio
import json
import logging
import sys

from pulsemap.context import build_context
from pulsemap.core.config import get_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Silence noisy libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("azure").setLevel(logging.WARNING)


async def cmd_run(args) -> int:
    """Run one full sync cycle."""
    config = get_config()
    district = args.district or config.default_district
    days = args.days if args.days is not None else config.days_back

    async with build_context(config) as ctx:
        result = await ctx.sync.sync_incidents(district, days)

    if args.output_json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"\nSync of {district} (last {days} days)")
        print("-" * 40)
        print(f"Fetched:   {result.fetched}")
        print(f"Processed: {result.processed}")
        print(f"Geocoded:  {result.geocoded}")
        print(f"Errors:    {len(result.errors)}")
        for error in result.errors:
            print(f"  - {error}")

    return 0 if not result.errors else 1


async def cmd_incident(args) -> int:
    """Sync a single incident and show the stored document."""
    async with build_context() as ctx:
        doc = await ctx.sync.sync_incident_by_id(args.incident_id)

    if doc is None:
        print(f"Incident {args.incident_id} not found.")
        return 1

    if args.output_json:
        print(json.dumps(doc.to_dict(), indent=2, ensure_ascii=False))
        return 0

    coords = (
        f"{doc.coordinates.lat:.5f}, {doc.coordinates.lng:.5f}" if doc.coordinates else "N/A"
    )
    print(f"\n{doc.title or doc.category}")
    print("-" * 60)
    print(f"ID:         {doc.id}")
    print(f"Thread:     {doc.thread_id}")
    print(f"Published:  {doc.published:%Y-%m-%d %H:%M} UTC")
    print(f"Location:   {doc.location} ({doc.district})")
    print(f"Coords:     {coords} [{doc.precision}]")
    print(f"Severity:   {doc.severity}")
    print(f"Status:     {doc.incident_status}")
    if doc.updates:
        print(f"Updates:    {len(doc.updates)}")
        for update in doc.updates:
            print(f"  {update.timestamp:%Y-%m-%d %H:%M}  {update.status or ''}")
    return 0


async def cmd_geocode(args) -> int:
    """Run only the backlog geocoding sweep."""
    async with build_context() as ctx:
        geocoded = await ctx.sync.geocode_backlog(args.batch_size)

    if args.output_json:
        print(json.dumps({"geocoded": geocoded}))
    else:
        print(f"Geocoded {geocoded} incidents")
    return 0


async def cmd_stats(args) -> int:
    """Show incident and geocode cache statistics."""
    async with build_context() as ctx:
        stats = await ctx.sync.get_sync_stats()

    if args.output_json:
        print(json.dumps(stats, indent=2))
        return 0

    incidents = stats["incidents"]
    print(f"\n{'Total':<15} {incidents['total']}")
    print(f"{'Active':<15} {incidents['active']}")
    print(f"{'Geocoded':<15} {incidents['geocoded']}")
    print(f"{'Needs geocode':<15} {incidents['needsGeocode']}")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="PulseMap incident sync - ingest and enrich Politiloggen incidents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json", action="store_true", dest="output_json", help="Output results as JSON"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # run command
    run_parser = subparsers.add_parser("run", help="Sync recent incidents")
    run_parser.add_argument("--district", help="Police district (default from config)")
    run_parser.add_argument("--days", type=int, help="Days to look back (default from config)")
    run_parser.set_defaults(func=cmd_run)

    # incident command
    incident_parser = subparsers.add_parser("incident", help="Sync a single incident")
    incident_parser.add_argument("incident_id", help="Politiloggen incident id")
    incident_parser.set_defaults(func=cmd_incident)

    # geocode command
    geocode_parser = subparsers.add_parser(
        "geocode", help="Retry geocoding for incidents without coordinates"
    )
    geocode_parser.add_argument(
        "--batch-size", type=int, default=50, help="Incidents per sweep (default: 50)"
    )
    geocode_parser.set_defaults(func=cmd_geocode)

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Show sync statistics")
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        return 1

    return asyncio.run(args.func(args))


if __name__ == "__main__":
    sys.exit(main())
