"""Command line entry point.

Usage:
    python -m whatdidido serve
    python -m whatdidido stats --date 2025-03-04
    python -m whatdidido export --range "last week" --stats -o week.json
"""

import argparse
import json
import logging
import sys

from .config import ConfigManager
from .errors import StorageError, ValidationError
from .export import DataExporter
from .logs import setup_from_config
from .stats import ActivityStats
from .storage import SampleStore
from .timeparser import TimeParser

logger = logging.getLogger("whatdidido")


def cmd_serve(args, config_mgr):
    from web.app import create_app

    config = config_mgr.config
    store = SampleStore(args.db or config.storage.db_path)
    app = create_app(config_mgr, store)
    host = args.host or config.web.host
    port = args.port or config.web.port
    logger.info(f"Starting JSON API on http://{host}:{port}")
    try:
        app.run(host=host, port=port)
    finally:
        store.close()
    return 0


def cmd_stats(args, config_mgr):
    with SampleStore(args.db or config_mgr.config.storage.db_path) as store:
        stats = ActivityStats.from_config(store, config_mgr.config)
        day = stats.get_day_stats(args.date or TimeParser().today, interval_minutes=args.interval, limit=0)

    print(f"{day.date}: {day.total} samples")
    for category, hours in day.hours.items():
        print(f"  {category:<14} {day.counts[category]:>5}  {day.percentages[category]:6.1f}%  {hours:6.2f}h")
    return 0


def cmd_export(args, config_mgr):
    parser = TimeParser()
    if args.range in ("today", "last7days", "last30days", "alltime"):
        range_type = args.range
        start, end = parser.export_range(range_type)
    elif args.start or args.end:
        range_type = "custom"
        start, end = parser.export_range("custom", args.start, args.end)
    else:
        range_type = "custom"
        start, end = parser.parse(args.range)

    config = config_mgr.config
    with SampleStore(args.db or config.storage.db_path) as store:
        exporter = DataExporter(store, config.storage.export_path)
        bundle = exporter.export_range(start, end, include_media=args.media, include_stats=args.stats)
        if args.output == "-":
            json.dump(exporter.to_document(bundle, range_type=range_type), sys.stdout, indent=2)
            print()
        else:
            path = exporter.write_json(bundle, path=args.output, range_type=range_type)
            print(f"Exported {len(bundle.samples)} samples to {path}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog="whatdidido", description="What Did I Do analytics core")
    parser.add_argument("--config", help="Path to config.yaml (default: ~/.config/whatdidido/config.yaml)")
    parser.add_argument("--db", help="Override the database path from the config")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the JSON API")
    serve.add_argument("--host", help="Bind address (default from config)")
    serve.add_argument("--port", type=int, help="Port (default from config)")
    serve.set_defaults(func=cmd_serve)

    stats = subparsers.add_parser("stats", help="Print category totals for a day")
    stats.add_argument("--date", help="Day in YYYY-MM-DD format (default: today)")
    stats.add_argument("--interval", type=float, help="Minutes per sample (default from config)")
    stats.set_defaults(func=cmd_stats)

    export = subparsers.add_parser("export", help="Export samples to JSON")
    export.add_argument("--range", default="today",
                        help="today, last7days, last30days, alltime or a phrase like 'last week'")
    export.add_argument("--start", help="First day of a custom range (YYYY-MM-DD)")
    export.add_argument("--end", help="Last day of a custom range (YYYY-MM-DD)")
    export.add_argument("--media", action="store_true", help="Include image and thumbnail data")
    export.add_argument("--stats", action="store_true", help="Include raw category counts")
    export.add_argument("-o", "--output", help="Output file, or - for stdout (default: export dir)")
    export.set_defaults(func=cmd_export)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    config_mgr = ConfigManager(args.config)
    if args.verbose:
        config_mgr.config.logging.level = "DEBUG"
    setup_from_config(config_mgr.config, console=True if args.command == "serve" else None)

    try:
        return args.func(args, config_mgr)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except StorageError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
