"""Command-line interface for harvest."""

import asyncio
import json
import sys

from harvest.config import HarvestConfig, settings
from harvest.exceptions import ConfigurationError
from harvest.job_loader import load_job
from harvest.jobs import JobTracker
from harvest.logging_config import setup_logging
from harvest.orchestrator import run_crawl
from harvest.output_manager import EXPORT_FORMATS, OutputManager
from harvest.storage import SqliteRecordSink


def print_outcome(name: str, outcome):
    """Print a run outcome in a formatted way.

    Args:
        name: Configuration name or URL
        outcome: RunOutcome object
    """
    print(f"\n{'=' * 60}")
    print(f"Harvest run: {name}")
    print(f"{'=' * 60}")

    if outcome.success:
        print(f"\n✅ Completed: {outcome.items_scraped} items from {outcome.pages_fetched} pages")
    else:
        print(f"\n❌ Failed: {outcome.error}")

    print(f"⏱️  Duration: {outcome.duration_seconds:.1f}s")

    if outcome.warnings:
        print(f"\n⚠️  Warnings:")
        for warning in outcome.warnings:
            print(f"  • {warning}")

    print(f"\n{'=' * 60}\n")


def run_command(args):
    """Run a crawl described by a job file."""
    try:
        config, fields = load_job(args.job_file)
    except ConfigurationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    harvest_config = (
        HarvestConfig.from_file(args.config) if args.config else HarvestConfig.from_env()
    )
    name = config.name or config.url
    sink = SqliteRecordSink(db_url=args.db or settings.DATABASE_URL, config_name=name)
    tracker = JobTracker(job_id=name)

    try:
        outcome = asyncio.run(run_crawl(
            config,
            fields,
            progress_sink=tracker,
            record_sink=sink,
            solver_credential=args.captcha_key or settings.CAPTCHA_API_KEY,
            harvest_config=harvest_config,
        ))
        tracker.finish(outcome)
        print_outcome(name, outcome)

        if args.export:
            output = OutputManager(args.output_dir or settings.OUTPUT_DIR)
            run_dir = output.create_run_directory(config.url)
            output.save_outcome(run_dir, config, outcome)
            records = sink.get_records()
            for path in output.export_records(run_dir, records, formats=args.export):
                print(f"Results written to {path}")
    finally:
        sink.close()

    sys.exit(0 if outcome.success else 1)


def export_command(args):
    """Export stored records of a configuration."""
    sink = SqliteRecordSink(db_url=args.db or settings.DATABASE_URL, config_name=args.name)
    try:
        records = sink.search(args.search) if args.search else sink.get_records()
    finally:
        sink.close()

    if not records:
        print(f"No records found for: {args.name}")
        sys.exit(0)

    if args.output_dir:
        output = OutputManager(args.output_dir)
        run_dir = output.create_run_directory(args.name if "://" in args.name else f"https://{args.name}")
        for path in output.export_records(run_dir, records, formats=args.format):
            print(f"Results written to {path}")
    else:
        print(json.dumps(records, indent=2, default=str))


def clear_command(args):
    """Delete stored records of a configuration."""
    sink = SqliteRecordSink(db_url=args.db or settings.DATABASE_URL, config_name=args.name)
    try:
        deleted = sink.delete_records()
    finally:
        sink.close()
    print(f"Deleted {deleted} records for: {args.name}")


def main():
    """Main CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Harvest - Extract structured records from web listings"
    )

    # Global flags (before subcommands)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL.upper() if settings.LOG_LEVEL else "INFO",
        help="Set logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file in addition to console",
    )
    parser.add_argument(
        "--db",
        help=f"Record database URL (default: {settings.DATABASE_URL})",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command parser
    run_parser = subparsers.add_parser("run", help="Run a crawl from a job file.")
    run_parser.add_argument("job_file", help="YAML or JSON job file")
    run_parser.add_argument(
        "--config",
        help="JSON file with runtime settings (timeouts, retries, solver)",
    )
    run_parser.add_argument(
        "--captcha-key",
        help="API key for the CAPTCHA solving service",
    )
    run_parser.add_argument(
        "--export",
        nargs="+",
        choices=EXPORT_FORMATS,
        help="Export the stored records after the run",
    )
    run_parser.add_argument(
        "--output-dir",
        help=f"Directory for exports (default: {settings.OUTPUT_DIR})",
    )
    run_parser.set_defaults(func=run_command)

    # Export command parser
    export_parser = subparsers.add_parser("export", help="Export stored records.")
    export_parser.add_argument("name", help="Configuration name (or URL when unnamed)")
    export_parser.add_argument(
        "--format",
        nargs="+",
        choices=EXPORT_FORMATS,
        default=["json"],
        help="Export formats (default: json)",
    )
    export_parser.add_argument(
        "--search",
        help="Only records whose title or description contains this term",
    )
    export_parser.add_argument(
        "--output-dir",
        help="Write files here instead of printing JSON",
    )
    export_parser.set_defaults(func=export_command)

    # Clear command parser
    clear_parser = subparsers.add_parser("clear", help="Delete stored records.")
    clear_parser.add_argument("name", help="Configuration name (or URL when unnamed)")
    clear_parser.set_defaults(func=clear_command)

    args = parser.parse_args()

    setup_logging(
        level=args.log_level,
        log_file=getattr(args, 'log_file', None),
    )

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
