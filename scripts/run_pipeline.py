"""
Script to run the fetch -> extract -> import pipeline for all configured sources
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path to allow imports from core, ingestion, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.config import settings  # noqa: E402
from core.exceptions import ConfigError  # noqa: E402
from core.logging import setup_logging  # noqa: E402
from ingestion.runner import PipelineOptions, PipelineRunner  # noqa: E402
from ingestion.stages.extract import parse_run_date  # noqa: E402
from schemas.results import StageName  # noqa: E402

logger = logging.getLogger(__name__)

SKIP_ALIASES = {
    "fetch": StageName.FETCH,
    "download": StageName.FETCH,
    "extract": StageName.EXTRACT,
    "unzip": StageName.EXTRACT,
    "import": StageName.IMPORT,
}


def parse_skip_list(value: str):
    stages = set()
    for item in value.split(","):
        item = item.strip().lower()
        if not item:
            continue
        if item not in SKIP_ALIASES:
            raise argparse.ArgumentTypeError(f"Unknown skip target: {item}")
        stages.add(SKIP_ALIASES[item])
    return stages


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CVR Data Pipeline: download, unzip and import registry extracts",
        epilog="Stops on the first failed stage unless --failure-policy continue is given.",
    )
    parser.add_argument("--date", help="YYYY-MM-DD or 'now'; only used by the extract stage")
    parser.add_argument("--source", help="Run every stage for this source only")
    parser.add_argument("--dry-run", action="store_true", help="Log actions without performing them")
    parser.add_argument("--verbose", action="store_true", help="Enable debug output")
    parser.add_argument("--quiet", action="store_false", dest="verbose", help="Disable debug output")
    parser.add_argument("--import-method", choices=["native", "batched"], help="Bulk load strategy")
    parser.add_argument("--no-overrides", action="store_true", help="Ignore column type override files")
    parser.add_argument("--skip-fetch", "--skip-download", action="store_true", help="Skip the fetch stage")
    parser.add_argument("--skip-extract", "--skip-unzip", action="store_true", help="Skip the extract stage")
    parser.add_argument("--skip-import", action="store_true", help="Skip the import stage")
    parser.add_argument("--skip", type=parse_skip_list, default=set(), help="Comma-separated stages to skip")
    parser.add_argument("--failure-policy", choices=["stop", "continue"], help="Behavior after a failed stage")
    return parser


def options_from_args(args: argparse.Namespace) -> PipelineOptions:
    skip = set(args.skip)
    if args.skip_fetch:
        skip.add(StageName.FETCH)
    if args.skip_extract:
        skip.add(StageName.EXTRACT)
    if args.skip_import:
        skip.add(StageName.IMPORT)

    return PipelineOptions(
        source=args.source,
        dry_run=args.dry_run,
        verbose=args.verbose,
        no_overrides=args.no_overrides,
        run_date=parse_run_date(args.date),
        import_method=args.import_method,
        skip=skip,
        failure_policy=args.failure_policy,
    )


async def run_pipeline(options: PipelineOptions) -> int:
    """Run the pipeline, returns the process exit code"""
    runner = PipelineRunner(settings)
    try:
        result = await runner.run(options)
    except ConfigError as e:
        logger.error(f"Configuration error: {e.message}")
        logger.debug(str(e))
        return 1
    return result.exit_code


def main(argv=None) -> int:
    parser = build_parser()
    argv = sys.argv[1:] if argv is None else argv

    if not argv:
        print("No parameters provided.", file=sys.stderr)
        parser.print_help()
        return 1

    args = parser.parse_args(argv)
    try:
        options = options_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    setup_logging(verbose=options.verbose, log_name="pipeline")
    return asyncio.run(run_pipeline(options))


if __name__ == "__main__":
    sys.exit(main())
