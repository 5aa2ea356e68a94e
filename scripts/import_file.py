"""
Import a single CSV file into a staging table.

Exit codes:
    0 success
    2 missing required arguments
    3 connection failure
    4 cannot open CSV
    5 cannot read CSV headers
    6 CREATE TABLE failed
    7 LOAD DATA failed
    8 INSERT batch failed
    9 INSERT final batch failed
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.config import settings  # noqa: E402
from core.database import create_engine_from_settings  # noqa: E402
from core.exceptions import (  # noqa: E402
    DatabaseConnectionError,
    FileImportError,
    ImportExitCode,
)
from core.logging import setup_logging  # noqa: E402
from ingestion.loaders.mysql_loader import MySQLLoader  # noqa: E402

logger = logging.getLogger(__name__)


async def import_one(table: str, csv_file: str, method=None, no_overrides: bool = False) -> int:
    engine = create_engine_from_settings(settings, method=method)
    loader = MySQLLoader.from_settings(engine, settings, no_overrides=no_overrides, method=method)

    try:
        await loader.check_connection()
        result = await loader.import_file(csv_file, table)
    except DatabaseConnectionError as e:
        logger.error(f"CONNECT ERROR: {e.original_exception or e.message}")
        return int(ImportExitCode.CONNECTION_FAILED)
    except FileImportError as e:
        logger.error(f"{e.message}: {csv_file}")
        logger.debug(str(e))
        return int(e.exit_code)
    finally:
        await engine.dispose()

    logger.info(f"Imported {csv_file} -> {table} ({result.rows_loaded} rows)")
    return int(ImportExitCode.OK)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import one CSV file into a staging table")
    parser.add_argument("table", help="Destination table name")
    parser.add_argument("csv_file", help="CSV file to import")
    parser.add_argument("--import-method", choices=["native", "batched"])
    parser.add_argument("--no-overrides", action="store_true")
    parser.add_argument("--verbose", action="store_true")

    # argparse exits with status 2 on missing arguments
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, log_name="import")
    return asyncio.run(
        import_one(args.table, args.csv_file, method=args.import_method, no_overrides=args.no_overrides)
    )


if __name__ == "__main__":
    sys.exit(main())
