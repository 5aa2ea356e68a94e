"""
Load extracted CSV files into MySQL staging tables.

Two interchangeable strategies produce the same table contents:

- native: a single LOAD DATA LOCAL INFILE statement (preferred)
- batched: pandas reads the body in chunks, each chunk is one multi-row
  INSERT with bound parameters

In both, columns that carry a type override store an empty field as NULL
while plain TEXT columns keep the empty string, and backslashes are plain
data rather than escape characters.
"""

import csv
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd
from sqlalchemy import column, insert, table, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from core.config import Settings
from core.exceptions import (
    BatchInsertError,
    BulkLoadError,
    DatabaseConnectionError,
    FileImportError,
    ImportExitCode,
)
from core.utils import human_readable_size, format_elapsed
from ingestion.loaders.provisioner import NO_PARAMS, TableProvisioner, quote_identifier
from ingestion.transformers.columns import infer_columns
from ingestion.transformers.overrides import OverrideResolver
from schemas.source import ColumnSpec
from schemas.results import FileImportResult

logger = logging.getLogger(__name__)

NATIVE = "native"
BATCHED = "batched"


def mysql_string_literal(value: str) -> str:
    """Quote a value as a MySQL string literal"""
    escaped = (
        value.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\0", "\\0")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f"'{escaped}'"


def build_load_statement(
    csv_file: Union[str, Path],
    table_name: str,
    columns: List[ColumnSpec],
    delimiter: str = ",",
    enclosure: str = '"',
    line_terminator: str = "\n",
) -> str:
    """
    LOAD DATA LOCAL INFILE statement binding fields positionally to columns.

    Each field is read into a user variable first so that overridden columns
    can turn an empty string into NULL. Backslash escaping is off, so `\\N`
    and `C:\\new` load as literal text, as the batched strategy reads them.
    """
    variables = ",".join(f"@{quote_identifier(col.name)}" for col in columns)

    assignments = []
    for col in columns:
        target = quote_identifier(col.name)
        if col.override_type:
            assignments.append(f"{target} = NULLIF(@{target}, '')")
        else:
            assignments.append(f"{target} = @{target}")

    return (
        f"LOAD DATA LOCAL INFILE {mysql_string_literal(str(csv_file))} "
        f"INTO TABLE {quote_identifier(table_name)} CHARACTER SET utf8mb4 "
        f"FIELDS TERMINATED BY {mysql_string_literal(delimiter)} "
        f"ENCLOSED BY {mysql_string_literal(enclosure)} ESCAPED BY '' "
        f"LINES TERMINATED BY {mysql_string_literal(line_terminator)} "
        f"IGNORE 1 ROWS ({variables}) SET {','.join(assignments)}"
    )


class MySQLLoader:
    """
    Import CSV files into staging tables.
    
    Per file:
    1. Infer columns from the header line
    2. Resolve column type overrides
    3. Drop and recreate the staging table
    4. Load the body with the configured strategy
    """
    
    def __init__(
        self,
        engine: AsyncEngine,
        resolver: OverrideResolver,
        method: str = NATIVE,
        delimiter: str = ",",
        enclosure: str = '"',
        line_terminator: str = "\n",
        batch_size: int = 500,
    ):
        if method not in (NATIVE, BATCHED):
            raise ValueError(f"Unknown import method: {method}")
        self.engine = engine
        self.resolver = resolver
        self.method = method
        self.delimiter = delimiter
        self.enclosure = enclosure
        self.line_terminator = line_terminator
        self.batch_size = batch_size
        self.provisioner = TableProvisioner()

    @classmethod
    def from_settings(
        cls,
        engine: AsyncEngine,
        settings: Settings,
        no_overrides: bool = False,
        method: Optional[str] = None,
    ) -> "MySQLLoader":
        resolver = OverrideResolver(
            settings.OVERRIDE_DIR,
            prefix=settings.DB_PREFIX,
            enabled=not (no_overrides or settings.NO_OVERRIDES),
        )
        return cls(
            engine,
            resolver,
            method=method or settings.IMPORT_METHOD,
            delimiter=settings.CSV_DELIMITER,
            enclosure=settings.CSV_ENCLOSURE,
            line_terminator=settings.CSV_LINE_TERMINATOR,
            batch_size=settings.IMPORT_BATCH_SIZE,
        )

    async def check_connection(self) -> None:
        """
        Raises:
            DatabaseConnectionError: If `SELECT 1` fails
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseConnectionError(
                "Database connectivity check failed",
                original_exception=e,
            )

    def columns_for(self, csv_file: Union[str, Path], table_name: str) -> List[ColumnSpec]:
        columns = infer_columns(csv_file, self.delimiter, self.enclosure)
        return self.resolver.apply(table_name, columns)

    async def import_file(
        self,
        csv_file: Union[str, Path],
        table_name: str,
        dry_run: bool = False,
    ) -> FileImportResult:
        """
        Import one CSV file into its staging table.
        
        Raises:
            HeaderError: Header line unreadable or empty
            TableCreateError: Staging table could not be (re)created
            BulkLoadError: Native load rejected
            BatchInsertError: A batch of the fallback strategy failed
        """
        csv_path = Path(csv_file).resolve()
        columns = self.columns_for(csv_path, table_name)
        column_names = [col.name for col in columns]
        overridden = sum(1 for col in columns if col.override_type)

        logger.debug(
            f" --> Found {len(columns)} columns ({overridden} overridden) in {csv_path.name}"
        )

        if dry_run:
            logger.info(
                f" --> [DRY RUN] Would create table: {table_name} with {len(columns)} columns "
                f"and load {csv_path.name} ({self.method})"
            )
            return FileImportResult(
                csv_file=str(csv_path),
                table_name=table_name,
                columns=column_names,
                strategy=self.method,
                dry_run=True,
            )

        async with self.engine.connect() as conn:
            await self.provisioner.provision(conn, table_name, columns)

            if self.method == NATIVE:
                rows = await self.load_native(conn, csv_path, table_name, columns)
            else:
                rows = await self.load_batched(conn, csv_path, table_name, columns)

        return FileImportResult(
            csv_file=str(csv_path),
            table_name=table_name,
            columns=column_names,
            rows_loaded=rows,
            strategy=self.method,
        )

    async def load_native(
        self,
        conn: AsyncConnection,
        csv_path: Path,
        table_name: str,
        columns: List[ColumnSpec],
    ) -> Optional[int]:
        """Load the file with one LOAD DATA statement, returns the affected row count"""
        load_sql = build_load_statement(
            csv_path,
            table_name,
            columns,
            delimiter=self.delimiter,
            enclosure=self.enclosure,
            line_terminator=self.line_terminator,
        )
        logger.debug(f" --> Loading data into: {table_name}")

        try:
            result = await conn.exec_driver_sql(load_sql, execution_options=NO_PARAMS)
            await conn.commit()
        except SQLAlchemyError as e:
            await conn.rollback()
            raise BulkLoadError(
                "LOAD DATA failed",
                context={"csv_file": str(csv_path), "table_name": table_name},
                original_exception=e,
            )

        rows = result.rowcount if result.rowcount is not None and result.rowcount >= 0 else None
        logger.debug(f" --> Data loaded successfully ({rows} rows)")
        return rows

    def _read_chunks(self, csv_path: Path, columns: List[ColumnSpec]):
        options = dict(
            sep=self.delimiter,
            header=None,
            skiprows=1,
            names=[col.name for col in columns],
            index_col=False,
            dtype=str,
            keep_default_na=False,
            chunksize=self.batch_size,
            encoding="utf-8",
            encoding_errors="replace",
        )
        if self.enclosure:
            options["quotechar"] = self.enclosure
        else:
            options["quoting"] = csv.QUOTE_NONE
        if len(self.line_terminator) == 1 and self.line_terminator != "\n":
            options["lineterminator"] = self.line_terminator
        return pd.read_csv(csv_path, **options)

    def _batch_records(self, chunk: pd.DataFrame, columns: List[ColumnSpec]) -> List[Dict[str, Optional[str]]]:
        # Short rows come back as NaN; pad them with empty values
        chunk = chunk.fillna("")
        nullable = [col.name for col in columns if col.override_type]
        records = chunk.to_dict(orient="records")
        for record in records:
            for name in nullable:
                if record[name] == "":
                    record[name] = None
        return records

    async def _insert_batch(
        self,
        conn: AsyncConnection,
        target,
        records: List[Dict[str, Optional[str]]],
        batch_index: int,
        final: bool,
        table_name: str,
    ) -> None:
        try:
            await conn.execute(insert(target), records)
            await conn.commit()
        except SQLAlchemyError as e:
            await conn.rollback()
            raise BatchInsertError(
                "INSERT final batch failed" if final else "INSERT batch failed",
                context={
                    "table_name": table_name,
                    "batch_index": batch_index,
                    "final_batch": final,
                },
                original_exception=e,
                exit_code=(
                    ImportExitCode.FINAL_BATCH_FAILED if final
                    else ImportExitCode.BATCH_INSERT_FAILED
                ),
            )

    async def load_batched(
        self,
        conn: AsyncConnection,
        csv_path: Path,
        table_name: str,
        columns: List[ColumnSpec],
    ) -> int:
        """Insert the file body in batches of `batch_size` rows, returns the row count"""
        target = table(table_name, *[column(col.name) for col in columns])
        rows_loaded = 0
        batch_index = 0
        pending = None

        try:
            chunks = self._read_chunks(csv_path, columns)
            for chunk in chunks:
                if chunk.empty:
                    continue
                if pending is not None:
                    await self._insert_batch(conn, target, pending, batch_index, False, table_name)
                    rows_loaded += len(pending)
                    batch_index += 1
                pending = self._batch_records(chunk, columns)
        except pd.errors.EmptyDataError:
            logger.debug(f" --> No data rows in {csv_path.name}")
        except (pd.errors.ParserError, ValueError, UnicodeError) as e:
            raise BatchInsertError(
                "Cannot parse CSV body",
                context={"csv_file": str(csv_path), "table_name": table_name, "batch_index": batch_index},
                original_exception=e,
            )

        if pending:
            await self._insert_batch(conn, target, pending, batch_index, True, table_name)
            rows_loaded += len(pending)

        logger.debug(f" --> Inserted {rows_loaded} rows in {batch_index + (1 if pending else 0)} batch(es)")
        return rows_loaded

    async def import_directory(self, csv_files: List[Path], table_name: str, dry_run: bool = False):
        """
        Import every file of a source into its staging table.

        Returns:
            Tuple of (results, errors) where errors maps file name to message
        """
        results: List[FileImportResult] = []
        errors: Dict[str, str] = {}
        start = time.monotonic()

        for csv_file in csv_files:
            size = csv_file.stat().st_size if csv_file.exists() else 0
            logger.info(
                f" --> Importing: {csv_file.name} ({human_readable_size(size)}) -> {table_name}"
            )
            try:
                result = await self.import_file(csv_file, table_name, dry_run=dry_run)
            except FileImportError as e:
                errors[csv_file.name] = e.message
                logger.warning(f" --> Failed to import: {csv_file.name} ({e.message}, exit code {int(e.exit_code)})")
                logger.debug(str(e))
                continue
            except Exception as e:
                message = getattr(e, "message", str(e))
                errors[csv_file.name] = message
                logger.warning(f" --> Failed to import: {csv_file.name} ({message})")
                logger.debug(str(e))
                continue

            results.append(result)
            if not dry_run:
                logger.info(f" --> Imported! ({result.rows_loaded if result.rows_loaded is not None else '?'} rows)")

        logger.info(
            f" --> Completed: {len(results)} of {len(csv_files)} file(s) in "
            f"{format_elapsed(time.monotonic() - start)}"
        )
        return results, errors
