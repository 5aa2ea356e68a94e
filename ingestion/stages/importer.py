"""
Import stage: load each source's extracted CSV files into its staging table
"""

import logging
from pathlib import Path
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from core.config import Settings
from core.database import create_engine_from_settings, describe_url
from core.exceptions import SourceImportError
from ingestion.base import PipelineStage
from ingestion.loaders.mysql_loader import MySQLLoader
from ingestion.stages.extract import extracted_dir
from ingestion.transformers.columns import table_name_for
from schemas.results import SourceOutcome, StageName
from schemas.source import SourceDescriptor

logger = logging.getLogger(__name__)


def find_csv_files(csv_dir: Path) -> List[Path]:
    return sorted(p for p in csv_dir.rglob("*.csv") if p.is_file())


class ImportStage(PipelineStage):
    """
    Import `<DATA_DIR>/unzipped/<name>/*.csv` into `<DB_PREFIX><name>`.

    A failed file does not stop the remaining files of the source, but any
    failed file fails the source.
    """

    name = StageName.IMPORT
    verb = "Importing"

    def __init__(
        self,
        settings: Settings,
        dry_run: bool = False,
        no_overrides: bool = False,
        method: Optional[str] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        super().__init__(settings, dry_run)
        self.no_overrides = no_overrides
        self.method = method or settings.IMPORT_METHOD
        self.engine = engine
        self._owns_engine = False
        self.loader: Optional[MySQLLoader] = None

    def describe(self) -> List[str]:
        return [
            f"Data directory: {self.settings.DATA_DIR}",
            f"DB Prefix:      {self.settings.DB_PREFIX}",
            f"DB:             {describe_url(self.settings.DATABASE_URL)}",
            f"Import method:  {self.method}",
            f"Overrides:      {'disabled' if self.no_overrides or self.settings.NO_OVERRIDES else self.settings.OVERRIDE_DIR}",
        ]

    async def setup(self) -> None:
        if self.engine is None and not self.dry_run:
            self.engine = create_engine_from_settings(self.settings, method=self.method)
            self._owns_engine = True

        self.loader = MySQLLoader.from_settings(
            self.engine,
            self.settings,
            no_overrides=self.no_overrides,
            method=self.method,
        )

        if not self.dry_run:
            await self.loader.check_connection()

    async def teardown(self) -> None:
        if self._owns_engine and self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self._owns_engine = False

    async def process(self, source: SourceDescriptor) -> SourceOutcome:
        csv_dir = extracted_dir(self.settings.DATA_DIR, source.name)
        context = {"source_name": source.name, "csv_dir": str(csv_dir)}
        logger.debug(f"Source directory: {csv_dir}")

        if not csv_dir.is_dir():
            raise SourceImportError(f"Directory not found: {csv_dir}", context=context)

        csv_files = find_csv_files(csv_dir)
        if not csv_files:
            raise SourceImportError(f"No CSV files found in {csv_dir}", context=context)

        table_name = table_name_for(source.name, self.settings.DB_PREFIX)
        if len(csv_files) > 1:
            logger.warning(
                f" --> {len(csv_files)} CSV files share table {table_name}; "
                f"each file recreates it and the last one is kept"
            )

        results, errors = await self.loader.import_directory(csv_files, table_name, dry_run=self.dry_run)

        if errors:
            context.update({"files_failed": len(errors), "files": sorted(errors)})
            raise SourceImportError(
                f"{len(errors)} of {len(csv_files)} file(s) failed for {source.name}",
                context=context,
            )

        return SourceOutcome.DRY_RUN if self.dry_run else SourceOutcome.DONE
