"""
Extract stage: unpack each source's artifact into its own directory
"""

import logging
import re
import shutil
import time
from datetime import date
from pathlib import Path
from typing import List, Optional

from core.config import Settings
from core.exceptions import ExtractError
from core.utils import human_readable_size, format_elapsed
from ingestion.archive import extract_archive
from ingestion.base import PipelineStage
from ingestion.cache import MARKER_NAME, clear_directory, extraction_is_cached, file_size, write_marker
from schemas.results import SourceOutcome, StageName
from schemas.source import SourceDescriptor

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_run_date(value: Optional[str]) -> date:
    """`YYYY-MM-DD`, `now` or empty for today"""
    if not value or value.lower() == "now":
        return date.today()
    if not DATE_PATTERN.match(value):
        raise ValueError(f"Invalid date format: {value} (expected YYYY-MM-DD)")
    return date.fromisoformat(value)


def extracted_dir(data_dir: str, source_name: str) -> Path:
    return Path(data_dir) / "unzipped" / source_name


class ExtractStage(PipelineStage):
    """
    Unpack `<DATA_DIR>/<date>/<artifact>` into `<DATA_DIR>/unzipped/<name>/`.

    The directory's previous contents are always replaced, unless extraction
    caching is enabled and the directory's marker names the same archive.
    """

    name = StageName.EXTRACT
    verb = "Unzipping"

    def __init__(
        self,
        settings: Settings,
        dry_run: bool = False,
        run_date: Optional[date] = None,
    ):
        super().__init__(settings, dry_run)
        self.run_date = run_date or date.today()
        self.download_dir = Path(settings.DATA_DIR) / self.run_date.isoformat()
        self.unzip_root = Path(settings.DATA_DIR) / "unzipped"

    def describe(self) -> List[str]:
        return [
            f"Date:           {self.run_date.isoformat()}",
            f"Download dir:   {self.download_dir}",
            f"Unzip dir:      {self.unzip_root}",
        ]

    async def setup(self) -> None:
        if not self.download_dir.is_dir():
            raise ExtractError(
                f"Download directory not found: {self.download_dir}",
                context={"download_dir": str(self.download_dir)},
            )
        if not self.dry_run:
            self.unzip_root.mkdir(parents=True, exist_ok=True)

    async def process(self, source: SourceDescriptor) -> SourceOutcome:
        archive = self.download_dir / source.artifact_filename
        output_dir = extracted_dir(self.settings.DATA_DIR, source.name)
        context = {"source_name": source.name, "archive": str(archive), "output_dir": str(output_dir)}

        logger.debug(f" -- Source: {archive}")
        logger.debug(f" -- To folder: {output_dir}")

        if not archive.is_file():
            if self.dry_run:
                logger.warning(f" --> [DRY RUN] Zip file not found: {archive}")
                return SourceOutcome.DRY_RUN
            raise ExtractError(f"Zip file not found: {source.name}", context=context)

        if self.settings.EXTRACT_CACHE_ENABLED and extraction_is_cached(output_dir, archive):
            count = sum(1 for p in output_dir.rglob("*") if p.is_file() and p.name != MARKER_NAME)
            logger.info(f" --> Cached: {count} file(s)")
            return SourceOutcome.CACHED

        if self.dry_run:
            logger.info(f" --> [DRY RUN] Would unzip to: {output_dir}")
            return SourceOutcome.DRY_RUN

        clear_directory(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        start = time.monotonic()
        ok, count = extract_archive(archive, output_dir)
        if not ok:
            shutil.rmtree(output_dir, ignore_errors=True)
            raise ExtractError(f"Unzip failed for {source.name}", context=context)

        write_marker(output_dir, archive, count)
        logger.info(
            f" --> Unzipped: {human_readable_size(file_size(archive))} to {count} file(s) "
            f"in {format_elapsed(time.monotonic() - start)}"
        )
        return SourceOutcome.DONE
