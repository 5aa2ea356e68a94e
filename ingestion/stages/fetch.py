"""
Fetch stage: download one artifact per source from the registry feed
"""

import logging
import time
from datetime import date
from pathlib import Path
from typing import List, Optional

from core.config import Settings
from core.exceptions import FetchError
from core.utils import human_readable_size, format_elapsed
from ingestion.base import PipelineStage
from ingestion.cache import artifact_is_cached, file_size
from ingestion.transport import HttpTransport
from schemas.results import SourceOutcome, StageName
from schemas.source import SourceDescriptor

logger = logging.getLogger(__name__)


class FetchStage(PipelineStage):
    """
    Download artifacts into `<DATA_DIR>/<YYYY-MM-DD>/`.

    Downloads always target today's folder; the extract stage is the one that
    can be pointed at an earlier date.
    """

    name = StageName.FETCH
    verb = "Downloading"

    def __init__(
        self,
        settings: Settings,
        dry_run: bool = False,
        transport: Optional[HttpTransport] = None,
        run_date: Optional[date] = None,
    ):
        super().__init__(settings, dry_run)
        self.transport = transport or HttpTransport(connect_timeout=settings.CONNECT_TIMEOUT)
        self.run_date = run_date or date.today()
        self.download_dir = Path(settings.DATA_DIR) / self.run_date.isoformat()

    def describe(self) -> List[str]:
        return [
            f"Date:           {self.run_date.isoformat()}",
            f"Download dir:   {self.download_dir}",
        ]

    async def setup(self) -> None:
        if not self.dry_run:
            self.download_dir.mkdir(parents=True, exist_ok=True)

    def request_params(self, source: SourceDescriptor) -> dict:
        return {"Filename": source.artifact_filename, "apikey": self.settings.API_KEY}

    async def process(self, source: SourceDescriptor) -> SourceOutcome:
        filename = source.artifact_filename
        local_file = self.download_dir / filename
        timeout = source.timeout or self.settings.DOWNLOAD_TIMEOUT

        logger.debug(f"From URL: {self.settings.API_BASE_URL}?Filename={filename}&apikey=***")
        logger.debug(f"To file: {local_file}")

        if artifact_is_cached(local_file, self.settings.CACHE_THRESHOLD_BYTES):
            logger.info(f" --> Is cached: {human_readable_size(file_size(local_file))}")
            return SourceOutcome.CACHED

        if self.dry_run:
            logger.info(f" --> [DRY RUN] Would download: {filename}")
            return SourceOutcome.DRY_RUN

        local_file.parent.mkdir(parents=True, exist_ok=True)
        local_file.unlink(missing_ok=True)

        start = time.monotonic()
        ok, size = await self.transport.download(
            self.settings.API_BASE_URL,
            local_file,
            timeout=timeout,
            params=self.request_params(source),
        )
        elapsed = format_elapsed(time.monotonic() - start)

        context = {"source_name": source.name, "filename": filename, "bytes": size}
        if not ok:
            if size:
                logger.error(f" --> Downloaded: {human_readable_size(size)} in {elapsed}")
            raise FetchError(f"Download failed for {source.name}", context=context)

        if size < self.settings.MIN_ARTIFACT_BYTES:
            local_file.unlink(missing_ok=True)
            raise FetchError(
                f"Download incomplete or corrupted for {source.name}",
                context=context,
            )

        logger.info(f" --> Downloaded: {human_readable_size(size)} in {elapsed}")
        return SourceOutcome.DONE
