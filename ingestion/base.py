"""
Abstract base class for pipeline stages with per-source failure isolation
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional
import logging
import time

from core.config import Settings
from core.exceptions import ETLException
from core.utils import format_elapsed
from schemas.results import SourceOutcome, StageName, StageResult
from schemas.source import SourceDescriptor

logger = logging.getLogger(__name__)


class PipelineStage(ABC):
    """
    Abstract base class for the fetch, extract and import stages.
    
    Responsibilities:
    - Iterate the source registry, optionally filtered to one source
    - Isolate per-source failures (log, count, continue)
    - Produce a StageResult
    """
    
    name: StageName
    verb: str = "Processing"
    
    def __init__(self, settings: Settings, dry_run: bool = False):
        self.settings = settings
        self.dry_run = dry_run
    
    @abstractmethod
    async def process(self, source: SourceDescriptor) -> SourceOutcome:
        """
        Run the stage operation for one source.
        
        Returns:
            What was done for the source
            
        Raises:
            SourceError: If the operation failed for this source
        """
        pass
    
    async def setup(self) -> None:
        """Stage-wide preparation; an exception fails every selected source"""
        pass
    
    async def teardown(self) -> None:
        pass
    
    def describe(self) -> List[str]:
        """Header lines logged when the stage starts"""
        return []
    
    def select(
        self,
        sources: Iterable[SourceDescriptor],
        only: Optional[str] = None
    ) -> List[SourceDescriptor]:
        sources = list(sources)
        if not only:
            return sources
        selected = [s for s in sources if s.name == only]
        if not selected:
            logger.warning(f"Source '{only}' is not in the registry")
        return selected
    
    async def run(
        self,
        sources: Iterable[SourceDescriptor],
        only: Optional[str] = None
    ) -> StageResult:
        """
        Execute the stage over the registry.
        
        Args:
            sources: Registry entries
            only: Restrict the run to the source with this name
            
        Returns:
            StageResult; the stage failed when `result.failed > 0`
        """
        result = StageResult(stage=self.name)
        selected = self.select(sources, only)
        start = time.monotonic()
        
        logger.info("========================================")
        logger.info(f"Stage: {self.name.value}")
        logger.info("========================================")
        for line in self.describe():
            logger.info(line)
        if self.dry_run:
            logger.warning("DRY RUN MODE - No actual operations will be performed")
        
        try:
            await self.setup()
        except Exception as e:
            message = e.message if isinstance(e, ETLException) else str(e)
            logger.error(f"Stage {self.name.value} could not start: {message}")
            for source in selected:
                result.record(source.name, SourceOutcome.FAILED, message)
            result.elapsed_seconds = time.monotonic() - start
            self._log_summary(result)
            await self.teardown()
            return result
        
        try:
            for source in selected:
                logger.info("----------------------------------------")
                logger.info(f"{self.verb}: {source.name}")
                
                try:
                    outcome = await self.process(source)
                except ETLException as e:
                    result.record(source.name, SourceOutcome.FAILED, e.message)
                    logger.error(f"{self.verb} failed for {source.name}, continuing to next...")
                    logger.debug(str(e), extra={"error_context": e.to_dict()})
                    continue
                except Exception as e:
                    result.record(source.name, SourceOutcome.FAILED, str(e))
                    logger.exception(f"Unexpected error for {source.name}, continuing to next...")
                    continue
                
                result.record(source.name, outcome)
        finally:
            await self.teardown()
        
        result.elapsed_seconds = time.monotonic() - start
        self._log_summary(result)
        return result
    
    def _log_summary(self, result: StageResult) -> None:
        logger.info("========================================")
        logger.info(f"SUMMARY ({self.name.value})")
        logger.info("========================================")
        logger.info(f"Total sources:  {result.total}")
        logger.info(f"Succeeded:      {result.succeeded}")
        logger.info(f"Errors:         {result.failed}")
        logger.info(f"Total time:     {format_elapsed(result.elapsed_seconds)}")
        logger.info("========================================")
        
        if result.failed:
            logger.warning(f"Completed with {result.failed} error(s)")
        else:
            logger.info("Completed successfully!")
