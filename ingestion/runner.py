# ============================================================================
# File: ingestion/runner.py
# Description: Pipeline orchestrator sequencing fetch -> extract -> import
# ============================================================================
"""
Pipeline Runner - Orchestrates the fetch, extract and import stages.

This module provides:
- Fixed stage order with per-stage skip flags
- Forwarding of the common run parameters to every stage
- Configuration validation before any stage runs (ConfigError is fatal)
- An explicit failure policy: stop at the first failed stage, or continue
"""

from datetime import date
from typing import Callable, Dict, List, Optional, Set
import logging

from pydantic import BaseModel, Field, field_validator

from core.config import Settings, settings as default_settings
from core.exceptions import ConfigError, StageFailure
from ingestion.base import PipelineStage
from ingestion.stages import ExtractStage, FetchStage, ImportStage
from schemas.results import PipelineResult, StageName, STAGE_ORDER
from schemas.source import SourceDescriptor

logger = logging.getLogger(__name__)

STOP = "stop"
CONTINUE = "continue"


class PipelineOptions(BaseModel):
    """Parameters of one pipeline run"""

    source: Optional[str] = None
    dry_run: bool = False
    verbose: bool = False
    no_overrides: bool = False
    run_date: Optional[date] = None
    import_method: Optional[str] = None
    skip: Set[StageName] = Field(default_factory=set)
    failure_policy: Optional[str] = None

    @field_validator("failure_policy")
    @classmethod
    def check_failure_policy(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.lower()
        if v not in (STOP, CONTINUE):
            raise ValueError("failure_policy must be 'stop' or 'continue'")
        return v


StageFactory = Callable[[Settings, PipelineOptions], PipelineStage]


def build_fetch(settings: Settings, options: PipelineOptions) -> PipelineStage:
    return FetchStage(settings, dry_run=options.dry_run)


def build_extract(settings: Settings, options: PipelineOptions) -> PipelineStage:
    # Only the extract stage is told which date folder to read
    return ExtractStage(settings, dry_run=options.dry_run, run_date=options.run_date)


def build_import(settings: Settings, options: PipelineOptions) -> PipelineStage:
    return ImportStage(
        settings,
        dry_run=options.dry_run,
        no_overrides=options.no_overrides,
        method=options.import_method,
    )


DEFAULT_FACTORIES: Dict[StageName, StageFactory] = {
    StageName.FETCH: build_fetch,
    StageName.EXTRACT: build_extract,
    StageName.IMPORT: build_import,
}


def load_registry(settings: Settings) -> List[SourceDescriptor]:
    """
    Parse DATA_SOURCES into descriptors.
    
    Raises:
        ConfigError: If an entry is malformed or a name is repeated
    """
    sources = []
    seen = set()
    for index, entry in enumerate(settings.DATA_SOURCES):
        try:
            source = SourceDescriptor.parse(entry)
        except ValueError as e:
            raise ConfigError(
                "Invalid DATA_SOURCES entry",
                context={"index": index, "entry": entry},
                original_exception=e,
            )
        if source.name in seen:
            raise ConfigError(
                f"Duplicate source name: {source.name}",
                context={"index": index},
            )
        seen.add(source.name)
        sources.append(source)
    return sources


class PipelineRunner:
    """
    Pipeline Orchestrator
    
    Responsibilities:
    - Run fetch -> extract -> import in fixed order
    - Honor skip flags
    - Apply the failure policy between stages
    """
    
    def __init__(
        self,
        settings: Settings = default_settings,
        factories: Optional[Dict[StageName, StageFactory]] = None,
        sources: Optional[List[SourceDescriptor]] = None,
    ):
        self.settings = settings
        self.factories = {**DEFAULT_FACTORIES, **(factories or {})}
        self._sources = sources
    
    @property
    def sources(self) -> List[SourceDescriptor]:
        if self._sources is None:
            self._sources = load_registry(self.settings)
        return self._sources
    
    async def run(self, options: Optional[PipelineOptions] = None) -> PipelineResult:
        """
        Run the pipeline.
        
        Returns:
            PipelineResult; `exit_code` is that of the first failed stage
        
        Raises:
            ConfigError: Before any stage runs, if required settings are missing
        """
        options = options or PipelineOptions()
        policy = (options.failure_policy or self.settings.FAILURE_POLICY).lower()
        enabled = [stage for stage in STAGE_ORDER if stage not in options.skip]
        
        self.settings.validate_for(stage.value for stage in enabled)
        sources = self.sources
        
        logger.info("########################################")
        logger.info("CVR Data Pipeline")
        logger.info(f"Date:           {options.run_date.isoformat() if options.run_date else 'today'}")
        logger.info(f"Source:         {options.source or 'all'} ({len(sources)} registered)")
        logger.info(f"Dry run:        {options.dry_run}")
        logger.info(f"Import method:  {options.import_method or self.settings.IMPORT_METHOD}")
        logger.info(f"Skip:           {', '.join(sorted(s.value for s in options.skip)) or 'none'}")
        logger.info(f"Failure policy: {policy}")
        logger.info("----------------------------------------")
        
        result = PipelineResult()
        
        for stage_name in STAGE_ORDER:
            if stage_name in options.skip:
                logger.info(f"[SKIP] {stage_name.value} stage skipped")
                result.skipped.append(stage_name)
                continue
            
            stage = self.factories[stage_name](self.settings, options)
            stage_result = await stage.run(sources, only=options.source)
            result.stages.append(stage_result)
            
            if stage_result.ok:
                logger.info(f"[OK] Stage '{stage_name.value}' completed")
                continue
            
            failure = StageFailure(
                f"Stage '{stage_name.value}' failed",
                context={
                    "stage": stage_name.value,
                    "failed": stage_result.failed,
                    "total": stage_result.total,
                    "errors": dict(stage_result.errors),
                },
            )
            result.failures.append(failure.to_dict())
            logger.error(f"[ERROR] {failure.message} ({stage_result.failed} of {stage_result.total} source(s))")
            
            if policy == STOP:
                result.aborted_at = stage_name
                logger.error("Pipeline aborted")
                break
        
        logger.info("----------------------------------------")
        if result.ok:
            logger.info("Pipeline completed successfully")
        else:
            logger.warning(f"Pipeline finished with errors (exit code {result.exit_code})")
        logger.info("########################################")
        
        return result
