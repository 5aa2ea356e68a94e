"""
Pydantic schemas for stage, file and pipeline results
"""

import enum
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class StageName(str, enum.Enum):
    """Pipeline stages, in execution order"""
    FETCH = "fetch"
    EXTRACT = "extract"
    IMPORT = "import"


STAGE_ORDER = (StageName.FETCH, StageName.EXTRACT, StageName.IMPORT)


class SourceOutcome(str, enum.Enum):
    """What a stage did for one source"""
    DONE = "done"
    CACHED = "cached"
    DRY_RUN = "dry_run"
    FAILED = "failed"


class StageResult(BaseModel):
    """Summary of one stage invocation over the registry"""

    stage: StageName
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    elapsed_seconds: float = 0.0
    outcomes: Dict[str, SourceOutcome] = Field(default_factory=dict)
    errors: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def record(self, source_name: str, outcome: SourceOutcome, error: Optional[str] = None):
        self.total += 1
        self.outcomes[source_name] = outcome
        if outcome == SourceOutcome.FAILED:
            self.failed += 1
            if error:
                self.errors[source_name] = error
        else:
            self.succeeded += 1


class FileImportResult(BaseModel):
    """One CSV file loaded into its staging table"""

    csv_file: str
    table_name: str
    columns: List[str]
    rows_loaded: Optional[int] = None
    strategy: str
    dry_run: bool = False


class PipelineResult(BaseModel):
    """Outcome of a full fetch -> extract -> import run"""

    stages: List[StageResult] = Field(default_factory=list)
    skipped: List[StageName] = Field(default_factory=list)
    aborted_at: Optional[StageName] = None
    failures: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(stage.ok for stage in self.stages)

    @property
    def exit_code(self) -> int:
        for stage in self.stages:
            if not stage.ok:
                return stage.exit_code
        return 0
