"""
Pydantic schemas for the import pipeline.

Schemas:
    source: Registry entries (SourceDescriptor) and inferred columns (ColumnSpec)
    results: Per-stage, per-file and per-run results

Usage:
    from schemas.source import SourceDescriptor, ColumnSpec
    from schemas.results import StageResult, PipelineResult

Example:
    source = SourceDescriptor.parse("Telefaxnummer|1|Telefaxnummer|Total|csv|Telefaxnummer|600")
    assert source.artifact_filename.startswith("CVR_1_Telefaxnummer")
"""

__all__ = [
    "SourceDescriptor",
    "ColumnSpec",
    "StageName",
    "SourceOutcome",
    "StageResult",
    "FileImportResult",
    "PipelineResult",
]
