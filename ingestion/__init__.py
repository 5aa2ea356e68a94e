"""
Import pipeline components.

Modules:
    base: Abstract base class for stages with per-source failure isolation
    runner: Pipeline orchestrator (fetch -> extract -> import)
    scheduler: APScheduler integration for scheduled pipeline runs
    cache: Cache gates for downloaded artifacts and extracted directories
    transport: HTTP download of registry artifacts
    archive: ZIP extraction

Subpackages:
    stages: FetchStage, ExtractStage, ImportStage
    transformers: Column sanitizing, header inference and type overrides
    loaders: Staging table provisioning and bulk loading into MySQL

Architecture:
    Each stage iterates the source registry on its own. A failure for one
    source is logged and counted and the stage moves on; the orchestrator
    then decides, per its failure policy, whether the next stage runs.

    Per CSV file the import stage does:

    1. Infer columns - first line of the file, sanitized
    2. Resolve overrides - per-table key=value files
    3. Provision - drop and recreate the staging table
    4. Load - LOAD DATA LOCAL INFILE, or batched INSERTs

Usage:
    from ingestion.runner import PipelineRunner, PipelineOptions

Example:
    runner = PipelineRunner(settings)
    result = await runner.run(PipelineOptions(source="Telefaxnummer"))

    print(f"Exit code {result.exit_code}")
"""

__all__ = [
    "PipelineStage",
    "PipelineRunner",
    "PipelineOptions",
    "PipelineScheduler",
    "FetchStage",
    "ExtractStage",
    "ImportStage",
    "MySQLLoader",
    "OverrideResolver",
]
