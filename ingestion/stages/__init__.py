"""
Concrete pipeline stages: fetch, extract and import.
"""

from ingestion.stages.fetch import FetchStage
from ingestion.stages.extract import ExtractStage
from ingestion.stages.importer import ImportStage

__all__ = ["FetchStage", "ExtractStage", "ImportStage"]
