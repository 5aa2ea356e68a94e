"""
Header sanitizing, schema inference and column type overrides.
"""

from ingestion.transformers.columns import infer_columns, sanitize_column_name, table_name_for
from ingestion.transformers.overrides import OverrideResolver

__all__ = ["infer_columns", "sanitize_column_name", "table_name_for", "OverrideResolver"]
