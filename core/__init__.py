"""
Core utilities and configuration for the CVR import pipeline.

Modules:
    config: Application configuration and environment variable management
    database: Async engine construction for the staging database
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    utils: Small formatting helpers used in log lines

Usage:
    from core.config import settings
    from core.database import create_engine_from_settings
    from core.exceptions import ConfigError, HeaderError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "create_engine_from_settings",
    "setup_logging",
    # Exceptions
    "ETLException",
    "ConfigError",
    "SourceError",
    "FetchError",
    "ExtractError",
    "SourceImportError",
    "DatabaseConnectionError",
    "FileImportError",
    "HeaderError",
    "TableCreateError",
    "BulkLoadError",
    "BatchInsertError",
    "StageFailure",
    "ImportExitCode",
]
