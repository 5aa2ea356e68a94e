"""
Custom exceptions for the import pipeline with structured error context.

Each exception carries context information for debugging and for the
per-stage summary. Scope matters more than type here: a failure is terminal
for the file, source or stage it belongs to and is reported upward as a
count, never retried.

Exception Hierarchy:
    ETLException (base)
    ├── ConfigError            fatal, raised before any stage runs
    ├── SourceError            one source failed within a stage
    │   ├── FetchError
    │   ├── ExtractError
    │   └── SourceImportError
    │       └── DatabaseConnectionError
    ├── FileImportError        one CSV file failed within a source
    │   ├── HeaderError
    │   ├── TableCreateError
    │   ├── BulkLoadError
    │   └── BatchInsertError
    └── StageFailure           a stage recorded one or more errors
"""

from enum import IntEnum
from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ImportExitCode(IntEnum):
    """Process exit codes of the single-file import helper"""
    OK = 0
    MISSING_ARGUMENTS = 2
    CONNECTION_FAILED = 3
    CANNOT_OPEN_CSV = 4
    CANNOT_READ_HEADERS = 5
    CREATE_TABLE_FAILED = 6
    NATIVE_LOAD_FAILED = 7
    BATCH_INSERT_FAILED = 8
    FINAL_BATCH_FAILED = 9


class ETLException(Exception):
    """
    Base exception for all pipeline errors.
    
    Attributes:
        message: Human-readable error message
        context: Additional context information (source, file, table, etc.)
        original_exception: The original exception that was caught (if any)
    """
    
    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)
        
        self.context["error_timestamp"] = self.timestamp.isoformat()
        
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception
    
    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"
        
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"
        
        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"
        
        return base_msg
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


class ConfigError(ETLException):
    """
    Missing or invalid connection / API settings.
    
    Context should include:
        - stages: Stages that were about to run
        - missing: Names of the missing settings
    """
    pass


# ============================================================================
# Per-source errors
# ============================================================================

class SourceError(ETLException):
    """Base exception for a stage operation that failed for one source."""
    pass


class FetchError(SourceError):
    """
    Exception raised when an artifact could not be downloaded.
    
    Context should include:
        - source_name: Name of the source
        - filename: Artifact filename
        - status_code: HTTP status code (if applicable)
    """
    pass


class ExtractError(SourceError):
    """
    Exception raised when an artifact could not be extracted.
    
    Context should include:
        - source_name: Name of the source
        - archive: Path to the archive
        - output_dir: Extraction directory
    """
    pass


class SourceImportError(SourceError):
    """
    Exception raised when one or more CSV files of a source failed to import.
    
    Context should include:
        - source_name: Name of the source
        - csv_dir: Directory holding the extracted files
        - files_failed: Number of files that failed
    """
    pass


class DatabaseConnectionError(SourceImportError):
    """The database could not be reached."""
    exit_code = ImportExitCode.CONNECTION_FAILED


# ============================================================================
# Per-file errors
# ============================================================================

class FileImportError(ETLException):
    """
    Base exception for a single CSV file that failed to import.
    
    Context should include:
        - csv_file: Path to the CSV file
        - table_name: Destination staging table
    """
    exit_code = ImportExitCode.CANNOT_READ_HEADERS

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        exit_code: Optional[ImportExitCode] = None
    ):
        super().__init__(message, context, original_exception)
        if exit_code is not None:
            self.exit_code = exit_code
        self.context["exit_code"] = int(self.exit_code)


class HeaderError(FileImportError):
    """The CSV file cannot be opened or its header line is empty."""
    exit_code = ImportExitCode.CANNOT_READ_HEADERS


class TableCreateError(FileImportError):
    """The staging table could not be dropped or created."""
    exit_code = ImportExitCode.CREATE_TABLE_FAILED


class BulkLoadError(FileImportError):
    """LOAD DATA LOCAL INFILE was rejected."""
    exit_code = ImportExitCode.NATIVE_LOAD_FAILED


class BatchInsertError(FileImportError):
    """
    A batch of INSERT statements failed.
    
    Context should include:
        - batch_index: Index of the failing batch
        - final_batch: Whether the failing batch was the trailing one
    """
    exit_code = ImportExitCode.BATCH_INSERT_FAILED


# ============================================================================
# Stage errors
# ============================================================================

class StageFailure(ETLException):
    """
    A stage finished with one or more per-source errors.
    
    Context should include:
        - stage: Stage name
        - failed: Number of failed sources
        - total: Number of sources processed
    """
    pass
