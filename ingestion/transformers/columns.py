"""
Column naming: header sanitizing, table naming and header inference.

Both load strategies go through these functions, so the column list a table
is created with is always the column list its rows are bound to.
"""

import logging
import re
from pathlib import Path
from typing import List, Union

from core.exceptions import HeaderError, ImportExitCode
from schemas.source import ColumnSpec

logger = logging.getLogger(__name__)

FALLBACK_COLUMN = "col_unknown"
RESERVED_PREFIX = "col_"
RESERVED_COLUMNS = frozenset({"id", "created_at", "updated_at", "deleted_at"})

_QUOTES = "\"'"
_INVALID = re.compile(r"[^a-z0-9]")
_UNDERSCORES = re.compile(r"_+")


def normalize_identifier(value: str) -> str:
    """Lowercase, non-[a-z0-9] to '_', collapse and trim underscores."""
    value = _INVALID.sub("_", value.lower())
    return _UNDERSCORES.sub("_", value).strip("_")


def sanitize_column_name(raw: str) -> str:
    """
    Turn an arbitrary CSV header into a safe column identifier.

    Examples:
        >>> sanitize_column_name('"CVR-nr."')
        'cvr_nr'
        >>> sanitize_column_name("id")
        'col_id'
        >>> sanitize_column_name("  ")
        'col_unknown'
    """
    col = normalize_identifier(raw.strip().strip(_QUOTES).strip())
    if not col:
        return FALLBACK_COLUMN
    if col in RESERVED_COLUMNS:
        return RESERVED_PREFIX + col
    return col


def table_name_for(source_name: str, prefix: str) -> str:
    """Staging table name: the configured prefix plus the normalized source name"""
    return f"{prefix}{normalize_identifier(source_name)}"


def short_table_name(table_name: str, prefix: str) -> str:
    if prefix and table_name.startswith(prefix):
        return table_name[len(prefix):]
    return table_name


def read_header_line(csv_path: Union[str, Path]) -> str:
    """Return the first line of a CSV file without its line terminator"""
    try:
        with open(csv_path, "r", encoding="utf-8-sig", errors="replace", newline="") as handle:
            line = handle.readline()
    except OSError as e:
        raise HeaderError(
            "Cannot open CSV",
            context={"csv_file": str(csv_path)},
            original_exception=e,
            exit_code=ImportExitCode.CANNOT_OPEN_CSV,
        )
    return line.rstrip("\r\n")


def split_header(line: str, delimiter: str = ",", enclosure: str = '"') -> List[str]:
    fields = []
    for field in line.split(delimiter):
        field = field.strip()
        if enclosure:
            field = field.strip(enclosure)
        fields.append(field)
    return fields


def dedupe_columns(names: List[str]) -> List[str]:
    """Suffix repeated names with _2, _3, ... keeping the first occurrence as-is"""
    seen = set()
    result = []
    for name in names:
        candidate = name
        n = 1
        while candidate in seen:
            n += 1
            candidate = f"{name}_{n}"
        if candidate != name:
            logger.warning(f"Duplicate column '{name}' renamed to '{candidate}'")
        seen.add(candidate)
        result.append(candidate)
    return result


def infer_columns(
    csv_path: Union[str, Path],
    delimiter: str = ",",
    enclosure: str = '"',
) -> List[ColumnSpec]:
    """
    Infer the ordered column list of a CSV file from its first line.

    Subsequent rows are not inspected.

    Raises:
        HeaderError: If the file cannot be opened or the header is empty
    """
    line = read_header_line(csv_path)
    if not line.strip():
        raise HeaderError(
            "Empty CSV header",
            context={"csv_file": str(csv_path)},
            exit_code=ImportExitCode.CANNOT_READ_HEADERS,
        )

    raw_headers = split_header(line, delimiter, enclosure)
    names = dedupe_columns([sanitize_column_name(h) for h in raw_headers])

    return [
        ColumnSpec(raw_header=raw, name=name)
        for raw, name in zip(raw_headers, names)
    ]
