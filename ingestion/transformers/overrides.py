"""
Per-table column type overrides.

Operators place `key=value` files under the override directory, named after
either the full staging table (`cvr_import_telefaxnummer.conf`) or the table
without the configured prefix (`telefaxnummer.conf`):

    # comments run to end of line
    telefaxnummer=VARCHAR(100) NULL
    antal_ansatte=INT NULL

Keys go through the same sanitizer as CSV headers before they are compared,
so `Antal Ansatte=INT NULL` matches the `antal_ansatte` column too.
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from ingestion.transformers.columns import sanitize_column_name, short_table_name
from schemas.source import ColumnSpec

logger = logging.getLogger(__name__)

OVERRIDE_SUFFIX = ".conf"


def parse_override_lines(text: str) -> Iterator[Tuple[str, str]]:
    """Yield (sanitized key, type fragment) pairs in file order"""
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        if not line or "=" not in line:
            continue
        key, value = line.split("=", 1)
        value = value.strip()
        if not key.strip() or not value:
            continue
        yield sanitize_column_name(key), value


class OverrideResolver:
    """
    Look up an explicit SQL type for a (table, column) pair.

    Candidates are probed in order: `<table>.conf`, then `<short>.conf`.
    Only the first candidate that exists is scanned, and the first matching
    key in it wins. Missing files or keys mean "no override" and are never an
    error. A disabled resolver never touches the filesystem.
    """

    def __init__(
        self,
        override_dir: Union[str, Path],
        prefix: str = "",
        enabled: bool = True,
    ):
        self.override_dir = Path(override_dir)
        self.prefix = prefix
        self.enabled = enabled

    def candidates(self, table_name: str) -> List[Path]:
        short = short_table_name(table_name, self.prefix)
        names = [table_name]
        if short != table_name:
            names.append(short)
        return [self.override_dir / f"{name}{OVERRIDE_SUFFIX}" for name in names]

    def source_for(self, table_name: str) -> Optional[Path]:
        """The override file that applies to a table, if any"""
        for path in self.candidates(table_name):
            if path.is_file():
                return path
        return None

    def _read(self, path: Path) -> str:
        return path.read_text(encoding="utf-8", errors="replace")

    def lookup(self, table_name: str, column: str) -> Optional[str]:
        """Return the SQL type fragment for a raw or sanitized column, or None"""
        if not self.enabled:
            return None

        path = self.source_for(table_name)
        if path is None:
            return None

        wanted = sanitize_column_name(column)
        for key, value in parse_override_lines(self._read(path)):
            if key == wanted:
                return value
        return None

    def overrides_for(self, table_name: str) -> Dict[str, str]:
        """All overrides of a table, first occurrence of a key wins"""
        if not self.enabled:
            return {}

        path = self.source_for(table_name)
        if path is None:
            return {}

        overrides: Dict[str, str] = {}
        for key, value in parse_override_lines(self._read(path)):
            overrides.setdefault(key, value)
        logger.debug(f"Loaded {len(overrides)} override(s) for {table_name} from {path.name}")
        return overrides

    def apply(self, table_name: str, columns: List[ColumnSpec]) -> List[ColumnSpec]:
        """Return the columns with their override types filled in"""
        overrides = self.overrides_for(table_name)
        return [
            column.model_copy(update={"override_type": overrides.get(column.name)})
            for column in columns
        ]
