"""
Pydantic schemas for registry entries and inferred columns
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional

REGISTRY_FIELDS = (
    "name",
    "version",
    "url_part",
    "download_type",
    "file_type",
    "data_type",
    "timeout",
)

# Constant trailing segment of every artifact name published by the feed
ARTIFACT_SUFFIX = "289"

# Type of every inferred column without an override
DEFAULT_COLUMN_TYPE = "TEXT"


class SourceDescriptor(BaseModel):
    """
    One named source of the registry feed.

    Immutable; identity is `name`. The remaining fields only drive the
    artifact filename and the download timeout.
    """

    name: str = Field(..., min_length=1)
    version: str
    url_part: str
    download_type: str
    file_type: str
    data_type: str
    timeout: Optional[int] = Field(None, gt=0)

    class Config:
        frozen = True

    @field_validator("timeout", mode="before")
    @classmethod
    def empty_timeout(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @classmethod
    def parse(cls, entry: str) -> "SourceDescriptor":
        """
        Parse a `NAME|VERSION|URL_PART|DOWNLOAD_TYPE|FILE_TYPE|DATA_TYPE|TIMEOUT`
        registry entry.
        """
        parts = [p.strip() for p in entry.split("|")]
        if len(parts) != len(REGISTRY_FIELDS):
            raise ValueError(
                f"Registry entry must have {len(REGISTRY_FIELDS)} fields, "
                f"got {len(parts)}: {entry!r}"
            )
        return cls(**dict(zip(REGISTRY_FIELDS, parts)))

    @property
    def artifact_filename(self) -> str:
        return (
            f"CVR_{self.version}_{self.url_part}_{self.download_type}_"
            f"{self.file_type}_{self.data_type}_{ARTIFACT_SUFFIX}.zip"
        )


class ColumnSpec(BaseModel):
    """A CSV header and the staging-table column it maps to"""

    raw_header: str
    name: str
    override_type: Optional[str] = None

    @property
    def sql_type(self) -> str:
        return self.override_type or DEFAULT_COLUMN_TYPE
