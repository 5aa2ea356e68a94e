"""
Async engine construction for the staging database
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.pool import NullPool
from core.config import Settings, settings as default_settings
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def create_engine_from_settings(
    settings: Settings = default_settings,
    method: Optional[str] = None,
) -> AsyncEngine:
    """
    Create the async engine used by the import stage.

    LOAD DATA LOCAL INFILE must be allowed on the client side, which for
    aiomysql is the `local_infile` connect argument. `method` is the import
    method actually in use and takes precedence over IMPORT_METHOD.
    """
    connect_args = {}
    if (method or settings.IMPORT_METHOD) == "native":
        connect_args["local_infile"] = True

    return create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        poolclass=NullPool,
        connect_args=connect_args,
    )


def describe_url(url: str) -> str:
    """Database URL without credentials, for log lines"""
    return url.split("@", 1)[1] if "@" in url else "configured"
