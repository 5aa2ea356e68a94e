"""
Logging configuration
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_file_path(log_name: str, log_dir: Optional[str] = None) -> Path:
    """Monthly log file, e.g. logs/pipeline-2026-10.log"""
    suffix = datetime.now().strftime("%Y-%m")
    return Path(log_dir or settings.LOG_DIR) / f"{log_name}-{suffix}.log"


def setup_logging(verbose: bool = False, log_name: Optional[str] = "pipeline"):
    """Configure application logging"""
    
    if verbose:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    
    handlers = [logging.StreamHandler(sys.stdout)]
    
    log_file = None
    if log_name:
        log_file = log_file_path(log_name)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    
    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True
    )
    
    # Set SQLAlchemy and httpx logging to WARNING to reduce noise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    
    logger = logging.getLogger(__name__)
    logger.debug(f"Logging configured at {logging.getLevelName(log_level)} level")
    if log_file:
        logger.debug(f"Log file: {log_file}")
