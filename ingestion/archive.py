"""
Archive extraction for downloaded artifacts
"""

import logging
import zipfile
from pathlib import Path
from typing import Tuple

logger = logging.getLogger(__name__)


def extract_archive(archive: Path, dest: Path) -> Tuple[bool, int]:
    """
    Extract a ZIP archive into `dest`.

    Returns:
        Tuple of (success, number of files extracted)
    """
    try:
        with zipfile.ZipFile(archive, "r") as zip_ref:
            members = [m for m in zip_ref.infolist() if not m.is_dir()]
            zip_ref.extractall(dest)
    except (zipfile.BadZipFile, OSError) as e:
        logger.error(f"Failed to extract {archive.name}: {e}")
        return False, 0

    return True, len(members)
