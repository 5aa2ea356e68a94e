"""
Cache gates deciding whether a stage can reuse output of an earlier run.

Fetch: an artifact counts as cached when it exists and is at least
CACHE_THRESHOLD_BYTES large. Downloads land under a `.part` name first, so a
file under the final name is always a completed transfer, but its content is
not checksummed.

Extract: the output directory is reused only when its completion marker
names the same archive (file name and size) that is about to be extracted.
The check happens before the directory is cleared.
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

MARKER_NAME = ".extracted"


def file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0


def artifact_is_cached(path: Path, threshold_bytes: int) -> bool:
    return path.is_file() and file_size(path) >= threshold_bytes


def clear_directory(path: Path) -> None:
    """Remove everything inside `path`, keeping the directory itself"""
    if not path.is_dir():
        return
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def read_marker(output_dir: Path) -> Optional[dict]:
    marker = output_dir / MARKER_NAME
    if not marker.is_file():
        return None
    try:
        return json.loads(marker.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.debug(f"Ignoring unreadable extraction marker in {output_dir}")
        return None


def write_marker(output_dir: Path, archive: Path, file_count: int) -> None:
    payload = {"archive": archive.name, "size": file_size(archive), "files": file_count}
    (output_dir / MARKER_NAME).write_text(json.dumps(payload), encoding="utf-8")


def extraction_is_cached(output_dir: Path, archive: Path) -> bool:
    marker = read_marker(output_dir)
    if not marker:
        return False
    return marker.get("archive") == archive.name and marker.get("size") == file_size(archive)
