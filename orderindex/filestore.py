"""
JSON documents on the shared orders volume.

The worker and the admin API coordinate only through files, so every write
goes to a temp file in the same directory and is then renamed over the
target.  Readers see either the old document or the new one, never a torn
file.
"""

import json
import os
import tempfile
import time
from typing import Any

TEMP_SUFFIX = ".tmp"


def _default_file_mode() -> int:
    """Mode a plain ``open(path, "w")`` would get under the current umask."""
    mask = os.umask(0)
    os.umask(mask)
    return 0o666 & ~mask


def write_text_atomic(path: str, text: str) -> None:
    """Write *text* to *path* via temp file + ``os.replace``."""
    directory = os.path.dirname(path) or "."
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=TEMP_SUFFIX, dir=directory
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            # mkstemp creates 0600; the admin API may read as another user
            os.fchmod(f.fileno(), _default_file_mode())
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def write_json_atomic(path: str, data: Any) -> None:
    write_text_atomic(path, json.dumps(data, indent=2, ensure_ascii=False))


def read_json(path: str) -> Any:
    """Load a JSON document.  Raises ``FileNotFoundError`` / ``ValueError``."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def remove_stale_temp_files(path: str, max_age_seconds: float = 3600.0) -> int:
    """
    Delete leftover temp siblings of *path* from writes that never reached
    ``os.replace`` (process killed mid-write).

    Only files older than *max_age_seconds* are removed so an in-flight
    write by another process is left alone.  Returns the number removed.
    """
    directory = os.path.dirname(path) or "."
    prefix = f".{os.path.basename(path)}."
    cutoff = time.time() - max_age_seconds
    removed = 0
    try:
        entries = os.scandir(directory)
    except FileNotFoundError:
        return 0
    with entries:
        for entry in entries:
            if not (entry.name.startswith(prefix) and entry.name.endswith(TEMP_SUFFIX)):
                continue
            try:
                if entry.stat().st_mtime < cutoff:
                    os.remove(entry.path)
                    removed += 1
            except FileNotFoundError:
                continue
    return removed


def delete_if_exists(path: str) -> bool:
    """Remove *path*; a file already gone is not an error.  Returns True if removed."""
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
