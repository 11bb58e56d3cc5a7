"""Atomic JSON record files."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from hostguard.errors import CorruptedStateError


def write_json_atomic(path: Path, data: Dict[str, Any]):
    """Write *data* to *path* so readers see either the old or the new record."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def read_json(path: Path) -> Optional[Dict[str, Any]]:
    """
    Read a JSON record.

    Returns None when the file does not exist.

    Raises:
        CorruptedStateError: if the file exists but is not a JSON object
    """
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        raise CorruptedStateError(str(path), str(e)) from e

    if not isinstance(data, dict):
        raise CorruptedStateError(str(path), "record is not a JSON object")
    return data


def remove(path: Path) -> bool:
    """Delete a record; returns False if it was already gone."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
