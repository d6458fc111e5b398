"""Private-file helpers for credential and account storage.

Both stores rewrite their whole JSON file on every change. Writes go to a
temporary file in the same directory and are moved into place with
``os.replace`` so readers only ever observe a complete file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from gworkspace_accounts.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def ensure_private_dir(directory: Path) -> None:
    """Create a directory with owner-only permissions, or tighten an existing one."""
    if not directory.exists():
        directory.mkdir(parents=True, mode=0o700)
    else:
        directory.chmod(0o700)


def read_json(path: Path, strict: bool = False) -> dict[str, Any]:
    """Read a JSON object from disk.

    A missing file always reads as an empty dict. An unreadable file, or one
    that does not hold a JSON object, reads as an empty dict unless
    ``strict`` is set.

    Args:
        path: File to read.
        strict: Raise instead of returning an empty dict for a damaged file.

    Returns:
        The decoded object.

    Raises:
        ConfigurationError: If ``strict`` is set and the file cannot be decoded.
    """
    if not path.exists():
        return {}

    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        if strict:
            raise ConfigurationError(f"Could not read {path}: {e}") from e
        logger.warning(f"Could not read {path}: {e}")
        return {}

    if not isinstance(data, dict):
        if strict:
            raise ConfigurationError(f"Could not read {path}: expected a JSON object")
        logger.warning(f"Ignoring {path}: expected a JSON object")
        return {}
    return data


def write_json_atomic(path: Path, data: dict[str, Any], mode: int = 0o600) -> None:
    """Write a JSON object to ``path`` atomically.

    Args:
        path: Destination file.
        data: JSON-serializable object.
        mode: Permission bits applied to the file before it is moved into place.
    """
    ensure_private_dir(path.parent)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2, default=str)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.chmod(mode)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
