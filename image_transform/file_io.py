"""Buffer I/O helpers: whole files in, whole files out."""

from __future__ import annotations

import os
from pathlib import Path

from image_transform.logger import get_logger

_logger = get_logger("file_io")


def read_file(path: str | os.PathLike[str]) -> bytes:
    data = Path(path).read_bytes()
    _logger.debug("read %d bytes from %s", len(data), path)
    return data


def write_file(path: str | os.PathLike[str], buffer: bytes) -> str:
    """Write ``buffer`` atomically (temp file + replace) and return the path."""
    target = Path(path)
    tmp = target.with_name(f".{target.name}.tmp")
    try:
        tmp.write_bytes(buffer)
        os.replace(tmp, target)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    _logger.debug("wrote %d bytes to %s", len(buffer), target)
    return str(target)
