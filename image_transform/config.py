"""Native engine tuning consumed when the subsystem initializes.

Values come from the environment; an optional ``.env`` file in the working
directory is read first and never overrides variables that are already set.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from image_transform.logger import get_logger

_logger = get_logger("config")

DEFAULT_CACHE_MAX_MEM = 100 * 1024 * 1024
DEFAULT_CACHE_MAX_OPS = 500
DEFAULT_MIN_VERSION = (8, 6)

_TRUE_VALUES = ("1", "true", "yes", "on")


def load_env_file(env_path: str = ".env") -> None:
    try:
        if not os.path.exists(env_path):
            return
        with open(env_path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                k, v = line.split("=", 1)
                k, v = k.strip(), v.strip()
                if k and v and k not in os.environ:
                    os.environ[k] = v
    except (OSError, UnicodeError) as e:
        # .env load failure is not critical
        _logger.debug("env load skipped: %s", e)


def _env_int(name: str, default: int | None) -> int | None:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        _logger.warning("ignoring non-integer %s=%r", name, raw)
        return default


@dataclass(frozen=True)
class SubsystemConfig:
    max_cache_mem: int = DEFAULT_CACHE_MAX_MEM
    max_cache_ops: int = DEFAULT_CACHE_MAX_OPS
    # None lets the engine pick its own worker count
    concurrency: int | None = None
    trace: bool = False
    min_version: tuple[int, int] = DEFAULT_MIN_VERSION

    @classmethod
    def from_env(cls, env_file: str | None = ".env") -> SubsystemConfig:
        if env_file:
            load_env_file(env_file)
        concurrency = _env_int("VIPS_CONCURRENCY", None)
        if concurrency is not None and concurrency <= 0:
            concurrency = None
        trace = (os.getenv("VIPS_TRACE") or "").strip().lower() in _TRUE_VALUES
        return cls(
            max_cache_mem=_env_int("IMAGE_TRANSFORM_CACHE_MAX_MEM", DEFAULT_CACHE_MAX_MEM) or 0,
            max_cache_ops=_env_int("IMAGE_TRANSFORM_CACHE_MAX_OPS", DEFAULT_CACHE_MAX_OPS) or 0,
            concurrency=concurrency,
            trace=trace,
        )
