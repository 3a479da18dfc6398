"""Error taxonomy for image transformations.

Every per-request failure derives from ``ImageTransformError`` so callers can
catch one base class and still branch on the kind. The only startup failure,
``EngineStartupError``, sits outside that hierarchy on purpose.
"""

from __future__ import annotations

import contextlib
from typing import Any


class ImageTransformError(Exception):
    """Base class for recoverable, per-request failures."""


class NativeOperationError(ImageTransformError):
    """A native engine primitive failed; carries the engine's error text."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"{operation}: {message}" if message else operation)


class UnsupportedFormatError(ImageTransformError):
    """The buffer's magic bytes do not match a supported format."""


class SizeExceededError(ImageTransformError):
    """A requested dimension exceeds the source bounds or the maximum edge length."""


class InvalidParameterError(ImageTransformError, ValueError):
    """An option value is out of range (e.g. rotation not a multiple of 90)."""


class NotInitializedError(ImageTransformError):
    """A primitive was invoked while the subsystem is uninitialized."""


class HandleConsumedError(ImageTransformError):
    """A native handle was used after ownership moved to another call."""


class EngineStartupError(RuntimeError):
    """The native engine is too old or failed to start. Not recoverable."""


def _engine_text(exc: BaseException) -> str:
    message = str(getattr(exc, "message", "") or "").strip()
    detail = str(getattr(exc, "detail", "") or "").strip()
    if message and detail:
        return f"{message}\n{detail}"
    return message or detail or str(exc)


def classify_native_error(operation: str, exc: BaseException, vips: Any | None = None) -> NativeOperationError:
    """Convert a pyvips failure into ``NativeOperationError``.

    The engine error buffer is cleared once its text has been captured, so it
    cannot be attributed to a later call.
    """
    text = _engine_text(exc)
    if vips is not None:
        with contextlib.suppress(Exception):
            vips.vips_lib.vips_error_clear()
    return NativeOperationError(operation, text)
