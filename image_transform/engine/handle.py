"""Ownership of native image handles.

A ``NativeImageHandle`` has exactly one owner. Every transform primitive
*takes* its input handle (moving the underlying native image out of it) and
returns a fresh handle, so a consumed handle can never be used again: any
access raises ``HandleConsumedError``.

``HandleLedger`` counts live handles for the whole subsystem; after a call
chain finishes, successfully or not, the live count is back where it started.
``HandleChain`` is the scoped guard the pipeline wraps around every sequence
of primitives so that the handle it currently holds is released on every exit
path, including errors.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from image_transform.errors import HandleConsumedError
from image_transform.logger import get_logger

_logger = get_logger("handle")


class HandleLedger:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next_id = 1
        self._live: dict[int, str] = {}
        self._created = 0
        self._released = 0

    def register(self, label: str) -> int:
        with self._lock:
            handle_id = self._next_id
            self._next_id += 1
            self._live[handle_id] = label
            self._created += 1
            return handle_id

    def release(self, handle_id: int) -> bool:
        with self._lock:
            if self._live.pop(handle_id, None) is None:
                return False
            self._released += 1
            return True

    @property
    def live(self) -> int:
        with self._lock:
            return len(self._live)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "live": len(self._live),
                "created": self._created,
                "released": self._released,
                "live_labels": sorted(self._live.values()),
            }


class NativeImageHandle:
    """Exclusive owner of one native image."""

    __slots__ = ("_image", "_ledger", "_id", "label")

    def __init__(self, image: Any, ledger: HandleLedger, label: str = "image") -> None:
        self._image = image
        self._ledger = ledger
        self.label = label
        self._id = ledger.register(label)

    def __repr__(self) -> str:
        state = "live" if self.alive else "consumed"
        return f"<NativeImageHandle #{self._id} {self.label} {state}>"

    @property
    def alive(self) -> bool:
        return self._image is not None

    @property
    def image(self) -> Any:
        if self._image is None:
            raise HandleConsumedError(f"handle #{self._id} ({self.label}) was already consumed")
        return self._image

    @property
    def width(self) -> int:
        return int(self.image.width)

    @property
    def height(self) -> int:
        return int(self.image.height)

    def take(self) -> Any:
        """Move the native image out; the handle is dead afterwards."""
        image = self.image
        self._drop()
        return image

    def release(self) -> None:
        if self._image is not None:
            self._drop()

    def _drop(self) -> None:
        self._image = None
        self._ledger.release(self._id)

    def __enter__(self) -> NativeImageHandle:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class HandleChain:
    """Scoped holder for the current handle of a primitive sequence.

    Usage:
        with HandleChain(binding.load(buf)[0]) as chain:
            chain.apply(binding.rotate, Angle.D90)
            out = binding.save(chain.handle, save_options)
    """

    def __init__(self, handle: NativeImageHandle) -> None:
        self.current: NativeImageHandle | None = handle

    @property
    def handle(self) -> NativeImageHandle:
        if self.current is None:
            raise HandleConsumedError("handle chain is empty")
        return self.current

    def apply(self, primitive: Callable[..., NativeImageHandle], *args: Any, **kwargs: Any) -> NativeImageHandle:
        handle = self.handle
        self.current = None
        try:
            self.current = primitive(handle, *args, **kwargs)
        finally:
            # Primitives consume their input; this only matters if one raised before taking it.
            # A primitive may hand its input straight back when it has nothing to do.
            if handle is not self.current:
                handle.release()
        return self.current

    def __enter__(self) -> HandleChain:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.current is not None:
            if exc_type is not None:
                _logger.debug("chain aborted (%s); releasing %r", exc_type.__name__, self.current)
            self.current.release()
            self.current = None
