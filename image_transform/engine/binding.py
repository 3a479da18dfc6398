"""Narrow binding over libvips (via pyvips).

Every transform primitive takes a ``NativeImageHandle``, consumes it (even
when the call fails) and returns a new handle. Size checks run before the
native call so oversized requests never reach libvips. pyvips failures are
converted to ``NativeOperationError`` carrying the engine's error text, and
the engine error buffer is cleared as soon as it has been read.
"""

from __future__ import annotations

import contextlib
import os
import sys
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from image_transform.engine.handle import NativeImageHandle
from image_transform.engine.metrics import metrics
from image_transform.errors import (
    EngineStartupError,
    InvalidParameterError,
    SizeExceededError,
    UnsupportedFormatError,
    classify_native_error,
)
from image_transform.logger import get_logger
from image_transform.options import SaveOptions
from image_transform.types import (
    CONVERTIBLE_INTERPRETATIONS,
    MAX_SIZE,
    Angle,
    Dimensions,
    Direction,
    Extend,
    ImageType,
    Interpolator,
    Interpretation,
    image_type_from_loader,
)

if TYPE_CHECKING:
    from image_transform.engine.lifecycle import Subsystem

_logger = get_logger("binding")

_ICC_FIELD = "icc-profile-data"
_ORIENTATION_FIELD = "orientation"
_SMART_INTERESTING = "attention"

_pyvips: Any | None = None


def get_vips() -> Any:
    """Import pyvips on first use; importing it starts libvips."""
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        _pyvips = pyvips
    return _pyvips


def vips_started() -> bool:
    return _pyvips is not None or "pyvips" in sys.modules


def _check_edges(operation: str, width: int, height: int) -> None:
    if width > MAX_SIZE or height > MAX_SIZE:
        raise SizeExceededError(f"{operation}: {width}x{height} exceeds maximum edge length {MAX_SIZE}")


class NativeBinding:
    def __init__(self, subsystem: Subsystem) -> None:
        self._subsystem = subsystem

    # ---- plumbing --------------------------------------------------
    def _wrap(self, image: Any, label: str) -> NativeImageHandle:
        return NativeImageHandle(image, self._subsystem.ledger, label)

    @contextlib.contextmanager
    def _native(self, operation: str) -> Iterator[Any]:
        self._subsystem.require_initialized()
        vips = get_vips()
        with metrics.native_call(operation):
            try:
                yield vips
            except vips.Error as exc:
                error = classify_native_error(operation, exc, vips)
                _logger.debug("native %s failed: %s", operation, error.message)
                raise error from exc

    # ---- engine control (used by the lifecycle manager) ------------
    def start_engine(self, concurrency: int | None) -> tuple[int, int]:
        """Start libvips and return its (major, minor) version."""
        if concurrency is not None and not vips_started():
            # libvips reads this once, during its own init
            os.environ["VIPS_CONCURRENCY"] = str(concurrency)
        try:
            vips = get_vips()
            return int(vips.version(0)), int(vips.version(1))
        except Exception as exc:
            raise EngineStartupError(f"unable to start libvips: {exc}") from exc

    def set_cache_limits(self, max_mem: int, max_ops: int) -> None:
        vips = get_vips()
        vips.cache_set_max_mem(int(max_mem))
        vips.cache_set_max(int(max_ops))

    def set_concurrency(self, concurrency: int) -> bool:
        setter = getattr(get_vips(), "concurrency_set", None)
        if setter is None:
            _logger.debug("pyvips has no concurrency_set; relying on VIPS_CONCURRENCY")
            return False
        setter(int(concurrency))
        return True

    def set_cache_trace(self, enabled: bool) -> None:
        get_vips().cache_set_trace(bool(enabled))

    def drop_cache(self) -> None:
        vips = get_vips()
        vips.cache_set_max(0)
        vips.cache_set_max_mem(0)

    def shutdown_engine(self) -> None:
        if vips_started():
            get_vips().shutdown()

    def tracked_memory(self) -> tuple[int, int, int]:
        """(current bytes, high-water bytes, allocation count) tracked by libvips."""
        vips = get_vips()

        def _tracked(name: str) -> int:
            fn = getattr(vips, f"tracked_get_{name}", None)
            if fn is None:
                fn = getattr(vips.vips_lib, f"vips_tracked_get_{name}", None)
            return int(fn()) if fn is not None else 0

        return _tracked("mem"), _tracked("mem_highwater"), _tracked("allocs")

    # ---- load / save -----------------------------------------------
    def detect_type(self, buffer: bytes) -> ImageType:
        if not buffer:
            return ImageType.UNKNOWN
        with self._native("find_load_buffer") as vips:
            loader = vips.vips_lib.vips_foreign_find_load_buffer(buffer, len(buffer))
            if loader == vips.ffi.NULL:
                # a miss leaves "not a known format" in the engine error buffer
                vips.vips_lib.vips_error_clear()
                return ImageType.UNKNOWN
            name = vips.ffi.string(loader).decode()
        return image_type_from_loader(name)

    def load(self, buffer: bytes) -> tuple[NativeImageHandle, ImageType]:
        image_type = self.detect_type(buffer)
        if image_type is ImageType.UNKNOWN:
            raise UnsupportedFormatError("unsupported image format")
        with self._native("load") as vips:
            image = vips.Image.new_from_buffer(buffer, "")
        _logger.debug("loaded %s %dx%d bands=%d", image_type.value, image.width, image.height, image.bands)
        return self._wrap(image, f"load:{image_type.value}"), image_type

    def load_shrunk(self, handle: NativeImageHandle, buffer: bytes, shrink: int) -> NativeImageHandle:
        """Reload a JPEG with DCT-domain shrink-on-load, replacing ``handle``."""
        handle.take()
        if shrink not in (2, 4, 8):
            raise InvalidParameterError(f"jpeg shrink-on-load factor must be 2, 4 or 8: {shrink}")
        with self._native("jpegload_shrink") as vips:
            image = vips.Image.new_from_buffer(buffer, "", shrink=shrink)
        return self._wrap(image, f"jpegload_shrink:{shrink}")

    def save(self, handle: NativeImageHandle, options: SaveOptions) -> bytes:
        image = handle.take()
        if options.type is ImageType.WEBP:
            kwargs: dict[str, Any] = {"Q": options.quality}
        elif options.type is ImageType.PNG:
            kwargs = {"compression": options.compression, "interlace": options.interlace}
        else:
            kwargs = {"Q": options.quality, "interlace": options.interlace}
        with self._native("save"):
            out = image.write_to_buffer(options.type.suffix, **kwargs)
        # Normalize to bytes in case pyvips returns a memoryview-like object
        return out if isinstance(out, bytes) else bytes(out)

    # ---- geometric primitives ----------------------------------------
    def rotate(self, handle: NativeImageHandle, angle: int) -> NativeImageHandle:
        image = handle.take()
        try:
            angle = Angle(int(angle))
        except ValueError:
            raise InvalidParameterError(f"rotation must be a multiple of 90 degrees: {angle}") from None
        with self._native("rotate"):
            out = image.rot(angle.nick)
        return self._wrap(out, f"rotate:{angle.value}")

    def flip(self, handle: NativeImageHandle, direction: Direction) -> NativeImageHandle:
        image = handle.take()
        direction = Direction(direction)
        with self._native("flip"):
            out = image.flip(direction.value)
        return self._wrap(out, f"flip:{direction.value}")

    def zoom(self, handle: NativeImageHandle, factor: int) -> NativeImageHandle:
        image = handle.take()
        if factor < 1:
            raise InvalidParameterError(f"zoom factor must be >= 1: {factor}")
        _check_edges("zoom", image.width * factor, image.height * factor)
        with self._native("zoom"):
            out = image.zoom(factor, factor)
        return self._wrap(out, f"zoom:{factor}")

    def shrink(self, handle: NativeImageHandle, factor: int) -> NativeImageHandle:
        image = handle.take()
        with self._native("shrink"):
            out = image.shrink(float(factor), float(factor))
        return self._wrap(out, f"shrink:{factor}")

    def affine(
        self, handle: NativeImageHandle, scale_x: float, scale_y: float, interpolator: Interpolator
    ) -> NativeImageHandle:
        image = handle.take()
        _check_edges("affine", round(image.width * scale_x), round(image.height * scale_y))
        with self._native("affine") as vips:
            interpolate = vips.Interpolate.new(Interpolator(interpolator).value)
            out = image.affine([scale_x, 0.0, 0.0, scale_y], interpolate=interpolate)
        return self._wrap(out, "affine")

    def extract_area(self, handle: NativeImageHandle, left: int, top: int, width: int, height: int) -> NativeImageHandle:
        image = handle.take()
        _check_edges("extract_area", width, height)
        if width <= 0 or height <= 0:
            raise InvalidParameterError(f"extract_area: empty area {width}x{height}")
        if left + width > image.width or top + height > image.height:
            raise SizeExceededError(
                f"extract_area: {width}x{height}+{left}+{top} exceeds image bounds {image.width}x{image.height}"
            )
        with self._native("extract_area"):
            out = image.extract_area(left, top, width, height)
        return self._wrap(out, "extract_area")

    def smartcrop(self, handle: NativeImageHandle, width: int, height: int) -> NativeImageHandle:
        image = handle.take()
        _check_edges("smartcrop", width, height)
        with self._native("smartcrop"):
            out = image.smartcrop(width, height, interesting=_SMART_INTERESTING)
        return self._wrap(out, "smartcrop")

    def embed(
        self,
        handle: NativeImageHandle,
        left: int,
        top: int,
        width: int,
        height: int,
        extend: Extend = Extend.BLACK,
        background: list[float] | None = None,
    ) -> NativeImageHandle:
        image = handle.take()
        _check_edges("embed", width, height)
        extend = Extend(extend)
        kwargs: dict[str, Any] = {"extend": extend.value}
        if extend is Extend.BACKGROUND:
            bg = list(background or [0.0, 0.0, 0.0])[: image.bands]
            # Pad missing bands (alpha included) as opaque
            bg += [255.0] * (image.bands - len(bg))
            kwargs["background"] = bg
        with self._native("embed"):
            out = image.embed(left, top, width, height, **kwargs)
        return self._wrap(out, "embed")

    # ---- colour / metadata primitives --------------------------------
    def colourspace(self, handle: NativeImageHandle, target: Interpretation) -> NativeImageHandle:
        """Convert to ``target``; hands ``handle`` back untouched if its space is not convertible."""
        if not self.colourspace_supported(handle):
            _logger.debug("colourspace %s not convertible; skipped", self.interpretation(handle))
            return handle
        image = handle.take()
        target = Interpretation(target)
        with self._native("colourspace"):
            out = image.colourspace(target.value)
        return self._wrap(out, f"colourspace:{target.value}")

    def strip_profile(self, handle: NativeImageHandle) -> NativeImageHandle:
        return self._remove_field(handle, _ICC_FIELD, "strip_profile")

    def strip_orientation(self, handle: NativeImageHandle) -> NativeImageHandle:
        return self._remove_field(handle, _ORIENTATION_FIELD, "strip_orientation")

    def _remove_field(self, handle: NativeImageHandle, name: str, operation: str) -> NativeImageHandle:
        image = handle.take()
        with self._native(operation):
            # Metadata must only be changed on a private copy
            out = image.copy()
            out.remove(name)
        return self._wrap(out, operation)

    def watermark_text(
        self,
        handle: NativeImageHandle,
        text: str,
        *,
        font: str,
        width: int,
        dpi: int,
        margin: int,
        opacity: float,
        replicate: bool,
        colour: list[float],
    ) -> NativeImageHandle:
        image = handle.take()
        with self._native("watermark_text") as vips:
            mask = vips.Image.text(text, font=font, width=width, dpi=dpi)
            mask = mask.embed(margin, margin, mask.width + 2 * margin, mask.height + 2 * margin)
            if replicate:
                across = image.width // mask.width + 1
                down = image.height // mask.height + 1
                mask = mask.replicate(across, down)
            mask = mask.extract_area(0, 0, min(mask.width, image.width), min(mask.height, image.height))
            mask = mask.embed(0, 0, image.width, image.height)
            out = self._blend(image, mask * (opacity / 255.0), colour)
        return self._wrap(out, "watermark_text")

    @staticmethod
    def _blend(image: Any, alpha: Any, colour: list[float]) -> Any:
        has_alpha = image.hasalpha()
        colour_bands = image.bands - 1 if has_alpha else image.bands
        base = image.extract_band(0, n=colour_bands) if has_alpha else image
        if colour_bands == 1:
            ink = [sum(colour) / len(colour)]
        else:
            ink = (colour + [0.0] * colour_bands)[:colour_bands]
        marked = (base * (1 - alpha) + alpha * ink).cast(image.format)
        if has_alpha:
            marked = marked.bandjoin(image.extract_band(image.bands - 1))
        return marked.copy(interpretation=image.interpretation)

    def watermark_image(
        self, handle: NativeImageHandle, buffer: bytes, *, left: int, top: int, opacity: float
    ) -> NativeImageHandle:
        image = handle.take()
        if left >= image.width or top >= image.height:
            raise InvalidParameterError(
                f"watermark position {left},{top} is outside the image {image.width}x{image.height}"
            )
        with self._native("watermark_image") as vips:
            overlay = vips.Image.new_from_buffer(buffer, "")
            if not overlay.hasalpha():
                overlay = overlay.bandjoin(255)
            if opacity < 1.0:
                last = overlay.bands - 1
                overlay = overlay.extract_band(0, n=last).bandjoin(overlay.extract_band(last) * opacity)
            out = image.composite2(overlay, "over", x=left, y=top)
            if not image.hasalpha():
                out = out.extract_band(0, n=out.bands - 1)
            out = out.cast(image.format)
        return self._wrap(out, "watermark_image")

    # ---- raw pixel access ----------------------------------------------
    def from_memory(self, data: bytes, width: int, height: int, bands: int) -> NativeImageHandle:
        """Wrap packed uchar pixels (row-major, interleaved bands) in a new handle."""
        _check_edges("from_memory", width, height)
        if len(data) != width * height * bands:
            raise InvalidParameterError(f"pixel buffer is {len(data)} bytes, expected {width * height * bands}")
        with self._native("from_memory") as vips:
            image = vips.Image.new_from_memory(data, width, height, bands, "uchar")
            interpretation = "b-w" if bands in (1, 2) else "srgb"
            image = image.copy(interpretation=interpretation)
        return self._wrap(image, "from_memory")

    def flatten(self, handle: NativeImageHandle, background: list[float]) -> NativeImageHandle:
        if not self.has_alpha(handle):
            return handle
        image = handle.take()
        with self._native("flatten"):
            out = image.flatten(background=background[: image.bands - 1])
        return self._wrap(out, "flatten")

    def cast_uchar(self, handle: NativeImageHandle) -> NativeImageHandle:
        if handle.image.format == "uchar":
            return handle
        image = handle.take()
        with self._native("cast"):
            out = image.cast("uchar")
        return self._wrap(out, "cast:uchar")

    def to_memory(self, handle: NativeImageHandle) -> tuple[bytes, int, int, int]:
        """Render to packed pixels: (data, width, height, bands). Consumes the handle."""
        image = handle.take()
        with self._native("to_memory"):
            data = image.write_to_memory()
        return bytes(data), int(image.width), int(image.height), int(image.bands)

    # ---- read-only queries -------------------------------------------
    def dimensions(self, handle: NativeImageHandle) -> Dimensions:
        return Dimensions(handle.width, handle.height)

    def bands(self, handle: NativeImageHandle) -> int:
        return int(handle.image.bands)

    def has_alpha(self, handle: NativeImageHandle) -> bool:
        with self._native("has_alpha"):
            return bool(handle.image.hasalpha())

    def has_profile(self, handle: NativeImageHandle) -> bool:
        with self._native("has_profile"):
            return handle.image.get_typeof(_ICC_FIELD) != 0

    def exif_orientation(self, handle: NativeImageHandle) -> int:
        with self._native("exif_orientation"):
            image = handle.image
            if image.get_typeof(_ORIENTATION_FIELD) == 0:
                return 0
            return int(image.get(_ORIENTATION_FIELD))

    def interpretation(self, handle: NativeImageHandle) -> str:
        with self._native("interpretation"):
            return str(handle.image.interpretation)

    def colourspace_supported(self, handle: NativeImageHandle) -> bool:
        return self.interpretation(handle) in CONVERTIBLE_INTERPRETATIONS
