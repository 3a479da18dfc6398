"""Composite image operations built from ordered native primitives.

Every operation is one load -> transform -> save round trip over an encoded
buffer. The order of primitives inside a round trip is fixed:

1. load (detect format, reject unknown magic bytes)
2. extract area, when requested (after EXIF auto-rotation)
3. JPEG shrink-on-load, when the downscale factor is at least 2
4. EXIF auto-rotation
5. integer box shrink, then a residual affine scale to the exact size
6. gravity crop or embed to the final canvas
7. zoom, flip/flop, user rotation
8. text / image watermark
9. pre-save normalization (profile strip, colourspace) and save

The geometry is decided up front by ``plan_resize`` from the source size and
the options alone, so the decision table can be tested without libvips.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from image_transform.engine.binding import NativeBinding
from image_transform.engine.handle import HandleChain
from image_transform.engine.lifecycle import Subsystem, get_subsystem
from image_transform.engine.metrics import metrics
from image_transform.errors import InvalidParameterError
from image_transform.logger import get_logger
from image_transform.options import SaveOptions, TransformOptions, Watermark, WatermarkImage
from image_transform.types import (
    Angle,
    Dimensions,
    Direction,
    Extend,
    Gravity,
    ImageType,
    Interpolator,
    parse_image_type,
)

_logger = get_logger("pipeline")

THUMBNAIL_QUALITY = 95
_JPEG_SHRINK_ON_LOAD = (8, 4, 2)
_SCALE_EPSILON = 1e-9

# EXIF orientation -> (rotation, mirror left/right after rotating)
EXIF_ORIENTATIONS: dict[int, tuple[Angle, bool]] = {
    1: (Angle.D0, False),
    2: (Angle.D0, True),
    3: (Angle.D180, False),
    4: (Angle.D180, True),
    5: (Angle.D90, True),
    6: (Angle.D90, False),
    7: (Angle.D270, True),
    8: (Angle.D270, False),
}


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


# ---- geometry planning ---------------------------------------------------


@dataclass(frozen=True)
class ResizePlan:
    factor: float
    # final canvas requested by the caller
    width: int
    height: int
    # size after shrink + affine, before crop/embed
    scaled_width: int
    scaled_height: int
    shrink_on_load: int


def calculate_factor(in_width: int, in_height: int, width: int, height: int, crop: bool) -> tuple[float, int, int]:
    """Return (downscale factor, target width, target height).

    A missing target dimension is derived from the source aspect ratio.
    """
    if width > 0 and height > 0:
        xfactor = in_width / width
        yfactor = in_height / height
        # crop covers the canvas, fit stays inside it
        factor = min(xfactor, yfactor) if crop else max(xfactor, yfactor)
        return factor, width, height
    if width > 0:
        return in_width / width, width, max(1, _round(in_height * width / in_width))
    if height > 0:
        return in_height / height, max(1, _round(in_width * height / in_height)), height
    return 1.0, in_width, in_height


def calculate_shrink(factor: float, interpolator: Interpolator = Interpolator.BICUBIC) -> int:
    """Integer box-shrink part of ``factor``.

    Interpolators with a window wider than 3 px get a smaller box shrink so the
    affine step does more of the work.
    """
    window = interpolator.window_size
    if factor >= 2 and window > 3:
        shrink = math.floor(factor * 3.0 / window)
    else:
        shrink = math.floor(factor)
    return max(int(shrink), 1)


def jpeg_shrink_on_load(factor: float) -> int:
    whole = math.floor(factor)
    for candidate in _JPEG_SHRINK_ON_LOAD:
        if whole >= candidate:
            return candidate
    return 1


def calculate_crop(in_width: int, in_height: int, out_width: int, out_height: int, gravity: Gravity) -> tuple[int, int]:
    """Top-left corner of an ``out`` sized window anchored by ``gravity``."""
    centre_left = (in_width - out_width + 1) // 2
    centre_top = (in_height - out_height + 1) // 2
    if gravity is Gravity.NORTH:
        return centre_left, 0
    if gravity is Gravity.SOUTH:
        return centre_left, in_height - out_height
    if gravity is Gravity.EAST:
        return in_width - out_width, centre_top
    if gravity is Gravity.WEST:
        return 0, centre_top
    return centre_left, centre_top


def plan_resize(
    in_width: int,
    in_height: int,
    options: TransformOptions,
    image_type: ImageType = ImageType.UNKNOWN,
    allow_shrink_on_load: bool = True,
) -> ResizePlan:
    factor, width, height = calculate_factor(in_width, in_height, options.width, options.height, options.crop)
    if factor < 1.0 and not (options.enlarge or options.crop):
        # fit never upscales pixels unless asked to; embed still pads to the canvas.
        # crop always scales to cover so it can cut the exact canvas.
        factor = 1.0

    if options.width > 0 and options.height > 0:
        scaled_width = max(1, _round(in_width / factor))
        scaled_height = max(1, _round(in_height / factor))
    else:
        scaled_width, scaled_height = (width, height) if factor != 1.0 or options.enlarge else (in_width, in_height)

    shrink_on_load = 1
    if allow_shrink_on_load and image_type is ImageType.JPEG:
        shrink_on_load = jpeg_shrink_on_load(factor)

    return ResizePlan(
        factor=factor,
        width=width,
        height=height,
        scaled_width=scaled_width,
        scaled_height=scaled_height,
        shrink_on_load=shrink_on_load,
    )


# ---- primitive sequencing ------------------------------------------------


def _size(chain: HandleChain, binding: NativeBinding) -> Dimensions:
    return binding.dimensions(chain.handle)


def _auto_rotate(chain: HandleChain, binding: NativeBinding, orientation: int) -> None:
    angle, mirror = EXIF_ORIENTATIONS.get(orientation, (Angle.D0, False))
    if orientation <= 1 or orientation not in EXIF_ORIENTATIONS:
        return
    _logger.debug("auto-rotate: orientation=%d angle=%d mirror=%s", orientation, angle.value, mirror)
    if angle is not Angle.D0:
        chain.apply(binding.rotate, angle)
    if mirror:
        chain.apply(binding.flip, Direction.HORIZONTAL)
    chain.apply(binding.strip_orientation)


def _resample(chain: HandleChain, binding: NativeBinding, plan: ResizePlan, options: TransformOptions) -> None:
    current = _size(chain, binding)
    factor = min(current.width / plan.scaled_width, current.height / plan.scaled_height)
    shrink = calculate_shrink(factor, options.interpolator)
    if shrink > 1:
        chain.apply(binding.shrink, shrink)
        current = _size(chain, binding)

    scale_x = plan.scaled_width / current.width
    scale_y = plan.scaled_height / current.height
    _logger.debug(
        "resample: factor=%.4f shrink=%d residual=(%.4f, %.4f) -> %dx%d",
        factor,
        shrink,
        scale_x,
        scale_y,
        plan.scaled_width,
        plan.scaled_height,
    )
    if abs(scale_x - 1.0) > _SCALE_EPSILON or abs(scale_y - 1.0) > _SCALE_EPSILON:
        chain.apply(binding.affine, scale_x, scale_y, options.interpolator)


def _fit_canvas(chain: HandleChain, binding: NativeBinding, plan: ResizePlan, options: TransformOptions) -> None:
    """Bring the resampled image to its exact final size.

    Crop cuts the canvas out at the gravity anchor; embed pads to the full
    canvas. Affine rounding is absorbed by trimming or edge-copy padding of
    at most a pixel.
    """
    current = _size(chain, binding)
    if options.crop or options.embed:
        target = Dimensions(plan.width, plan.height)
    else:
        target = Dimensions(plan.scaled_width, plan.scaled_height)

    out_width = min(current.width, target.width)
    out_height = min(current.height, target.height)
    if (out_width, out_height) != (current.width, current.height):
        if options.crop and options.gravity is Gravity.SMART:
            chain.apply(binding.smartcrop, out_width, out_height)
        else:
            gravity = options.gravity if options.crop else Gravity.CENTRE
            left, top = calculate_crop(current.width, current.height, out_width, out_height, gravity)
            chain.apply(binding.extract_area, left, top, out_width, out_height)

    if (out_width, out_height) != (target.width, target.height):
        extend = options.extend if options.embed else Extend.COPY
        left = (target.width - out_width) // 2
        top = (target.height - out_height) // 2
        chain.apply(binding.embed, left, top, target.width, target.height, extend, options.background.as_list())


def _apply_watermark(chain: HandleChain, binding: NativeBinding, watermark: Watermark) -> None:
    current = _size(chain, binding)
    width = watermark.width or max(1, current.width // 6)
    margin = watermark.margin if watermark.margin is not None else width
    chain.apply(
        binding.watermark_text,
        watermark.text,
        font=watermark.font,
        width=width,
        dpi=watermark.dpi,
        margin=margin,
        opacity=watermark.opacity,
        replicate=not watermark.no_replicate,
        colour=watermark.background.as_list(),
    )


def _normalize_for_save(chain: HandleChain, binding: NativeBinding, save_options: SaveOptions) -> None:
    if save_options.no_profile and binding.has_profile(chain.handle):
        chain.apply(binding.strip_profile)
    # Unsupported source colourspaces are passed through unchanged
    chain.apply(binding.colourspace, save_options.interpretation)


def _transform(
    chain: HandleChain, binding: NativeBinding, buffer: bytes, image_type: ImageType, options: TransformOptions
) -> None:
    source = _size(chain, binding)
    orientation = 0 if options.no_auto_rotate else binding.exif_orientation(chain.handle)
    angle, _ = EXIF_ORIENTATIONS.get(orientation, (Angle.D0, False))
    upright = source.swapped() if angle in (Angle.D90, Angle.D270) else source

    resizing = options.width > 0 or options.height > 0
    if options.has_area:
        _auto_rotate(chain, binding, orientation)
        chain.apply(binding.extract_area, options.left, options.top, options.area_width, options.area_height)
        upright = Dimensions(options.area_width, options.area_height)
        plan = plan_resize(upright.width, upright.height, options, image_type, allow_shrink_on_load=False)
    else:
        plan = plan_resize(upright.width, upright.height, options, image_type, allow_shrink_on_load=resizing)
        if plan.shrink_on_load > 1:
            _logger.debug("jpeg shrink-on-load x%d (factor %.4f)", plan.shrink_on_load, plan.factor)
            chain.apply(binding.load_shrunk, buffer, plan.shrink_on_load)
        _auto_rotate(chain, binding, orientation)

    if resizing:
        _resample(chain, binding, plan, options)
        _fit_canvas(chain, binding, plan, options)

    if options.zoom > 1:
        chain.apply(binding.zoom, options.zoom)
    if options.flip:
        chain.apply(binding.flip, Direction.VERTICAL)
    if options.flop:
        chain.apply(binding.flip, Direction.HORIZONTAL)
    if options.angle is not Angle.D0:
        chain.apply(binding.rotate, options.angle)

    if options.watermark is not None:
        _apply_watermark(chain, binding, options.watermark)
    if options.watermark_image is not None:
        wm = options.watermark_image
        chain.apply(binding.watermark_image, wm.buffer, left=wm.left, top=wm.top, opacity=wm.opacity)


def process(buffer: bytes, options: TransformOptions | None = None, subsystem: Subsystem | None = None) -> bytes:
    """Run one load -> transform -> save round trip and return the encoded result.

    Any failure aborts the remaining primitives; every handle acquired so far
    is released before the error propagates.
    """
    options = options or TransformOptions()
    subsystem = subsystem or get_subsystem()
    binding = subsystem.binding
    metrics.inc("pipeline.process")
    with metrics.timed("pipeline.process"):
        handle, image_type = binding.load(buffer)
        with HandleChain(handle) as chain:
            _transform(chain, binding, buffer, image_type, options)
            save_options = options.save_options(image_type)
            _normalize_for_save(chain, binding, save_options)
            return binding.save(chain.handle, save_options)


# ---- composite operations ------------------------------------------------


def resize(buffer: bytes, width: int, height: int, *, subsystem: Subsystem | None = None) -> bytes:
    """Fit inside ``width`` x ``height`` without upscaling, padded to exactly that size."""
    return process(buffer, TransformOptions(width=width, height=height, embed=True), subsystem)


def enlarge(buffer: bytes, width: int, height: int, *, subsystem: Subsystem | None = None) -> bytes:
    return process(buffer, TransformOptions(width=width, height=height, embed=True, enlarge=True), subsystem)


def extract(buffer: bytes, left: int, top: int, width: int, height: int, *, subsystem: Subsystem | None = None) -> bytes:
    if width <= 0 or height <= 0:
        raise InvalidParameterError(f"extract area must be non-empty: {width}x{height}")
    options = TransformOptions(left=left, top=top, area_width=width, area_height=height)
    return process(buffer, options, subsystem)


def crop(
    buffer: bytes,
    width: int,
    height: int,
    gravity: Gravity = Gravity.CENTRE,
    *,
    subsystem: Subsystem | None = None,
) -> bytes:
    """Scale to cover ``width`` x ``height`` and cut the excess at ``gravity``."""
    return process(buffer, TransformOptions(width=width, height=height, crop=True, gravity=Gravity(gravity)), subsystem)


def crop_by_width(buffer: bytes, width: int, *, subsystem: Subsystem | None = None) -> bytes:
    if width <= 0:
        raise InvalidParameterError(f"width must be positive: {width}")
    return process(buffer, TransformOptions(width=width, crop=True), subsystem)


def crop_by_height(buffer: bytes, height: int, *, subsystem: Subsystem | None = None) -> bytes:
    if height <= 0:
        raise InvalidParameterError(f"height must be positive: {height}")
    return process(buffer, TransformOptions(height=height, crop=True), subsystem)


def smart_crop(buffer: bytes, width: int, height: int, *, subsystem: Subsystem | None = None) -> bytes:
    return crop(buffer, width, height, Gravity.SMART, subsystem=subsystem)


def thumbnail(buffer: bytes, size: int, *, subsystem: Subsystem | None = None) -> bytes:
    if size <= 0:
        raise InvalidParameterError(f"thumbnail size must be positive: {size}")
    options = TransformOptions(width=size, height=size, crop=True, quality=THUMBNAIL_QUALITY)
    return process(buffer, options, subsystem)


def rotate(buffer: bytes, angle: int, *, subsystem: Subsystem | None = None) -> bytes:
    return process(buffer, TransformOptions(rotate=angle), subsystem)


def flip(buffer: bytes, *, subsystem: Subsystem | None = None) -> bytes:
    return process(buffer, TransformOptions(flip=True), subsystem)


def flop(buffer: bytes, *, subsystem: Subsystem | None = None) -> bytes:
    return process(buffer, TransformOptions(flop=True), subsystem)


def zoom(buffer: bytes, factor: int, *, subsystem: Subsystem | None = None) -> bytes:
    if factor < 1:
        raise InvalidParameterError(f"zoom factor must be >= 1: {factor}")
    return process(buffer, TransformOptions(zoom=factor), subsystem)


def convert(buffer: bytes, image_type: ImageType | str, *, subsystem: Subsystem | None = None) -> bytes:
    """Re-encode as ``image_type`` without geometric change."""
    target = parse_image_type(image_type)
    return process(buffer, TransformOptions(type=target), subsystem)


def watermark(buffer: bytes, mark: Watermark, *, subsystem: Subsystem | None = None) -> bytes:
    return process(buffer, TransformOptions(watermark=mark), subsystem)


def watermark_image(buffer: bytes, mark: WatermarkImage, *, subsystem: Subsystem | None = None) -> bytes:
    return process(buffer, TransformOptions(watermark_image=mark), subsystem)
