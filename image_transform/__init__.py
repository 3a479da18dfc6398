"""Image transformations (resize, crop, rotate, convert, watermark) over libvips.

Usage:
    import image_transform as it

    it.initialize()
    out = it.resize(buf, 300, 240)
    meta = it.read_metadata(out)

    image = it.Image(buf)
    image.crop_by_width(300)
    image.flip()
    png = image.convert("png")
"""

from .config import SubsystemConfig
from .engine import MemoryStats, Subsystem, get_subsystem, initialize, memory_stats, shutdown
from .errors import (
    EngineStartupError,
    HandleConsumedError,
    ImageTransformError,
    InvalidParameterError,
    NativeOperationError,
    NotInitializedError,
    SizeExceededError,
    UnsupportedFormatError,
)
from .file_io import read_file, write_file
from .image import Image, new_image
from .metadata import ImageMetadata, colourspace_is_supported, detect_image_type, interpretation, read_metadata, read_size
from .options import Color, TransformOptions, Watermark, WatermarkImage
from .pipeline import (
    convert,
    crop,
    crop_by_height,
    crop_by_width,
    enlarge,
    extract,
    flip,
    flop,
    process,
    resize,
    rotate,
    smart_crop,
    thumbnail,
    watermark,
    watermark_image,
    zoom,
)
from .types import MAX_SIZE, Angle, Dimensions, Direction, Extend, Gravity, ImageType, Interpolator, Interpretation

__all__ = [
    "MAX_SIZE",
    "Angle",
    "Color",
    "Dimensions",
    "Direction",
    "EngineStartupError",
    "Extend",
    "Gravity",
    "HandleConsumedError",
    "Image",
    "ImageMetadata",
    "ImageTransformError",
    "ImageType",
    "Interpolator",
    "Interpretation",
    "InvalidParameterError",
    "MemoryStats",
    "NativeOperationError",
    "NotInitializedError",
    "SizeExceededError",
    "Subsystem",
    "SubsystemConfig",
    "TransformOptions",
    "UnsupportedFormatError",
    "Watermark",
    "WatermarkImage",
    "colourspace_is_supported",
    "convert",
    "crop",
    "crop_by_height",
    "crop_by_width",
    "detect_image_type",
    "enlarge",
    "extract",
    "flip",
    "flop",
    "get_subsystem",
    "initialize",
    "interpretation",
    "memory_stats",
    "new_image",
    "process",
    "read_file",
    "read_metadata",
    "read_size",
    "resize",
    "rotate",
    "shutdown",
    "smart_crop",
    "thumbnail",
    "watermark",
    "watermark_image",
    "write_file",
    "zoom",
]
