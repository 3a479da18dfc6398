"""Enumerations and small value types shared by the engine and the pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Largest edge the encoders accept (WebP limit); larger requests are rejected.
MAX_SIZE = 16383


class ImageType(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    TIFF = "tiff"
    MAGICK = "magick"
    UNKNOWN = "unknown"

    @property
    def savable(self) -> bool:
        return self in SAVE_TYPES

    @property
    def suffix(self) -> str:
        return _SUFFIXES[self]


SAVE_TYPES = frozenset({ImageType.JPEG, ImageType.PNG, ImageType.WEBP})

_SUFFIXES = {
    ImageType.JPEG: ".jpg",
    ImageType.PNG: ".png",
    ImageType.WEBP: ".webp",
    ImageType.TIFF: ".tif",
    ImageType.MAGICK: "",
    ImageType.UNKNOWN: "",
}

# Loader class names reported by vips_foreign_find_load_buffer, matched by suffix.
_LOADER_SUFFIXES = (
    ("JpegBuffer", ImageType.JPEG),
    ("PngBuffer", ImageType.PNG),
    ("TiffBuffer", ImageType.TIFF),
    ("WebpBuffer", ImageType.WEBP),
    ("MagickBuffer", ImageType.MAGICK),
    ("Magick7Buffer", ImageType.MAGICK),
)


def image_type_from_loader(loader: str | None) -> ImageType:
    if not loader:
        return ImageType.UNKNOWN
    for suffix, image_type in _LOADER_SUFFIXES:
        if loader.endswith(suffix):
            return image_type
    return ImageType.UNKNOWN


def parse_image_type(value: str | ImageType) -> ImageType:
    """Accept enum members, names and common aliases ("jpg", "PNG")."""
    if isinstance(value, ImageType):
        return value
    key = str(value).strip().lower().lstrip(".")
    if key in ("jpg", "jpe"):
        key = "jpeg"
    elif key == "tif":
        key = "tiff"
    try:
        return ImageType(key)
    except ValueError:
        return ImageType.UNKNOWN


class Angle(int, Enum):
    D0 = 0
    D90 = 90
    D180 = 180
    D270 = 270

    @property
    def nick(self) -> str:
        return f"d{self.value}"


class Direction(str, Enum):
    # Flip mirrors top to bottom, flop mirrors left to right.
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"


class Gravity(str, Enum):
    CENTRE = "centre"
    NORTH = "north"
    EAST = "east"
    SOUTH = "south"
    WEST = "west"
    SMART = "smart"


class Extend(str, Enum):
    BLACK = "black"
    COPY = "copy"
    REPEAT = "repeat"
    MIRROR = "mirror"
    WHITE = "white"
    BACKGROUND = "background"


class Interpolator(str, Enum):
    NEAREST = "nearest"
    BILINEAR = "bilinear"
    BICUBIC = "bicubic"
    LBB = "lbb"
    NOHALO = "nohalo"

    @property
    def window_size(self) -> int:
        return _WINDOW_SIZES[self]


_WINDOW_SIZES = {
    Interpolator.NEAREST: 1,
    Interpolator.BILINEAR: 2,
    Interpolator.BICUBIC: 4,
    Interpolator.LBB: 4,
    Interpolator.NOHALO: 6,
}


class Interpretation(str, Enum):
    SRGB = "srgb"
    B_W = "b-w"
    CMYK = "cmyk"
    LAB = "lab"
    XYZ = "xyz"
    RGB16 = "rgb16"
    GREY16 = "grey16"
    SCRGB = "scrgb"
    MULTIBAND = "multiband"


# Interpretations libvips can convert between (vips_colourspace_issupported).
CONVERTIBLE_INTERPRETATIONS = frozenset(
    {
        "b-w",
        "cmc",
        "cmyk",
        "grey16",
        "hsv",
        "lab",
        "labq",
        "labs",
        "lch",
        "rgb",
        "rgb16",
        "scrgb",
        "srgb",
        "xyz",
        "yxy",
    }
)


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    def swapped(self) -> Dimensions:
        return Dimensions(self.height, self.width)

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height else 0.0
