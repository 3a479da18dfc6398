"""Immutable option values describing a requested transformation.

Options are validated on construction so bad requests fail before any native
call is made. The pipeline only ever reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from image_transform.errors import InvalidParameterError, SizeExceededError, UnsupportedFormatError
from image_transform.types import (
    MAX_SIZE,
    Angle,
    Extend,
    Gravity,
    ImageType,
    Interpolator,
    Interpretation,
)

DEFAULT_QUALITY = 80
DEFAULT_COMPRESSION = 6
WATERMARK_FONT = "sans 10"


@dataclass(frozen=True)
class Color:
    r: int = 0
    g: int = 0
    b: int = 0

    def __post_init__(self) -> None:
        for channel in (self.r, self.g, self.b):
            if not 0 <= int(channel) <= 255:
                raise InvalidParameterError(f"colour channel out of range: {channel}")

    def as_list(self) -> list[float]:
        return [float(self.r), float(self.g), float(self.b)]


@dataclass(frozen=True)
class Watermark:
    """Text watermark. Unset sizes are derived from the image being marked."""

    text: str
    font: str = WATERMARK_FONT
    width: int | None = None
    dpi: int = 150
    margin: int | None = None
    opacity: float = 0.25
    no_replicate: bool = False
    background: Color = field(default_factory=lambda: Color(255, 255, 255))

    def __post_init__(self) -> None:
        if not self.text:
            raise InvalidParameterError("watermark text must not be empty")
        if not 0.0 < self.opacity <= 1.0:
            raise InvalidParameterError(f"watermark opacity must be in (0, 1]: {self.opacity}")
        if self.dpi <= 0:
            raise InvalidParameterError(f"watermark dpi must be positive: {self.dpi}")
        if self.width is not None and self.width <= 0:
            raise InvalidParameterError(f"watermark width must be positive: {self.width}")
        if self.margin is not None and self.margin < 0:
            raise InvalidParameterError(f"watermark margin must not be negative: {self.margin}")


@dataclass(frozen=True)
class WatermarkImage:
    """Encoded image overlaid at (left, top)."""

    buffer: bytes
    left: int = 0
    top: int = 0
    opacity: float = 1.0

    def __post_init__(self) -> None:
        if not self.buffer:
            raise InvalidParameterError("watermark image buffer is empty")
        if self.left < 0 or self.top < 0:
            raise InvalidParameterError("watermark image position must not be negative")
        if not 0.0 < self.opacity <= 1.0:
            raise InvalidParameterError(f"watermark opacity must be in (0, 1]: {self.opacity}")


@dataclass(frozen=True)
class SaveOptions:
    type: ImageType = ImageType.JPEG
    quality: int = DEFAULT_QUALITY
    compression: int = DEFAULT_COMPRESSION
    interlace: bool = False
    no_profile: bool = False
    interpretation: Interpretation = Interpretation.SRGB

    def __post_init__(self) -> None:
        if not self.type.savable:
            raise UnsupportedFormatError(f"cannot save as {self.type.value}")


def _check_edge(name: str, value: int) -> None:
    if value < 0:
        raise InvalidParameterError(f"{name} must not be negative: {value}")
    if value > MAX_SIZE:
        raise SizeExceededError(f"{name} {value} exceeds maximum edge length {MAX_SIZE}")


@dataclass(frozen=True)
class TransformOptions:
    """Everything a single load -> transform -> save round trip may do.

    ``width``/``height`` of 0 mean "derive from the source". ``area_*`` with
    ``top``/``left`` describe an extract taken before any resize.
    """

    width: int = 0
    height: int = 0
    area_width: int = 0
    area_height: int = 0
    top: int = 0
    left: int = 0
    crop: bool = False
    embed: bool = False
    enlarge: bool = False
    gravity: Gravity = Gravity.CENTRE
    zoom: int = 0
    flip: bool = False
    flop: bool = False
    rotate: int = 0
    no_auto_rotate: bool = False
    no_profile: bool = False
    interlace: bool = False
    quality: int = DEFAULT_QUALITY
    compression: int = DEFAULT_COMPRESSION
    extend: Extend = Extend.BLACK
    background: Color = field(default_factory=Color)
    interpolator: Interpolator = Interpolator.BICUBIC
    interpretation: Interpretation = Interpretation.SRGB
    type: ImageType | None = None
    watermark: Watermark | None = None
    watermark_image: WatermarkImage | None = None

    def __post_init__(self) -> None:
        for name in ("width", "height", "area_width", "area_height"):
            _check_edge(name, int(getattr(self, name)))
        if self.top < 0 or self.left < 0:
            raise InvalidParameterError(f"extract origin must not be negative: left={self.left} top={self.top}")
        if (self.area_width > 0) != (self.area_height > 0):
            raise InvalidParameterError("area_width and area_height must be given together")
        if self.rotate not in {a.value for a in Angle}:
            raise InvalidParameterError(f"rotation must be a multiple of 90 degrees in [0, 270]: {self.rotate}")
        if not 1 <= self.quality <= 100:
            raise InvalidParameterError(f"quality must be in [1, 100]: {self.quality}")
        if not 0 <= self.compression <= 9:
            raise InvalidParameterError(f"compression must be in [0, 9]: {self.compression}")
        if self.zoom < 0:
            raise InvalidParameterError(f"zoom must not be negative: {self.zoom}")
        if self.type is not None and not self.type.savable:
            raise UnsupportedFormatError(f"cannot save as {self.type.value}")

    @property
    def has_area(self) -> bool:
        return self.area_width > 0 and self.area_height > 0

    @property
    def angle(self) -> Angle:
        return Angle(self.rotate)

    def save_options(self, source_type: ImageType) -> SaveOptions:
        target = self.type
        if target is None:
            target = source_type if source_type.savable else ImageType.JPEG
        return SaveOptions(
            type=target,
            quality=self.quality,
            compression=self.compression,
            interlace=self.interlace,
            no_profile=self.no_profile,
            interpretation=self.interpretation,
        )
