"""Read-only image introspection.

Each query loads the caller's buffer into a disposable handle that is released
before returning; the buffer itself is never modified.
"""

from __future__ import annotations

from dataclasses import dataclass

from image_transform.engine.lifecycle import Subsystem, get_subsystem
from image_transform.types import Dimensions, ImageType


@dataclass(frozen=True)
class ImageMetadata:
    size: Dimensions
    type: ImageType
    alpha: bool
    profile: bool
    orientation: int
    channels: int
    space: str

    @property
    def width(self) -> int:
        return self.size.width

    @property
    def height(self) -> int:
        return self.size.height


def read_metadata(buffer: bytes, subsystem: Subsystem | None = None) -> ImageMetadata:
    binding = (subsystem or get_subsystem()).binding
    handle, image_type = binding.load(buffer)
    with handle:
        return ImageMetadata(
            size=binding.dimensions(handle),
            type=image_type,
            alpha=binding.has_alpha(handle),
            profile=binding.has_profile(handle),
            orientation=binding.exif_orientation(handle),
            channels=binding.bands(handle),
            space=binding.interpretation(handle),
        )


def read_size(buffer: bytes, subsystem: Subsystem | None = None) -> Dimensions:
    binding = (subsystem or get_subsystem()).binding
    handle, _ = binding.load(buffer)
    with handle:
        return binding.dimensions(handle)


def detect_image_type(buffer: bytes, subsystem: Subsystem | None = None) -> ImageType:
    """Sniff the format from magic bytes; never trusts file names."""
    return (subsystem or get_subsystem()).binding.detect_type(buffer)


def interpretation(buffer: bytes, subsystem: Subsystem | None = None) -> str:
    binding = (subsystem or get_subsystem()).binding
    handle, _ = binding.load(buffer)
    with handle:
        return binding.interpretation(handle)


def colourspace_is_supported(buffer: bytes, subsystem: Subsystem | None = None) -> bool:
    binding = (subsystem or get_subsystem()).binding
    handle, _ = binding.load(buffer)
    with handle:
        return binding.colourspace_supported(handle)
