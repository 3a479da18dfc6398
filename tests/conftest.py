"""Pytest configuration.

Fixture images are synthesised with numpy + pyvips at session start so no
binary fixtures live in the repository. Fixtures that need libvips skip the
requesting test when pyvips cannot be imported; pure tests (planning,
options, handles, config) never touch it.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pytest

from image_transform.config import SubsystemConfig
from image_transform.engine.lifecycle import Subsystem


def _pixels(width: int, height: int, bands: int = 3) -> np.ndarray:
    y, x = np.mgrid[0:height, 0:width]
    r = (x * 255 // max(1, width - 1)).astype(np.uint8)
    g = (y * 255 // max(1, height - 1)).astype(np.uint8)
    b = ((x + y) % 256).astype(np.uint8)
    channels = [r, g, b]
    if bands == 4:
        # Semi-transparent stripes so the alpha band is not constant
        channels.append(np.where(x % 8 < 4, 255, 128).astype(np.uint8))
    return np.dstack(channels)


def _vips_image(pyvips: Any, width: int, height: int, bands: int = 3) -> Any:
    arr = np.ascontiguousarray(_pixels(width, height, bands))
    img = pyvips.Image.new_from_memory(arr.tobytes(), width, height, bands, "uchar")
    return img.copy(interpretation="srgb")


@pytest.fixture(scope="session")
def pyvips():
    return pytest.importorskip("pyvips")


@pytest.fixture(scope="session")
def subsystem(pyvips):
    sub = Subsystem(SubsystemConfig())
    sub.initialize()
    yield sub
    sub.shutdown()


@pytest.fixture(scope="session")
def make_image(pyvips):
    """Factory: make_image(width, height, suffix=".jpg", bands=3, **save_kwargs) -> bytes."""

    def _make(width: int, height: int, suffix: str = ".jpg", bands: int = 3, **save_kwargs) -> bytes:
        return _vips_image(pyvips, width, height, bands).write_to_buffer(suffix, **save_kwargs)

    return _make


@pytest.fixture(scope="session")
def jpeg_1200x900(make_image) -> bytes:
    return make_image(1200, 900, ".jpg", Q=90)


@pytest.fixture(scope="session")
def jpeg_1680x1050(make_image) -> bytes:
    return make_image(1680, 1050, ".jpg", Q=90)


@pytest.fixture(scope="session")
def png_alpha_200x150(make_image) -> bytes:
    return make_image(200, 150, ".png", bands=4)


@pytest.fixture(scope="session")
def png_alpha_400x300(make_image) -> bytes:
    return make_image(400, 300, ".png", bands=4)


@pytest.fixture(scope="session")
def tiff_300x200(make_image) -> bytes:
    return make_image(300, 200, ".tif")


@pytest.fixture(scope="session")
def jpeg_exif_rotated(pyvips) -> bytes:
    """A 400x300 JPEG tagged with EXIF orientation 6 (display rotated 90 clockwise)."""
    img = _vips_image(pyvips, 400, 300).copy()
    img.set_type(pyvips.GValue.gint_type, "orientation", 6)
    return img.write_to_buffer(".jpg")
