"""numpy interop: encoded buffers to pixel arrays and back."""

from __future__ import annotations

import numpy as np

from image_transform.engine.handle import HandleChain
from image_transform.engine.lifecycle import Subsystem, get_subsystem
from image_transform.errors import InvalidParameterError
from image_transform.options import DEFAULT_QUALITY, SaveOptions
from image_transform.types import ImageType, Interpretation, parse_image_type

_MAX_BANDS = 4


def to_array(
    buffer: bytes,
    keep_alpha: bool = False,
    background: tuple[int, int, int] = (0, 0, 0),
    subsystem: Subsystem | None = None,
) -> np.ndarray:
    """Decode an encoded image into an sRGB uint8 array of shape (h, w, 3).

    With ``keep_alpha`` an alpha channel is kept as a fourth band instead of
    being flattened onto ``background``.
    """
    binding = (subsystem or get_subsystem()).binding
    handle, _ = binding.load(buffer)
    with HandleChain(handle) as chain:
        chain.apply(binding.colourspace, Interpretation.SRGB)
        if not keep_alpha:
            chain.apply(binding.flatten, [float(c) for c in background])
        chain.apply(binding.cast_uchar)
        data, width, height, bands = binding.to_memory(chain.handle)
    array = np.frombuffer(data, dtype=np.uint8).reshape(height, width, bands)
    return array.copy()


def from_array(
    array: np.ndarray,
    image_type: ImageType | str = ImageType.PNG,
    quality: int = DEFAULT_QUALITY,
    subsystem: Subsystem | None = None,
) -> bytes:
    """Encode an (h, w) or (h, w, bands) array; 1-2 bands are grey, 3-4 are sRGB."""
    arr = np.asarray(array)
    if arr.ndim == 2:
        arr = arr[:, :, np.newaxis]
    if arr.ndim != 3 or not 1 <= arr.shape[2] <= _MAX_BANDS:
        raise InvalidParameterError(f"expected an (h, w) or (h, w, 1-4) array, got shape {arr.shape}")
    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    # pyvips expects a contiguous bytes buffer in C order
    pixels = np.ascontiguousarray(arr)
    height, width, bands = pixels.shape

    save_options = SaveOptions(type=parse_image_type(image_type), quality=quality)
    binding = (subsystem or get_subsystem()).binding
    handle = binding.from_memory(pixels.tobytes(), width, height, bands)
    with HandleChain(handle) as chain:
        return binding.save(chain.handle, save_options)
