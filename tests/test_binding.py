import pytest

pyvips = pytest.importorskip("pyvips")

from image_transform.engine.handle import NativeImageHandle
from image_transform.engine.metrics import metrics
from image_transform.errors import (
    HandleConsumedError,
    InvalidParameterError,
    NativeOperationError,
    SizeExceededError,
    UnsupportedFormatError,
)
from image_transform.options import SaveOptions
from image_transform.types import MAX_SIZE, Dimensions, Direction, ImageType, Interpretation

pytestmark = pytest.mark.imaging

# JPEG magic followed by garbage: detected as JPEG, rejected by the decoder
CORRUPT_JPEG = b"\xff\xd8\xff" + b"\x00not really a jpeg" * 8


def test_detect_type(subsystem, jpeg_1200x900, png_alpha_200x150, tiff_300x200):
    binding = subsystem.binding
    assert binding.detect_type(jpeg_1200x900) is ImageType.JPEG
    assert binding.detect_type(png_alpha_200x150) is ImageType.PNG
    assert binding.detect_type(tiff_300x200) is ImageType.TIFF
    assert binding.detect_type(b"plain text, not an image") is ImageType.UNKNOWN
    assert binding.detect_type(b"") is ImageType.UNKNOWN


def test_detect_type_asks_the_engine_loader_registry(subsystem, make_image):
    metrics.reset()
    webp = make_image(64, 48, ".webp")
    assert subsystem.binding.detect_type(webp) is ImageType.WEBP
    assert metrics.count("binding.calls.find_load_buffer") == 1
    assert metrics.count("binding.failures.find_load_buffer") == 0


def test_detect_unknown_leaves_no_engine_error(subsystem):
    assert subsystem.binding.detect_type(b"\x00" * 64) is ImageType.UNKNOWN
    assert pyvips.ffi.string(pyvips.vips_lib.vips_error_buffer()) == b""


def test_load_rejects_unknown_magic(subsystem):
    live = subsystem.ledger.live
    with pytest.raises(UnsupportedFormatError):
        subsystem.binding.load(b"GIF? no, just bytes")
    assert subsystem.ledger.live == live


def test_decoder_failure_carries_engine_text(subsystem):
    live = subsystem.ledger.live
    with pytest.raises(NativeOperationError) as info:
        subsystem.binding.load(CORRUPT_JPEG)
    assert info.value.operation == "load"
    assert info.value.message
    assert subsystem.ledger.live == live
    # the engine error buffer is empty again once the error was raised
    assert pyvips.ffi.string(pyvips.vips_lib.vips_error_buffer()) == b""


def test_rotate_consumes_input(subsystem, jpeg_1200x900):
    binding = subsystem.binding
    handle, _ = binding.load(jpeg_1200x900)
    with binding.rotate(handle, 90) as rotated:
        assert not handle.alive
        with pytest.raises(HandleConsumedError):
            binding.rotate(handle, 90)
        assert binding.dimensions(rotated) == Dimensions(900, 1200)


def test_rotate_rejects_odd_angles(subsystem, jpeg_1200x900):
    live = subsystem.ledger.live
    handle, _ = subsystem.binding.load(jpeg_1200x900)
    with pytest.raises(InvalidParameterError):
        subsystem.binding.rotate(handle, 45)
    assert not handle.alive
    assert subsystem.ledger.live == live


def test_flip_directions(subsystem, png_alpha_200x150):
    binding = subsystem.binding
    handle, _ = binding.load(png_alpha_200x150)
    top_left = handle.image(0, 0)
    with binding.flip(handle, Direction.VERTICAL) as flipped:
        assert flipped.image(0, 149) == top_left
    handle, _ = binding.load(png_alpha_200x150)
    with binding.flip(handle, Direction.HORIZONTAL) as flopped:
        assert flopped.image(199, 0) == top_left


def test_extract_area_checked_before_native_call(subsystem, jpeg_1200x900):
    binding = subsystem.binding
    calls = metrics.count("binding.calls.extract_area")
    handle, _ = binding.load(jpeg_1200x900)
    with pytest.raises(SizeExceededError):
        binding.extract_area(handle, 1000, 0, 300, 100)
    handle, _ = binding.load(jpeg_1200x900)
    with pytest.raises(SizeExceededError):
        binding.extract_area(handle, 0, 0, MAX_SIZE + 1, 10)
    assert metrics.count("binding.calls.extract_area") == calls


def test_extract_area_engine_rejection(subsystem, jpeg_1200x900):
    handle, _ = subsystem.binding.load(jpeg_1200x900)
    with pytest.raises(NativeOperationError) as info:
        subsystem.binding.extract_area(handle, -5, 0, 10, 10)
    assert info.value.operation == "extract_area"


def test_zoom_beyond_maximum(subsystem, jpeg_1200x900):
    handle, _ = subsystem.binding.load(jpeg_1200x900)
    with pytest.raises(SizeExceededError):
        subsystem.binding.zoom(handle, 14)


def test_colourspace_passes_through_unsupported_space(subsystem):
    image = pyvips.Image.black(8, 8, bands=2).copy(interpretation="multiband")
    handle = NativeImageHandle(image, subsystem.ledger, "multiband")
    assert not subsystem.binding.colourspace_supported(handle)
    out = subsystem.binding.colourspace(handle, Interpretation.SRGB)
    assert out is handle
    assert handle.alive
    handle.release()


def test_colourspace_converts_grey(subsystem):
    binding = subsystem.binding
    handle = binding.from_memory(bytes(16), 4, 4, 1)
    assert binding.interpretation(handle) == "b-w"
    with binding.colourspace(handle, Interpretation.SRGB) as out:
        assert binding.bands(out) == 3
        assert binding.interpretation(out) == "srgb"


def test_strip_orientation(subsystem, jpeg_exif_rotated):
    binding = subsystem.binding
    handle, _ = binding.load(jpeg_exif_rotated)
    if binding.exif_orientation(handle) != 6:
        handle.release()
        pytest.skip("encoder did not keep the EXIF orientation")
    with binding.strip_orientation(handle) as out:
        assert binding.exif_orientation(out) == 0


def test_pixel_memory_roundtrip(subsystem):
    binding = subsystem.binding
    data = bytes(range(24))
    handle = binding.from_memory(data, 4, 2, 3)
    assert binding.to_memory(handle) == (data, 4, 2, 3)
    with pytest.raises(InvalidParameterError):
        binding.from_memory(data, 5, 2, 3)


def test_save_formats(subsystem, png_alpha_200x150):
    binding = subsystem.binding
    for image_type, magic in ((ImageType.PNG, b"\x89PNG"), (ImageType.JPEG, b"\xff\xd8\xff"), (ImageType.WEBP, b"RIFF")):
        handle, _ = binding.load(png_alpha_200x150)
        out = binding.save(handle, SaveOptions(type=image_type))
        assert out.startswith(magic)
        assert not handle.alive
