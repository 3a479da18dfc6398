"""Fluent wrapper over an encoded image buffer.

``Image`` only remembers the latest buffer. Each method is an independent
load -> transform -> save round trip on that buffer; on success the result
replaces it, on failure it is left as it was.
"""

from __future__ import annotations

from image_transform import metadata, pipeline
from image_transform.engine.lifecycle import Subsystem
from image_transform.options import TransformOptions, Watermark, WatermarkImage
from image_transform.types import Dimensions, Gravity, ImageType


class Image:
    def __init__(self, buffer: bytes, subsystem: Subsystem | None = None) -> None:
        self._buffer = bytes(buffer)
        self._subsystem = subsystem

    def __repr__(self) -> str:
        return f"<Image {len(self._buffer)} bytes>"

    @property
    def buffer(self) -> bytes:
        return self._buffer

    def _commit(self, out: bytes) -> bytes:
        self._buffer = out
        return out

    def process(self, options: TransformOptions) -> bytes:
        return self._commit(pipeline.process(self._buffer, options, self._subsystem))

    def resize(self, width: int, height: int) -> bytes:
        return self._commit(pipeline.resize(self._buffer, width, height, subsystem=self._subsystem))

    def enlarge(self, width: int, height: int) -> bytes:
        return self._commit(pipeline.enlarge(self._buffer, width, height, subsystem=self._subsystem))

    def extract(self, left: int, top: int, width: int, height: int) -> bytes:
        return self._commit(pipeline.extract(self._buffer, left, top, width, height, subsystem=self._subsystem))

    def crop(self, width: int, height: int, gravity: Gravity = Gravity.CENTRE) -> bytes:
        return self._commit(pipeline.crop(self._buffer, width, height, gravity, subsystem=self._subsystem))

    def crop_by_width(self, width: int) -> bytes:
        return self._commit(pipeline.crop_by_width(self._buffer, width, subsystem=self._subsystem))

    def crop_by_height(self, height: int) -> bytes:
        return self._commit(pipeline.crop_by_height(self._buffer, height, subsystem=self._subsystem))

    def smart_crop(self, width: int, height: int) -> bytes:
        return self._commit(pipeline.smart_crop(self._buffer, width, height, subsystem=self._subsystem))

    def thumbnail(self, size: int) -> bytes:
        return self._commit(pipeline.thumbnail(self._buffer, size, subsystem=self._subsystem))

    def rotate(self, angle: int) -> bytes:
        return self._commit(pipeline.rotate(self._buffer, angle, subsystem=self._subsystem))

    def flip(self) -> bytes:
        return self._commit(pipeline.flip(self._buffer, subsystem=self._subsystem))

    def flop(self) -> bytes:
        return self._commit(pipeline.flop(self._buffer, subsystem=self._subsystem))

    def zoom(self, factor: int) -> bytes:
        return self._commit(pipeline.zoom(self._buffer, factor, subsystem=self._subsystem))

    def convert(self, image_type: ImageType | str) -> bytes:
        return self._commit(pipeline.convert(self._buffer, image_type, subsystem=self._subsystem))

    def watermark(self, mark: Watermark) -> bytes:
        return self._commit(pipeline.watermark(self._buffer, mark, subsystem=self._subsystem))

    def watermark_image(self, mark: WatermarkImage) -> bytes:
        return self._commit(pipeline.watermark_image(self._buffer, mark, subsystem=self._subsystem))

    # ---- queries (never change the buffer) -------------------------
    def metadata(self) -> metadata.ImageMetadata:
        return metadata.read_metadata(self._buffer, self._subsystem)

    def size(self) -> Dimensions:
        return metadata.read_size(self._buffer, self._subsystem)

    def type(self) -> ImageType:
        return metadata.detect_image_type(self._buffer, self._subsystem)

    def interpretation(self) -> str:
        return metadata.interpretation(self._buffer, self._subsystem)

    def colourspace_is_supported(self) -> bool:
        return metadata.colourspace_is_supported(self._buffer, self._subsystem)


def new_image(buffer: bytes, subsystem: Subsystem | None = None) -> Image:
    return Image(buffer, subsystem)
