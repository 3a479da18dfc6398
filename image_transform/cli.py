"""Command line front end: ``python -m image_transform <operation> ...``."""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Callable
from dataclasses import asdict

from image_transform import pipeline
from image_transform.engine.lifecycle import Subsystem
from image_transform.errors import EngineStartupError, ImageTransformError
from image_transform.file_io import read_file, write_file
from image_transform.logger import get_logger, setup_logger
from image_transform.metadata import read_metadata
from image_transform.options import Color, Watermark, WatermarkImage
from image_transform.types import Gravity, parse_image_type

_logger = get_logger("cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_STARTUP = 3


def _add_io(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", help="Source image file")
    parser.add_argument("output", help="Destination file")


def _add_size(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("width", type=int)
    parser.add_argument("height", type=int)


def _hex_colour(value: str) -> Color:
    raw = value.lstrip("#")
    if len(raw) != 6:
        raise argparse.ArgumentTypeError(f"expected #rrggbb, got {value!r}")
    try:
        return Color(int(raw[0:2], 16), int(raw[2:4], 16), int(raw[4:6], 16))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected #rrggbb, got {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="image_transform", description="Transform raster images with libvips")
    parser.add_argument("--log-level", help="Set log level (debug, info, warning, error)")
    parser.add_argument("--log-cats", help="Comma-separated log categories to show")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("resize", "enlarge", "crop", "smartcrop"):
        p = sub.add_parser(name)
        _add_io(p)
        _add_size(p)
        if name == "crop":
            p.add_argument("--gravity", choices=[g.value for g in Gravity], default=Gravity.CENTRE.value)

    p = sub.add_parser("crop-width")
    _add_io(p)
    p.add_argument("width", type=int)

    p = sub.add_parser("crop-height")
    _add_io(p)
    p.add_argument("height", type=int)

    p = sub.add_parser("extract")
    _add_io(p)
    p.add_argument("left", type=int)
    p.add_argument("top", type=int)
    _add_size(p)

    p = sub.add_parser("thumbnail")
    _add_io(p)
    p.add_argument("size", type=int)

    p = sub.add_parser("rotate")
    _add_io(p)
    p.add_argument("angle", type=int)

    for name in ("flip", "flop"):
        _add_io(sub.add_parser(name))

    p = sub.add_parser("zoom")
    _add_io(p)
    p.add_argument("factor", type=int)

    p = sub.add_parser("convert")
    _add_io(p)
    p.add_argument("--type", help="Output format; defaults to the output file suffix")

    p = sub.add_parser("watermark")
    _add_io(p)
    p.add_argument("text")
    p.add_argument("--font", default="sans 10")
    p.add_argument("--opacity", type=float, default=0.25)
    p.add_argument("--dpi", type=int, default=150)
    p.add_argument("--margin", type=int)
    p.add_argument("--width", type=int)
    p.add_argument("--colour", type=_hex_colour, default=Color(255, 255, 255))
    p.add_argument("--no-replicate", action="store_true")

    p = sub.add_parser("watermark-image")
    _add_io(p)
    p.add_argument("overlay", help="Image file drawn over the source")
    p.add_argument("--left", type=int, default=0)
    p.add_argument("--top", type=int, default=0)
    p.add_argument("--opacity", type=float, default=1.0)

    p = sub.add_parser("metadata")
    p.add_argument("input", help="Source image file")

    sub.add_parser("memory")
    return parser


def _operation(args: argparse.Namespace, subsystem: Subsystem) -> Callable[[bytes], bytes]:
    cmd = args.command
    kw = {"subsystem": subsystem}
    if cmd == "resize":
        return lambda buf: pipeline.resize(buf, args.width, args.height, **kw)
    if cmd == "enlarge":
        return lambda buf: pipeline.enlarge(buf, args.width, args.height, **kw)
    if cmd == "crop":
        return lambda buf: pipeline.crop(buf, args.width, args.height, Gravity(args.gravity), **kw)
    if cmd == "smartcrop":
        return lambda buf: pipeline.smart_crop(buf, args.width, args.height, **kw)
    if cmd == "crop-width":
        return lambda buf: pipeline.crop_by_width(buf, args.width, **kw)
    if cmd == "crop-height":
        return lambda buf: pipeline.crop_by_height(buf, args.height, **kw)
    if cmd == "extract":
        return lambda buf: pipeline.extract(buf, args.left, args.top, args.width, args.height, **kw)
    if cmd == "thumbnail":
        return lambda buf: pipeline.thumbnail(buf, args.size, **kw)
    if cmd == "rotate":
        return lambda buf: pipeline.rotate(buf, args.angle, **kw)
    if cmd == "flip":
        return lambda buf: pipeline.flip(buf, **kw)
    if cmd == "flop":
        return lambda buf: pipeline.flop(buf, **kw)
    if cmd == "zoom":
        return lambda buf: pipeline.zoom(buf, args.factor, **kw)
    if cmd == "convert":
        target = parse_image_type(args.type or os.path.splitext(args.output)[1])
        return lambda buf: pipeline.convert(buf, target, **kw)
    if cmd == "watermark":
        mark = Watermark(
            text=args.text,
            font=args.font,
            width=args.width,
            dpi=args.dpi,
            margin=args.margin,
            opacity=args.opacity,
            no_replicate=args.no_replicate,
            background=args.colour,
        )
        return lambda buf: pipeline.watermark(buf, mark, **kw)
    if cmd == "watermark-image":
        overlay = WatermarkImage(read_file(args.overlay), left=args.left, top=args.top, opacity=args.opacity)
        return lambda buf: pipeline.watermark_image(buf, overlay, **kw)
    raise ValueError(f"unknown command: {cmd}")


def run(argv: list[str] | None = None, subsystem: Subsystem | None = None) -> int:
    """CLI entrypoint; returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    if args.log_level:
        os.environ["IMAGE_TRANSFORM_LOG_LEVEL"] = args.log_level
    if args.log_cats:
        os.environ["IMAGE_TRANSFORM_LOG_CATS"] = args.log_cats
    setup_logger()

    try:
        subsystem = (subsystem or Subsystem()).initialize()
    except EngineStartupError as exc:
        print(f"fatal: {exc}", file=sys.stderr)
        return EXIT_STARTUP

    try:
        if args.command == "memory":
            print(json.dumps(asdict(subsystem.memory_stats()), indent=2))
            return EXIT_OK
        if args.command == "metadata":
            meta = read_metadata(read_file(args.input), subsystem)
            out = asdict(meta)
            out["type"] = meta.type.value
            print(json.dumps(out, indent=2))
            return EXIT_OK

        op = _operation(args, subsystem)
        result = op(read_file(args.input))
        write_file(args.output, result)
        _logger.info("%s: %s -> %s (%d bytes)", args.command, args.input, args.output, len(result))
        return EXIT_OK
    except (ImageTransformError, OSError) as exc:
        _logger.error("%s failed: %s", args.command, exc)
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILED
