#!/usr/bin/env python3
"""
Plot Image Script.

Convert an image into a plotter program and optionally stream it.

Usage:
    python -m drawbot.scripts.plot_image photo.png
    python -m drawbot.scripts.plot_image photo.png --scale 60 --center
    python -m drawbot.scripts.plot_image photo.png --mode raster -o out.gcode
    python -m drawbot.scripts.plot_image photo.png --send --host 10.0.0.7

Vector mode runs edge detection, chain tracing, simplification, smoothing
and ordering; raster mode draws one line per horizontal run of dark
pixels.  The program is written atomically to ``--output`` (default:
image name with ``.gcode``).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from drawbot.configs.loader import ConfigError, load_config
from drawbot.gcode.encoder import GcodeEncoder
from drawbot.scripts.send_gcode import apply_overrides, stream_program
from linework.data_pipeline.edge_mask import load_edge_mask, load_raster_mask
from linework.data_pipeline.pipeline import PipelineError, vectorize_mask
from linework.utils.fs import write_command_file
from linework.utils.logging_config import install_excepthook, push_context, setup_logging
from linework.utils.validators import ValidationError, VectorizeParams

logger = logging.getLogger(__name__)


def build_params(base: VectorizeParams, args: argparse.Namespace) -> VectorizeParams:
    """Apply CLI overrides on top of the configured pipeline parameters.

    Raises
    ------
    pydantic.ValidationError
        If an override is out of range (e.g. ``--scale 10``).
    """
    overrides = {}
    if args.mode:
        overrides["mode"] = args.mode
    if args.scale is not None:
        overrides["scale_percent"] = args.scale
    if args.tolerance is not None:
        overrides["simplify_tolerance"] = args.tolerance
    if args.smoothing is not None:
        overrides["smoothing_iterations"] = args.smoothing
    if args.center:
        overrides["center"] = True
    return VectorizeParams(**{**base.model_dump(), **overrides})


def format_bbox(bbox: tuple[float, float, float, float] | None) -> str:
    if bbox is None:
        return "empty"
    x_min, y_min, x_max, y_max = bbox
    return f"X{x_min:.3f}..{x_max:.3f} Y{y_min:.3f}..{y_max:.3f}"


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Convert an image to plotter G-code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("image", type=str, help="Input image file")
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Configuration file path",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output G-code file (default: <image>.gcode)",
    )
    parser.add_argument(
        "--mode",
        choices=("vector", "raster"),
        help="Stroke extraction mode",
    )
    parser.add_argument(
        "--scale",
        type=float,
        help="Share of the work envelope to use, 20-100 %%",
    )
    parser.add_argument(
        "--tolerance",
        type=float,
        help="Simplification tolerance (px)",
    )
    parser.add_argument(
        "--smoothing",
        type=int,
        help="Chaikin smoothing iterations (0-4)",
    )
    parser.add_argument(
        "--center",
        action="store_true",
        help="Center the drawing in the envelope",
    )
    parser.add_argument(
        "--send",
        action="store_true",
        help="Stream the program to the plotter after writing it",
    )
    parser.add_argument("--host", type=str, help="Override device address")
    parser.add_argument("--port", type=int, help="Override device port")

    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Error loading config: {e}")
        sys.exit(1)

    setup_logging(**config.logging.as_kwargs(), context={"app": "plot_image"})
    install_excepthook()

    try:
        params = build_params(config.pipeline, args)
    except ValidationError as e:
        print(f"Invalid parameters: {e}")
        sys.exit(1)

    image_path = Path(args.image)
    push_context(image=image_path.name)
    envelope = config.envelope.size

    try:
        if params.mode == "raster":
            mask = load_raster_mask(
                image_path, config.edge_detection, envelope, params.scale_percent,
            )
            # Raster masks are already at drawing resolution
            params = params.model_copy(update={"padding_px": 0})
        else:
            mask = load_edge_mask(image_path, config.edge_detection, params.padding_px)
        drawing = vectorize_mask(
            mask.pixels, mask.width, mask.height, envelope=envelope, params=params,
        )
    except (FileNotFoundError, ValueError, PipelineError) as e:
        print(f"Error processing {image_path}: {e}")
        sys.exit(1)

    encoder = GcodeEncoder(config.envelope)
    lines = encoder.encode_lines(drawing.polylines)

    output = Path(args.output) if args.output else image_path.with_suffix(".gcode")
    try:
        write_command_file(
            output,
            lines,
            header=[
                f"source: {image_path.name}",
                f"mode: {params.mode}, strokes: {drawing.stats['paths']}, "
                f"scale: {drawing.transform.scale_x:.4f}",
                f"draw: {drawing.stats['draw_px']:.1f} px, "
                f"travel: {drawing.stats['travel_px']:.1f} px",
                f"bbox: {format_bbox(drawing.stats['bbox'])}",
            ],
        )
    except RuntimeError as e:
        print(f"Error writing {output}: {e}")
        sys.exit(1)

    print(
        f"Wrote {len(lines)} commands ({drawing.stats['paths']} strokes, "
        f"scale {drawing.transform.scale_x:.4f}) to {output}"
    )

    if args.send:
        config = apply_overrides(config, args.host, args.port)
        sys.exit(stream_program(config, lines))


if __name__ == "__main__":
    main()
