"""
Command-line interface for tiled segmentation.

Usage:
    python -m tiledseg tiles --width 4096 --height 4096 [--tile-size 512] [--padding 16]
    python -m tiledseg segment <image_path> --model <path> --loader <module:callable>
    python -m tiledseg --help
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import cv2

from tiledseg.config.segmentation_config import SegmentationConfig
from tiledseg.errors import TiledSegError


def setup_argparse() -> argparse.ArgumentParser:
    """Set up argument parser."""
    parser = argparse.ArgumentParser(
        prog="tiledseg",
        description="Tiled instance segmentation for large images",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # tiles command
    tiles_parser = subparsers.add_parser(
        "tiles",
        help="Print the tile grid for a region",
    )
    tiles_parser.add_argument("--width", type=int, required=True, help="Region width")
    tiles_parser.add_argument("--height", type=int, required=True, help="Region height")
    tiles_parser.add_argument(
        "--tile-size",
        type=int,
        default=None,
        help="Tile size including padding (default: from config, 512)",
    )
    tiles_parser.add_argument(
        "--padding",
        type=int,
        default=None,
        help="Padding on each tile side (default: from config, 16)",
    )
    tiles_parser.add_argument("--config", type=str, help="YAML configuration file")

    # segment command
    segment_parser = subparsers.add_parser(
        "segment",
        help="Segment an image file",
    )
    segment_parser.add_argument("image_path", type=str, help="Path to the input image")
    segment_parser.add_argument("--model", required=True, help="Path to the model")
    segment_parser.add_argument(
        "--loader",
        required=True,
        help="Model loader as 'module:callable'",
    )
    segment_parser.add_argument("--config", type=str, help="YAML configuration file")
    segment_parser.add_argument(
        "--pixel-size",
        type=float,
        default=None,
        help="Image pixel size in microns (used to derive the downsample)",
    )
    segment_parser.add_argument("--threads", type=int, help="Worker threads")
    segment_parser.add_argument("--predictors", type=int, help="Predictor handles")
    segment_parser.add_argument(
        "--measure",
        action="store_true",
        help="Add measurements to the objects",
    )
    segment_parser.add_argument(
        "--output-path",
        "--output",
        "-o",
        type=str,
        help="Write JSON here instead of stdout",
    )

    return parser


def load_config(args) -> SegmentationConfig:
    """Configuration from --config with command-line overrides."""
    data = {}
    if getattr(args, "config", None):
        data = SegmentationConfig.from_yaml(args.config).to_dict()

    overrides = {
        "tile_width": getattr(args, "tile_size", None),
        "tile_height": getattr(args, "tile_size", None),
        "padding": getattr(args, "padding", None),
        "num_threads": getattr(args, "threads", None),
        "num_predictors": getattr(args, "predictors", None),
    }
    data.update({k: v for k, v in overrides.items() if v is not None})
    if getattr(args, "measure", False):
        data["make_measurements"] = True
    return SegmentationConfig.from_dict(data)


def cmd_tiles(args) -> int:
    """Handle tiles command."""
    from tiledseg.tiling.tiler import Tiler

    config = load_config(args)
    tiles = Tiler(config=config).compute_tiles(args.width, args.height)

    output = {
        "region": {"width": args.width, "height": args.height},
        "tile_count": len(tiles),
        "tiles": [tile.to_dict() for tile in tiles],
    }
    print(json.dumps(output, indent=2))
    return 0


def cmd_segment(args) -> int:
    """Handle segment command."""
    from tiledseg.inference.model import import_loader
    from tiledseg.pipeline import SegmentationTask
    from tiledseg.sources import ArraySource

    # Validate input path
    image_path = Path(args.image_path)
    if not image_path.exists():
        print(f"Error: Image not found: {image_path}", file=sys.stderr)
        return 1

    # Load image
    image = cv2.imread(str(image_path), cv2.IMREAD_UNCHANGED)
    if image is None:
        print(f"Error: Could not load image: {image_path}", file=sys.stderr)
        return 1

    config = load_config(args)
    task = SegmentationTask(
        config=config,
        model_path=args.model,
        loader=import_loader(args.loader),
    )
    objects = task.run(ArraySource(image, pixel_size=args.pixel_size))

    h, w = image.shape[:2]
    output = {
        "image_dimensions": {"width": w, "height": h},
        "model": task.model_info.to_dict(),
        "config": config.to_dict(),
        "object_count": len(objects),
        "objects": [obj.to_dict() for obj in objects],
    }

    text = json.dumps(output, indent=2)
    if args.output_path:
        Path(args.output_path).write_text(text)
        print(f"Wrote {len(objects)} objects to: {args.output_path}")
    else:
        print(text)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = setup_argparse()
    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "tiles":
            return cmd_tiles(args)
        if args.command == "segment":
            return cmd_segment(args)
    except TiledSegError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
