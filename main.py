# main.py

import argparse
import logging
import sys

from filmneg.core.codec import CodecError, format_for_path, load_image, save_image
from filmneg.core.image_processor import CHANNELS_ERROR, FilmProcessor, ProcessMode


logger = logging.getLogger("filmneg.cli")

EPILOG = """\
examples:
  main.py photo.jpg film_negative.jpg      convert to negative
  main.py negative.jpg restored.jpg -r     reverse to positive

supported formats:
  input:  JPG, PNG, BMP, TGA
  output: JPG, PNG, BMP, TGA (unknown extensions are written as PNG)
"""


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Film Negative Filter",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("input", help="Input image")
    parser.add_argument("output", help="Output image, format from extension")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-n", dest="mode", action="store_const", const=ProcessMode.TO_NEGATIVE,
        help="Convert to negative (default)",
    )
    mode.add_argument(
        "-r", dest="mode", action="store_const", const=ProcessMode.TO_POSITIVE,
        help="Reverse negative back to positive",
    )
    parser.set_defaults(mode=ProcessMode.TO_NEGATIVE)
    return parser.parse_args(argv)


def run(input_path: str, output_path: str, mode: ProcessMode, processor: FilmProcessor | None = None) -> int:
    processor = processor or FilmProcessor()

    logger.info("Loading image: %s", input_path)
    try:
        img = load_image(input_path)
    except CodecError as e:
        logger.error("Error: Could not load image '%s'", input_path)
        logger.error("Reason: %s", e)
        return 1

    h, w, channels = img.shape
    logger.info("Image loaded successfully!")
    logger.info("  Dimensions: %dx%d", w, h)
    logger.info("  Channels: %d", channels)

    if channels < 3:
        logger.error("Error: %s", CHANNELS_ERROR)
        return 1

    if mode is ProcessMode.TO_NEGATIVE:
        logger.info("Applying film negative effects...")
    else:
        logger.info("Reversing film negative to positive image...")

    processor.apply(img, mode, progress=lambda step: logger.info("  - %s...", step))

    if mode is ProcessMode.TO_POSITIVE:
        logger.info("Note: Film grain cannot be fully removed as it's random.")

    logger.info("Saving image: %s", output_path)
    if format_for_path(output_path) is None:
        logger.warning("Warning: Unknown format, defaulting to PNG")

    try:
        save_image(img, output_path)
    except (CodecError, OSError) as e:
        logger.error("Error: Could not save image to '%s': %s", output_path, e)
        return 1

    logger.info("Image saved successfully!")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    return run(args.input, args.output, args.mode)


if __name__ == "__main__":
    sys.exit(main())
