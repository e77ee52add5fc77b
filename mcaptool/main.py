import argparse
import logging
import sys

from mcaptool import __version__
from mcaptool.configs import settings
from mcaptool.convert import convert
from mcaptool.output.split import SplitError, split
from mcaptool.output.writer import OutputCloseError, OutputOpenError
from mcaptool.video.codec_info import ConfigurationError, MediaOpenError
from mcaptool.video.frame_extractor import DemuxError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mcaptool")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    split_parser = subparsers.add_parser(
        "split", description="Split a MCAP file into multiple files grouped by channels."
    )
    split_parser.add_argument("input", metavar="input.mcap", help="Input MCAP file to split.")
    split_parser.add_argument("output_dir", help="Output directory to write split MCAP files to.")

    convert_parser = subparsers.add_parser("convert", description="Convert an MP4 video file to a MCAP file.")
    convert_parser.add_argument("input", metavar="input.mp4", help="Input MP4 file to convert.")
    convert_parser.add_argument("output", metavar="output.mcap", help="Output MCAP file to create.")
    convert_parser.add_argument(
        "--calibration",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Add a synthetic video/calibration channel (default: WRITE_CALIBRATION setting).",
    )
    return parser


def run_convert(args: argparse.Namespace) -> int:
    try:
        result = convert(args.input, args.output, write_calibration=args.calibration)
    except (ConfigurationError, MediaOpenError, OutputOpenError, OutputCloseError, DemuxError) as e:
        logger.error("Conversion failed: %s", e)
        return 1

    logger.info(
        'Wrote %d video frames (%d keyframes) to "%s"', result.frames_written, result.keyframes_written, args.output
    )
    return 0


def run_split(args: argparse.Namespace) -> int:
    try:
        result = split(args.input, args.output_dir)
    except (SplitError, OSError) as e:
        logger.error("Split failed: %s", e)
        return 1

    logger.info('Split %d channels, index written to "%s"', len(result.outputs), result.index_filename)
    return 0


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "convert":
        return run_convert(args)
    if args.command == "split":
        return run_split(args)

    parser.print_help()
    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
