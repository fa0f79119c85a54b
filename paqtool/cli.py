import argparse
import logging
import os.path as op
import pathlib
import sys
import time
from typing import Optional

from paqtool import __version__
from paqtool.api import PAQFile
from paqtool.constants import DEFAULT_ARCHIVE_NAME, Mode
from paqtool.exceptions import PAQException

logger = logging.getLogger("paqtool")
logger.addHandler(logging.StreamHandler())
logger.setLevel(logging.INFO)


class PAQNamespace(argparse.Namespace):
    extract: bool
    archive: bool
    debug: bool
    silent: bool
    list: bool
    jobs: int
    output: pathlib.Path
    input: pathlib.Path


def extract_archive(args: PAQNamespace) -> int:
    if op.isdir(args.input):
        logger.error(f"Specified input is not a file: {args.input}")
        sys.exit(1)
    with PAQFile(args.input) as paq:
        logger.debug(str(paq.header))
        if args.list:
            for entry in paq.entries:
                logger.info(str(entry))
            return len(paq.entries)
        return paq.unpack(args.output, max_workers=args.jobs)


def archive_directory(args: PAQNamespace) -> int:
    if not op.isdir(args.input):
        logger.error(f"Specified input is not a directory: {args.input}")
        sys.exit(1)
    return PAQFile.pack_directory(args.input, args.output)


def run(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(
        prog=f"paqtool ({__version__})",
        description="Extracts & creates PAQ archives used in the PSP game Maclean's Mercury.",
    )
    mode_group = parser.add_mutually_exclusive_group(required=True)
    mode_group.add_argument(
        "-x",
        "--extract",
        action="store_true",
        help="Extract the specified PAQ archive.",
    )
    mode_group.add_argument(
        "-a",
        "--archive",
        action="store_true",
        help="Bundle the files from the specified directory into a PAQ archive.",
    )
    parser.add_argument("-d", "--debug", action="store_true", default=False, help="Enable debug information")
    parser.add_argument("-s", "--silent", action="store_true", default=False, help="Disable terminal output")
    parser.add_argument(
        "-L",
        "--list",
        action="store_true",
        default=False,
        help="When extracting, list the files contained in the archive instead of writing them.",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=1,
        help="The number of threads used to write extracted files. Default: %(default)s.",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=pathlib.Path("."),
        type=pathlib.Path,
        help=(
            "The directory to extract files to, or the archive to create. If an existing directory is given "
            f"when archiving, the archive will be written to '{DEFAULT_ARCHIVE_NAME}' inside it."
        ),
    )
    parser.add_argument(
        "input", type=pathlib.Path, help="The PAQ file to extract or the directory to archive."
    )

    args = PAQNamespace()
    args = parser.parse_args(argv, namespace=args)

    if args.silent:
        logger.setLevel(logging.ERROR)
    elif args.debug:
        logger.setLevel(logging.DEBUG)

    mode = Mode.EXTRACT if args.extract else Mode.ARCHIVE
    logger.debug(f"Output: {args.output}")
    logger.debug(f"Input: {args.input}")
    logger.debug(f"Mode: {mode.value}")

    t1 = time.perf_counter()
    try:
        if mode == Mode.EXTRACT:
            file_count = extract_archive(args)
        else:
            file_count = archive_directory(args)
    except (PAQException, OSError) as e:
        logger.error(str(e))
        sys.exit(1)

    verb = "Extracted" if mode == Mode.EXTRACT else "Archived"
    logger.info(f"{verb} {file_count} file(s) in {(time.perf_counter() - t1) * 1000:.3f}ms")


if __name__ == "__main__":
    run()
