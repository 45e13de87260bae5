import argparse
import logging
import os
import sys
from typing import List, Optional

from udf_format import __version__
from udf_format.device import Device, DeviceError, WipeMethod
from udf_format.format import Aborted, FormatError, FormatOptions, Formatter, PartitionScheme
from udf_format.geometry import GeometryError
from udf_format.tools import DependencyError, Toolset

log = logging.getLogger("udf_format")

EPILOG = """
Example:  format-udf sdg "My UDF External Drive"

The output is a drive that can be used for reading/writing across multiple
operating system families: Windows, macOS, and Linux.
"""


class MarkerFormatter(logging.Formatter):
    """Prefix log messages with a progress marker"""

    MARKERS = {
        logging.DEBUG: "[.]",
        logging.INFO: "[+]",
        logging.WARNING: "[*]",
    }

    def format(self, record: logging.LogRecord) -> str:
        marker = self.MARKERS.get(record.levelno, "[-]")
        return f"{marker} {super().format(record)}"


def setup_logging(verbose: bool = False) -> None:
    if not log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(MarkerFormatter("%(message)s"))
        log.addHandler(handler)
    log.setLevel(logging.DEBUG if verbose else logging.INFO)


def ask(prompt: str) -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() == "yes"


def block_size(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid block size: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="format-udf",
        description="Format a block device (hard drive or Flash drive) in UDF.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )
    parser.add_argument(
        "-b",
        dest="block_size",
        metavar="BLOCK_SIZE",
        type=block_size,
        help="block size to be used during format operation, defaults to the "
        "logical block size of the device (expert-only option)",
    )
    parser.add_argument(
        "-f",
        dest="force",
        action="store_true",
        help="non-interactive mode, no user confirmation is given",
    )
    parser.add_argument(
        "-p",
        dest="partition_type",
        choices=[p.value for p in PartitionScheme],
        default=PartitionScheme.MBR.value,
        help="partition type to set during format operation (default: %(default)s)",
    )
    parser.add_argument(
        "-w",
        dest="wipe_method",
        choices=[w.value for w in WipeMethod],
        default=WipeMethod.QUICK.value,
        help="wipe method to be used before format operation (default: %(default)s); "
        "'zero' and 'scrub' take a long time",
    )
    parser.add_argument("--verbose", action="store_true", help="show debug output")
    parser.add_argument(
        "-v", "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("device", help="device to format, e.g. sdx (Linux) or diskN (macOS)")
    parser.add_argument("label", help="label to apply to formatted device")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    options = FormatOptions(
        block_size=args.block_size,
        force=args.force,
        partition_type=PartitionScheme(args.partition_type),
        wipe_method=WipeMethod(args.wipe_method),
    )

    formatter = None
    try:
        if os.geteuid() != 0:
            raise DependencyError("format-udf must be run as root (try sudo)")
        log.info("Testing dependencies...")
        device = Device(args.device, Toolset.discover())
        formatter = Formatter(device, args.label, options, confirm=ask)
        summary = formatter.run()
    except (DependencyError, DeviceError, GeometryError, FormatError, Aborted) as e:
        if str(e):
            log.error("%s", e)
        if formatter is None or not formatter.modified:
            log.warning("Exiting without changes to /dev/%s", args.device)
        return 1

    log.info("Successfully formatted %s", summary)
    print("Please disconnect/reconnect your drive now.")
    return 0
