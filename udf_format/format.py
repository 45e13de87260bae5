import logging
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from udf_format.device import Device, DeviceError, WipeMethod
from udf_format.geometry import Geometry, GeometryError, validate_block_size
from udf_format.table import MasterBootRecord
from udf_format.tools import Toolset

log = logging.getLogger(__name__)


class FormatError(Exception):
    """Error running the UDF formatter"""


class Aborted(Exception):
    """User declined to continue"""


class PartitionScheme(Enum):
    # fake MBR with a single whole-device partition
    MBR = "mbr"
    # leave the partition table area zeroed
    NONE = "none"


@dataclass
class FormatOptions:
    """Options for a format run

    Attributes:
        block_size: file system block size override, defaults to the logical block
            size of the device
        force: never ask for confirmation
        partition_type: partition table written after formatting
        wipe_method: how the device is wiped before formatting
    """

    block_size: Optional[int] = None
    force: bool = False
    partition_type: PartitionScheme = PartitionScheme.MBR
    wipe_method: WipeMethod = WipeMethod.QUICK


class UdfTool:
    """Command line of the external UDF formatter

    mkudffs is part of udftools on Linux, newfs_udf ships with macOS. Both are
    asked for UDF revision 2.01, the latest revision with write support on Linux.
    """

    UDF_REVISION = "2.01"

    def __init__(self, path: str) -> None:
        self.path = path

    def command(self, device_path: str, block_size: int, label: str) -> List[str]:
        """Build the formatter arguments

        Args:
            device_path: device to format
            block_size: file system block size, must match the logical block size
                used for the partition table
            label: volume label
        Returns:
            argument list suitable for subprocess
        """

        if Toolset.is_tool(self.path, "newfs_udf"):
            return [
                self.path,
                "-b",
                str(block_size),
                "-m",
                "blk",  # hard drives and USB drives
                "-t",
                "ow",  # overwrite access type
                "-r",
                self.UDF_REVISION,
                "-v",
                label,
                "--enc",
                "utf8",
                device_path,
            ]
        # --utf8 has to be the first argument for recent udftools
        return [
            self.path,
            "--utf8",
            f"--blocksize={block_size}",
            "--media-type=hd",
            "--udfrev=0x0201",
            f"--lvid={label}",
            f"--vid={label}",
            device_path,
        ]

    def run(self, device_path: str, block_size: int, label: str) -> None:
        """Format the device

        Raises:
            FormatError if the formatter fails
        """

        args = self.command(device_path, block_size, label)
        log.debug("running: %s", " ".join(args))
        try:
            subprocess.run(args, check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise FormatError("Format failed!") from e


class Formatter:
    """Formats a device in UDF and writes the fake partition table

    Confirmation is requested before anything unusual happens and before the
    device is erased. Nothing on the device is modified until the final
    confirmation has been given.

    Attributes:
        device: target device
        label: volume label
        options: FormatOptions for this run
        modified: True once the device has been written to
    """

    def __init__(
        self,
        device: Device,
        label: str,
        options: Optional[FormatOptions] = None,
        confirm: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.device = device
        self.label = label
        self.options = options or FormatOptions()
        self._confirm = confirm
        self.modified = False
        self.logical_block_size = 0
        self.physical_block_size: Optional[int] = None
        self.file_system_block_size = 0
        self.geometry: Optional[Geometry] = None

    def confirm(self, message: str, question: str = "if you would like to continue anyway") -> None:
        """Ask the user to continue

        Raises:
            Aborted if the user declines
        """

        log.warning(message)
        if self.options.force:
            return
        if self._confirm is None or not self._confirm(f"Type 'yes' {question}:  "):
            raise Aborted()

    def check_device(self) -> None:
        if not self.device.is_partition:
            return
        if self.options.partition_type is not PartitionScheme.NONE:
            raise DeviceError(
                "You are attempting to format a single partition (as opposed to "
                f"entire device). Partition type '{self.options.partition_type.value}' "
                "incompatible with single partition formatting. Please specify an "
                "entire device or partition type of 'none'."
            )
        self.confirm(
            "You are attempting to format a single partition (as opposed to entire device).\n"
            "For maximal compatibility, the recommendation is to format the entire device.\n"
            "If you continue, the resultant UDF partition will not be recognized on macOS."
        )

    def detect_block_sizes(self) -> None:
        log.info("Detecting logical block size...")
        try:
            self.logical_block_size = validate_block_size(
                self.device.logical_block_size(), "logical block size"
            )
        except GeometryError as e:
            raise DeviceError(f"Could not detect logical block size: {e}") from e
        log.info("Detected logical block size of %d", self.logical_block_size)

        log.info("Detecting physical block size...")
        physical = self.device.physical_block_size()
        if physical:
            try:
                self.physical_block_size = validate_block_size(physical, "physical block size")
            except GeometryError as e:
                raise DeviceError(f"Could not detect physical block size: {e}") from e
            log.info("Detected physical block size of %d", self.physical_block_size)
            self._check_advanced_format()

        if self.options.block_size is None:
            # Windows requires the file system block size to match the logical block size
            self.file_system_block_size = self.logical_block_size
        else:
            log.info("Overriding detected logical block size...")
            self.file_system_block_size = validate_block_size(
                self.options.block_size, "file system block size"
            )
        log.info("Using file system block size of %d", self.file_system_block_size)

    def _check_advanced_format(self) -> None:
        logical, physical = self.logical_block_size, self.physical_block_size
        if logical == 512 and physical == 512:
            return
        lines = [
            "The device you have selected is an Advanced Format drive, with a logical block size",
            f"of {logical} bytes and physical block size of {physical} bytes.",
        ]
        if logical == 512 and physical == 4096:
            lines.append("This device is an '512 emulation' (512e) drive.")
        elif logical == 4096 and physical == 4096:
            lines.append("This device is an '4K native' (4Kn) drive.")
        lines.extend(
            [
                "As such, this drive will not be as compatible across operating systems as a standard",
                "drive having a logical block size of 512 bytes and a physical block size of 512 bytes.",
                "For example, this drive will not be usable for read or write on Windows XP.",
            ]
        )
        self.confirm("\n".join(lines))

    def detect_size(self) -> None:
        log.info("Detecting total size...")
        size = self.device.total_size()
        if not size.isdecimal():
            raise DeviceError(f"Could not detect valid total size: {size!r}")
        try:
            self.geometry = Geometry(int(size), self.logical_block_size)
        except GeometryError as e:
            raise DeviceError(f"Could not detect valid total size: {e}") from e
        log.info("Detected total size of %d", self.geometry.total_bytes)
        if self.geometry.sector_count_overflow:
            self.confirm(
                "The device you have selected is larger than can be fully utilized by UDF.\n"
                "Only the first 2^32 logical blocks on the device will be usable on the "
                "resultant UDF drive,\nand the remainder of the drive will not be used.\n"
                "The maximum UDF file system capacity on this device is "
                f"{self.geometry.max_udf_capacity_tib} TiB."
            )

    def prepare(self) -> None:
        """Validate the device and gather its geometry without modifying it

        Raises:
            DeviceError, GeometryError, DependencyError, Aborted
        """

        log.info("Validating arguments...")
        self.device.check_block_special()
        self.check_device()
        if self.options.wipe_method is WipeMethod.SCRUB:
            self.device.toolset.require_scrub()
        self.detect_block_sizes()
        self.detect_size()

        log.info("Gathering drive information...")
        log.info("%s", self.device.describe())
        self.confirm(
            "The above-listed device (and partitions, if any) will be completely erased.",
            question="if this is what you intend",
        )

    def execute(self) -> str:
        """Erase, format and partition the device

        Returns:
            file system summary of the formatted device, may be empty
        """

        if self.geometry is None:
            raise RuntimeError("prepare() must be called before execute()")
        log.info("Unmounting device...")
        self.device.unmount()

        # changes to the device start here
        self.modified = True
        self.device.wipe(self.options.wipe_method, self.geometry.total_bytes)
        self.device.zero_head(self.logical_block_size, self.geometry.total_bytes)

        log.info("Formatting %s ...", self.device.path)
        UdfTool(self.device.toolset.udf).run(
            str(self.device.path), self.file_system_block_size, self.label
        )

        if self.options.partition_type is PartitionScheme.MBR:
            # logical block size, not the file system block size
            self.device.write_partition_table(MasterBootRecord(self.geometry))
        return self.device.summary()

    def run(self) -> str:
        self.prepare()
        return self.execute()
