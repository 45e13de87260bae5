import logging
import os
import pathlib
import re
import stat
import subprocess
from enum import Enum
from typing import List, Optional

from udf_format.table import MasterBootRecord
from udf_format.tools import Toolset

log = logging.getLogger(__name__)

# first chunk of the device zeroed before formatting, in logical blocks
HEAD_BLOCKS = 4096
# bytes written per call when zeroing
_ZERO_CHUNK = 1024 * 1024

_DEVICE_PATTERN = re.compile(
    r"^(([hs]d[a-z])([1-9][0-9]*)?|(disk[0-9]+)(s[1-9][0-9]*)?|(loop[0-9]+))$"
)
_PARENT_PATTERN = re.compile(r"^([hs]d[a-z]|disk[0-9]+|loop[0-9]+)$")


class DeviceError(Exception):
    """Error inspecting or writing a block device"""


class WipeMethod(Enum):
    QUICK = "quick"
    ZERO = "zero"
    SCRUB = "scrub"


class Device:
    """Block device to be formatted

    Devices are referred to by their kernel name without the /dev prefix, for
    example sdb or sdb1 on Linux and disk2 or disk2s1 on macOS.

    Attributes:
        name: device name, may be a partition
        parent_name: name of the whole device
        path: absolute device path
        toolset: external programs used to query the device
    """

    def __init__(self, name: str, toolset: Toolset, dev_dir: str = "/dev") -> None:
        """Init Device with a device name

        Raises:
            DeviceError if the name is not a supported device name
        """

        match = _DEVICE_PATTERN.match(name)
        if match is None:
            raise DeviceError(f"<device> is of invalid form: {name}")
        self.name = name
        self.parent_name = "".join(g for g in match.group(2, 4, 6) if g)
        if not _PARENT_PATTERN.match(self.parent_name):
            raise DeviceError(f"<device> is of invalid form (invalid parent device): {name}")
        self.toolset = toolset
        self._dev_dir = pathlib.Path(dev_dir)
        self.path = self._dev_dir / self.name

    def __repr__(self) -> str:
        return f"Device({self.path})"

    @property
    def parent_path(self) -> pathlib.Path:
        return self._dev_dir / self.parent_name

    @property
    def is_partition(self) -> bool:
        return self.parent_name != self.name

    def check_block_special(self) -> None:
        """Verify that the device and its parent are block devices

        Raises:
            DeviceError if either path is missing or not block special
        """

        for path in (self.path, self.parent_path):
            try:
                mode = path.stat().st_mode
            except OSError:
                mode = 0
            if not stat.S_ISBLK(mode):
                raise DeviceError(f"{path} either doesn't exist or is not block special")

    def _run(self, args: List[str]) -> str:
        log.debug("running: %s", " ".join(args))
        try:
            result = subprocess.run(args, capture_output=True, text=True, check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise DeviceError(f"command failed: {' '.join(args)}: {e}") from e
        return result.stdout

    def _uses(self, tool: Optional[str], name: str) -> bool:
        return Toolset.is_tool(tool, name)

    def _diskutil_info(self) -> str:
        return self._run([self.toolset.drive_listing, "info", self.name])

    def logical_block_size(self) -> str:
        """Query the logical block size

        The value is returned unvalidated, as reported by the tool.
        """

        if self._uses(self.toolset.drive_listing, "blockdev"):
            return self._run([self.toolset.drive_listing, "--getss", str(self.path)]).strip()
        match = re.search(r"Device Block Size:\s*(\S+)", self._diskutil_info(), re.IGNORECASE)
        if match is None:
            raise DeviceError("Could not detect logical block size")
        return match.group(1)

    def physical_block_size(self) -> Optional[str]:
        """Query the physical block size

        Returns:
            the reported size, or None if the tool does not report one
        """

        if self._uses(self.toolset.drive_info, "blockdev"):
            return self._run([self.toolset.drive_info, "--getpbsz", str(self.path)]).strip()
        # TODO: 'Physical Block Size' is not always present in ioreg output
        output = self._run([self.toolset.drive_info, "-c", "IOMedia", "-r", "-d", "1"])
        for entry in output.split("+-o "):
            if f'"BSD Name" = "{self.name}"' not in entry:
                continue
            match = re.search(r'"Physical Block Size" = (\d+)', entry)
            if match:
                return match.group(1)
        return None

    def total_size(self) -> str:
        """Query the total size of the device in bytes, unvalidated"""
        if self._uses(self.toolset.drive_listing, "blockdev"):
            return self._run(
                [self.toolset.drive_listing, "--getsize64", str(self.path)]
            ).strip()
        for line in self._diskutil_info().splitlines():
            if not re.search(r"(Total|Disk) Size", line, re.IGNORECASE):
                continue
            match = re.search(r"\((\d+) B", line, re.IGNORECASE)
            if match:
                return match.group(1)
        raise DeviceError("Could not detect valid total size")

    def describe(self) -> str:
        """Human readable description shown before the device is erased"""
        if self._uses(self.toolset.drive_listing, "diskutil"):
            return self._run([self.toolset.drive_listing, "list", self.name])
        lines = []
        if self.toolset.drive_summary:
            try:
                lines.append(self.summary_line())
            except DeviceError as e:
                log.debug("blkid failed: %s", e)
        model = pathlib.Path("/sys/block") / self.parent_name / "device" / "model"
        try:
            lines.append(model.read_text().strip())
        except OSError:
            log.debug("no model information for %s", self.parent_name)
        report = self._run([self.toolset.drive_listing, "--report"])
        lines.extend(
            line
            for line in report.splitlines()
            if "Device" in line or self.name in line
        )
        return "\n".join(line for line in lines if line)

    def summary_line(self) -> str:
        if not self.toolset.drive_summary:
            return ""
        return self._run(
            [self.toolset.drive_summary, "-c", "/dev/null", str(self.path)]
        ).strip()

    def summary(self) -> str:
        """File system summary after formatting, empty if unavailable"""
        # blkid sometimes fails even though the device is formatted properly
        try:
            return self.summary_line()
        except DeviceError as e:
            log.debug("could not summarize %s: %s", self.path, e)
            return ""

    def unmount(self) -> None:
        """Unmount the device, it is fine if it was not mounted"""
        if self._uses(self.toolset.unmount, "diskutil"):
            args = [self.toolset.unmount, "unmountDisk", str(self.path)]
        else:
            args = [self.toolset.unmount, str(self.path)]
        try:
            self._run(args)
        except DeviceError as e:
            log.debug("unmount of %s failed: %s", self.path, e)

    def _write_zeros(self, length: int) -> None:
        zeros = b"\x00" * min(_ZERO_CHUNK, length)
        try:
            with open(self.path, "r+b") as f:
                written = 0
                while written < length:
                    chunk = zeros[: length - written]
                    f.write(chunk)
                    written += len(chunk)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise DeviceError(f"unable to write zeros to {self.path}: {e}") from e

    def wipe(self, method: WipeMethod, total_size: int) -> None:
        """Wipe the device before formatting

        Args:
            method: QUICK does nothing, ZERO overwrites the entire device with zeros,
                SCRUB writes patterns with the scrub utility
            total_size: device size in bytes
        """

        if method is WipeMethod.QUICK:
            return
        if method is WipeMethod.ZERO:
            log.info("Overwriting device with zeros.  This will likely take a LONG time...")
            self._write_zeros(total_size)
        elif method is WipeMethod.SCRUB:
            log.info("Scrubbing device with random patterns.  This will likely take a LONG time...")
            self._run([self.toolset.require_scrub(), "-f", str(self.path)])
        else:
            raise ValueError(f"unsupported wipe method: {method}")

    def zero_head(self, block_size: int, total_size: int) -> None:
        """Zero the first chunk of the device

        Removes any existing partition table and file system signatures. This is
        required even if no fake partition table is written.
        """

        log.info("Zeroing out first chunk of device...")
        self._write_zeros(min(HEAD_BLOCKS * block_size, total_size))

    def write_partition_table(self, mbr: MasterBootRecord) -> None:
        """Write the partition entry and boot signature to the first block"""
        log.info("Writing fake MBR...")
        try:
            with open(self.path, "r+b") as f:
                mbr.write(f)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise DeviceError(f"unable to write partition table to {self.path}: {e}") from e
