import logging
import pathlib
import shutil
from typing import Optional

log = logging.getLogger(__name__)


class DependencyError(Exception):
    """Required external tool is missing"""


def _which(name: str) -> Optional[str]:
    return shutil.which(name)


def _first_available(purpose: str, *names: str) -> str:
    for name in names:
        path = _which(name)
        if path:
            log.info("Looking for %s... using %s", purpose, path)
            return path
    raise DependencyError(
        "Dependencies unmet.  Please verify that at least one of the following are "
        f"installed, executable, and in the PATH:  {', '.join(names)}"
    )


class Toolset:
    """External programs used to inspect and format a device

    Linux systems provide blockdev, blkid, umount and mkudffs. macOS provides
    ioreg, diskutil and newfs_udf.

    Attributes:
        drive_info: blockdev or ioreg, used for the physical block size
        drive_listing: blockdev or diskutil, used for block size and total size
        drive_summary: blkid or None
        unmount: diskutil or umount
        udf: mkudffs or newfs_udf
        scrub: scrub or None
    """

    def __init__(
        self,
        drive_info: str,
        drive_listing: str,
        unmount: str,
        udf: str,
        drive_summary: Optional[str] = None,
        scrub: Optional[str] = None,
    ) -> None:
        self.drive_info = drive_info
        self.drive_listing = drive_listing
        self.drive_summary = drive_summary
        self.unmount = unmount
        self.udf = udf
        self.scrub = scrub

    def __repr__(self) -> str:
        return f"Toolset({vars(self)})"

    @staticmethod
    def discover() -> "Toolset":
        """Find the tools available on this system

        Raises:
            DependencyError if a required tool has no available alternative
        """

        drive_info = _first_available("drive info tool", "blockdev", "ioreg")
        drive_listing = _first_available("drive listing tool", "blockdev", "diskutil")
        drive_summary = _which("blkid")
        log.info("Looking for drive summary tool... using %s", drive_summary or "(none)")
        # diskutil is required on macOS, even if umount is present
        unmount = _first_available("unmount tool", "diskutil", "umount")
        udf = _first_available("UDF tool", "mkudffs", "newfs_udf")
        return Toolset(
            drive_info,
            drive_listing,
            unmount,
            udf,
            drive_summary=drive_summary,
            scrub=_which("scrub"),
        )

    def require_scrub(self) -> str:
        if not self.scrub:
            raise DependencyError(
                "Dependencies unmet.  Please verify that the following are installed, "
                "executable, and in the PATH:  scrub"
            )
        return self.scrub

    @staticmethod
    def is_tool(path: Optional[str], name: str) -> bool:
        """Check whether a discovered tool path is the named program"""
        if not path:
            return False
        return pathlib.PurePath(path).name == name
