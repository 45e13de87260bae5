"""
Partition table reference: https://en.wikipedia.org/wiki/Master_boot_record

"""
import json
import struct
from typing import BinaryIO

from udf_format.chs import OVERFLOW_ADDRESS, CHSAddress
from udf_format.geometry import Geometry


class PartitionRecord:
    """Whole-device Partition Table Entry

    Describes a single partition that starts at LBA 0 and spans the entire device.
    UDF does not need a partition table, but Windows will only mount the device if
    one is present. The record only has to be plausible, the file system itself
    starts at the beginning of the device.
    https://thestarman.pcministry.com/asm/mbr/PartTables.htm#pte

    Attributes:
        status: boot indicator, 0x00 is not bootable
        first_chs: CHS address of the first sector
        partition_type: 0x0B, FAT32 with CHS addressing
        last_chs: CHS address of the last sector
        first_lba: LBA of the first sector
        sector_count: number of sectors in the partition
    """

    _RECORD_FORMAT = struct.Struct("<B3sB3sII")
    LENGTH = 16
    # FAT32 (CHS) is recognized widely enough for Windows to mount the device
    PARTITION_TYPE = 0x0B
    MAX_SECTOR_COUNT = 0xFFFFFFFF

    def __init__(self, geometry: Geometry) -> None:
        self._geometry = geometry
        self.status = 0x00
        self.first_chs = CHSAddress.from_lba(0)
        self.partition_type = self.PARTITION_TYPE
        if self._geometry.chs_overflow:
            self.last_chs = OVERFLOW_ADDRESS
        else:
            # last usable sector
            self.last_chs = CHSAddress.from_lba(self._geometry.total_lba - 1)
        self.first_lba = 0
        # number of sectors, not the last sector. UDF 2.01 is limited to 2^32 blocks
        # so saturating never hides usable capacity
        if self._geometry.sector_count_overflow:
            self.sector_count = self.MAX_SECTOR_COUNT
        else:
            self.sector_count = self._geometry.total_lba

    def __repr__(self) -> str:
        filtered_values = {k: v for k, v in vars(self).items() if not k.startswith("_")}
        filtered_values["first_chs"] = list(self.first_chs.as_tuple())
        filtered_values["last_chs"] = list(self.last_chs.as_tuple())
        return json.dumps(filtered_values, indent=2, ensure_ascii=False)

    def marshal(self) -> bytes:
        """Convert the Partition Record to its byte structure"""
        record_bytes = self._RECORD_FORMAT.pack(
            self.status,
            self.first_chs.marshal(),
            self.partition_type,
            self.last_chs.marshal(),
            self.first_lba,
            self.sector_count,
        )
        return record_bytes


class MasterBootRecord:
    """Fake Master Boot Record

    Only the partition table area of the boot sector is populated: the first
    partition entry and the boot signature. Everything else in the first block is
    expected to be zero.
    """

    _SECTOR_FORMAT = struct.Struct("<446s16s48s2s")
    PARTITION_ENTRY_OFFSET = 446
    SIGNATURE_OFFSET = 510
    SIGNATURE = b"\x55\xAA"

    def __init__(self, geometry: Geometry) -> None:
        self._geometry = geometry
        self.partition = PartitionRecord(self._geometry)
        self.signature = self.SIGNATURE

    def __repr__(self) -> str:
        return json.dumps(
            {
                "partition": json.loads(str(self.partition)),
                "signature": self.signature.hex(),
            },
            indent=2,
            ensure_ascii=False,
        )

    def marshal(self) -> bytes:
        """Partition entry followed by the boot signature

        Returns:
            18 bytes, the first 16 belong at offset 446 and the last 2 at offset 510
        """

        return self.partition.marshal() + self.signature

    def marshal_sector(self) -> bytes:
        """Convert the MBR to a complete 512 byte boot sector"""
        return self._SECTOR_FORMAT.pack(
            b"\x00",  # no boot code
            self.partition.marshal(),
            b"\x00",  # remaining partition entries are unused
            self.signature,
        )

    def write(self, f: BinaryIO) -> None:
        """Write the partition entry and signature to an open device or image

        Args:
            f: binary file opened for writing, positioned anywhere
        """

        f.seek(self.PARTITION_ENTRY_OFFSET)
        f.write(self.partition.marshal())
        f.seek(self.SIGNATURE_OFFSET)
        f.write(self.signature)
