from typing import Union

HEADS_PER_CYLINDER = 255
SECTORS_PER_TRACK = 63
MAX_CYLINDERS = 1024
# last CHS address saturates at or above this LBA count
CHS_MAX_LBA = MAX_CYLINDERS * HEADS_PER_CYLINDER * SECTORS_PER_TRACK - 1
# the 32-bit sector count field (and UDF 2.01 itself) stops here
MAX_SECTOR_COUNT = 2**32 - 1


class GeometryError(Exception):
    """Invalid device size or block size"""


def validate_block_size(value: Union[int, str], description: str = "block size") -> int:
    """Validate a block size reported by a tool or given by the user

    Args:
        value: integer or decimal string
        description: used in the error message
    Returns:
        block size as an integer
    Raises:
        GeometryError if the value is not a positive multiple of 512
    """

    if isinstance(value, str):
        value = value.strip()
        if not value.isdecimal():
            raise GeometryError(f"Invalid {description}: {value!r}")
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise GeometryError(f"Invalid {description}: {value!r}")
    if value <= 0 or value % 512 != 0:
        raise GeometryError(f"Invalid {description}: {value}")
    return value


class Geometry:
    """Geometry of a block device

    This is a convenience class that provides the calculations needed to build a
    whole-device partition entry

    Attributes:
        sector_size: logical block size in bytes, typically 512
        total_bytes: device size in bytes
        total_lba: number of logical blocks on the device
        last_lba: logical block address of the last block
    """

    def __init__(self, size: int, sector_size: int = 512) -> None:
        """Init Geometry with size in bytes

        Raises:
            GeometryError if the device cannot hold a single logical block
        """
        for name, value in (("size", size), ("sector size", sector_size)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise GeometryError(f"{name} must be an integer: {value!r}")
            if value <= 0:
                raise GeometryError(f"{name} must be positive: {value}")
        if size < sector_size:
            raise GeometryError(
                f"device size {size} is smaller than one logical block ({sector_size})"
            )
        self.sector_size = sector_size
        self.total_bytes = size
        self.total_lba = size // sector_size
        self.last_lba = self.total_lba - 1

    def __repr__(self) -> str:
        return f"Geometry(size={self.total_bytes}, sector_size={self.sector_size})"

    @property
    def chs_overflow(self) -> bool:
        return self.total_lba >= CHS_MAX_LBA

    @property
    def sector_count_overflow(self) -> bool:
        return self.total_lba >= MAX_SECTOR_COUNT

    @property
    def max_udf_capacity_tib(self) -> int:
        # 2**32 blocks of sector_size bytes, in TiB
        return self.sector_size // 256
