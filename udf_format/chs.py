"""
CHS address reference: https://en.wikipedia.org/wiki/Cylinder-head-sector

"""
import json
from typing import NamedTuple, Tuple

from udf_format.geometry import HEADS_PER_CYLINDER, MAX_CYLINDERS, SECTORS_PER_TRACK


class CHSAddress(NamedTuple):
    """Cylinder-Head-Sector address

    Legacy partition entries store the first and last sector of a partition as a
    3 byte CHS tuple. The fields are packed as:

        byte 0: head
        byte 1: cylinder bits 8-9 in the top 2 bits, sector in the low 6 bits
        byte 2: cylinder bits 0-7

    Addresses are immutable values.

    Attributes:
        cylinder: 0 - 1023
        head: 0 - 254
        sector: 1 - 63, sectors are 1-based
    """

    cylinder: int
    head: int
    sector: int

    LENGTH = 3

    def __repr__(self) -> str:
        return json.dumps(self._asdict())

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.cylinder, self.head, self.sector)

    @staticmethod
    def from_lba(lba: int) -> "CHSAddress":
        """Convert a logical block address to CHS

        Uses the fixed translation geometry of 255 heads per cylinder and 63 sectors
        per track. LBAs past the last addressable cylinder wrap around; callers that
        need the saturated value must check for overflow first.

        Args:
            lba: zero-based logical block address
        Returns:
            an instance of the CHSAddress class
        Raises:
            ValueError if the LBA is negative
        """

        if lba < 0:
            raise ValueError(f"LBA must not be negative: {lba}")
        cylinder = (lba // (HEADS_PER_CYLINDER * SECTORS_PER_TRACK)) % MAX_CYLINDERS
        head = ((lba // SECTORS_PER_TRACK) % HEADS_PER_CYLINDER) % 256
        sector = ((lba % SECTORS_PER_TRACK) + 1) % 64
        return CHSAddress(cylinder, head, sector)

    def marshal(self) -> bytes:
        """Pack the address into its 3 byte form"""
        cylinder_high = (self.cylinder >> 8) & 0x03
        return bytes(
            [
                self.head & 0xFF,
                (cylinder_high << 6) | (self.sector & 0x3F),
                self.cylinder & 0xFF,
            ]
        )

    @staticmethod
    def unmarshal(chs_bytes: bytes) -> "CHSAddress":
        if len(chs_bytes) != CHSAddress.LENGTH:
            raise ValueError(f"Invalid CHS address length: {len(chs_bytes)}")
        head, packed, cylinder_low = chs_bytes
        cylinder = ((packed >> 6) << 8) | cylinder_low
        return CHSAddress(cylinder, head, packed & 0x3F)


# used when an address is too large to represent, packs to FE FF FF
OVERFLOW_ADDRESS = CHSAddress(1023, 254, 63)
