import io
import json
import struct

import pytest

from udf_format.geometry import Geometry
from udf_format.table import MasterBootRecord, PartitionRecord

DISK_SIZE = 2 * 1024 * 1024  # 2 MB disk
CHS_LIMIT = 1024 * 255 * 63


@pytest.fixture
def new_geometry():
    return Geometry(DISK_SIZE)


def geometry_for(total_lba, sector_size=512):
    return Geometry(total_lba * sector_size, sector_size)


def test_partition_record_marshal(new_geometry: Geometry):
    record_bytes = PartitionRecord(new_geometry).marshal()
    assert len(record_bytes) == 16
    assert record_bytes[0:1] == b"\x00"
    assert record_bytes[1:4] == b"\x00\x01\x00"
    assert record_bytes[4:5] == b"\x0b"
    # LBA 4095 is cylinder 0, head 65, sector 1
    assert record_bytes[5:8] == b"\x41\x01\x00"
    assert record_bytes[8:12] == b"\x00" * 4
    assert record_bytes[12:16] == b"\x00\x10\x00\x00"


def test_partition_record_8gb():
    geo = Geometry(4096 * 2097152, 512)
    assert geo.total_lba == 16777216
    record_bytes = PartitionRecord(geo).marshal()
    first_lba, sector_count = struct.unpack("<II", record_bytes[8:16])
    assert first_lba == 0
    assert sector_count == 16777216
    assert record_bytes[12:16] == b"\x00\x00\x00\x01"
    # 8 GB is past the CHS limit
    assert record_bytes[5:8] == b"\xfe\xff\xff"


def test_last_chs_at_limit():
    record = PartitionRecord(geometry_for(CHS_LIMIT - 1))
    assert record.marshal()[5:8] == b"\xfe\xff\xff"


def test_last_chs_below_limit():
    record = PartitionRecord(geometry_for(CHS_LIMIT - 2))
    # last sector is LBA CHS_LIMIT - 3, (1023, 254, 61)
    assert record.last_chs.as_tuple() == (1023, 254, 61)
    assert record.marshal()[5:8] == b"\xfe\xfd\xff"


@pytest.mark.parametrize("total_lba", [2**32 - 1, 2**32, 2**40])
def test_sector_count_saturates(total_lba):
    record_bytes = PartitionRecord(geometry_for(total_lba)).marshal()
    assert record_bytes[12:16] == b"\xff\xff\xff\xff"
    assert record_bytes[5:8] == b"\xfe\xff\xff"


def test_sector_count_below_limit():
    record_bytes = PartitionRecord(geometry_for(2**32 - 2)).marshal()
    assert record_bytes[12:16] == b"\xfe\xff\xff\xff"


def test_sector_count_uses_logical_block_size():
    # 4Kn drive: the same capacity has 8 times fewer sectors
    record = PartitionRecord(Geometry(DISK_SIZE, 4096))
    assert record.sector_count == 512
    # LBA 511 is cylinder 0, head 8, sector 8
    assert record.last_chs.as_tuple() == (0, 8, 8)


def test_single_block_device():
    record = PartitionRecord(Geometry(512, 512))
    assert record.last_chs.as_tuple() == (0, 0, 1)
    assert record.sector_count == 1


def test_partition_record_deterministic(new_geometry: Geometry):
    assert PartitionRecord(new_geometry).marshal() == PartitionRecord(new_geometry).marshal()


def test_partition_record_repr(new_geometry: Geometry):
    record_d = json.loads(str(PartitionRecord(new_geometry)))
    assert record_d["partition_type"] == 0x0B
    assert record_d["first_chs"] == [0, 0, 1]
    assert record_d["last_chs"] == [0, 65, 1]
    assert record_d["sector_count"] == 4096
    # attributes with leading underscore should not be in __repr__
    assert len(record_d) == 6


def test_mbr_marshal(new_geometry: Geometry):
    mbr = MasterBootRecord(new_geometry)
    mbr_bytes = mbr.marshal()
    assert len(mbr_bytes) == 18
    assert mbr_bytes[:16] == PartitionRecord(new_geometry).marshal()
    assert mbr_bytes[16:] == b"\x55\xAA"


def test_mbr_marshal_sector(new_geometry: Geometry):
    sector = MasterBootRecord(new_geometry).marshal_sector()
    assert len(sector) == 512
    assert sector[:446] == b"\x00" * 446
    assert sector[446:462] == PartitionRecord(new_geometry).marshal()
    assert sector[462:510] == b"\x00" * 48
    assert sector[510:512] == b"\x55\xAA"


def test_mbr_write(new_geometry: Geometry):
    block = io.BytesIO(b"\x00" * 4096)
    block.seek(1000)
    MasterBootRecord(new_geometry).write(block)
    written = block.getvalue()
    assert len(written) == 4096
    assert written[:512] == MasterBootRecord(new_geometry).marshal_sector()
    assert written[512:] == b"\x00" * (4096 - 512)


def test_mbr_repr(new_geometry: Geometry):
    mbr_d = json.loads(str(MasterBootRecord(new_geometry)))
    assert mbr_d["signature"] == "55aa"
    assert mbr_d["partition"]["status"] == 0


def test_last_chs_not_shared():
    first = PartitionRecord(geometry_for(2**40))
    with pytest.raises(AttributeError):
        first.last_chs.head = 0
    first.last_chs = first.last_chs._replace(head=0)
    assert first.marshal()[5:8] == b"\x00\xff\xff"
    # later records are unaffected
    assert PartitionRecord(geometry_for(2**40)).marshal()[5:8] == b"\xfe\xff\xff"
