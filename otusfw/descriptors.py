"""Firmware descriptor format shared by the OTUS firmware image and its tools."""

from __future__ import annotations

import enum
import struct
from collections.abc import Iterator
from dataclasses import dataclass

__all__ = [
    "Feature",
    "DescriptorHead",
    "parse_head",
    "supports",
    "desc_matches",
    "size_check",
    "encode_date",
    "decode_date",
    "iter_descriptors",
]


class Feature(enum.IntEnum):
    """Feature bits advertised in the OTUS descriptor's feature set."""

    DUMMY_FEATURE = 0
    MINIBOOT = 1
    USB_INIT_FIRMWARE = 2
    USB_RESP_EP2 = 3
    USB_DOWN_STREAM = 4
    USB_UP_STREAM = 5
    UNUSABLE = 6
    COMMAND_PHY = 7
    COMMAND_CAM = 8
    WLANTX_CAB = 9
    HANDLE_BACK_REQ = 10
    GPIO_INTERRUPT = 11
    PSM = 12
    RX_FILTER = 13
    WOL = 14
    FIXED_5GHZ_PSM = 15
    HW_COUNTERS = 16
    RX_BA_FILTER = 17


FEATURE_NUM = len(Feature)

OTUS_MAGIC = b"OTAR"
MOTD_MAGIC = b"MOTD"
FIX_MAGIC = b"FIX\0"
DBG_MAGIC = b"DBG\0"
CHK_MAGIC = b"CHK\0"
TXSQ_MAGIC = b"TXSQ"
WOL_MAGIC = b"WOL\0"
LAST_MAGIC = b"LAST"

MAGIC_SIZE = 4

HEAD_FORMAT = "<4sHBB"
HEAD_SIZE = struct.calcsize(HEAD_FORMAT)

OTUS_DESC_MIN_VER = 6
OTUS_DESC_CUR_VER = 7
OTUS_BODY_FORMAT = "<IIIHHHHBBBB"
OTUS_DESC_SIZE = HEAD_SIZE + struct.calcsize(OTUS_BODY_FORMAT)

MOTD_STRING_LEN = 24
MOTD_RELEASE_LEN = 20
MOTD_DESC_MIN_VER = 1
MOTD_DESC_CUR_VER = 2
MOTD_BODY_FORMAT = f"<I{MOTD_STRING_LEN}s{MOTD_RELEASE_LEN}s"
MOTD_DESC_SIZE = HEAD_SIZE + struct.calcsize(MOTD_BODY_FORMAT)

FIX_DESC_MIN_VER = 1
FIX_DESC_CUR_VER = 2
FIX_ENTRY_FORMAT = "<III"
FIX_ENTRY_SIZE = struct.calcsize(FIX_ENTRY_FORMAT)
FIX_DESC_SIZE = HEAD_SIZE

DBG_DESC_MIN_VER = 1
DBG_DESC_CUR_VER = 3
DBG_BODY_FORMAT = "<IIIII"
DBG_DESC_SIZE = HEAD_SIZE + struct.calcsize(DBG_BODY_FORMAT)

CHK_DESC_MIN_VER = 1
CHK_DESC_CUR_VER = 2
CHK_BODY_FORMAT = "<II"
CHK_DESC_SIZE = HEAD_SIZE + struct.calcsize(CHK_BODY_FORMAT)

TXSQ_DESC_MIN_VER = 1
TXSQ_DESC_CUR_VER = 1
TXSQ_BODY_FORMAT = "<I"
TXSQ_DESC_SIZE = HEAD_SIZE + struct.calcsize(TXSQ_BODY_FORMAT)

WOL_DESC_MIN_VER = 1
WOL_DESC_CUR_VER = 1
WOL_BODY_FORMAT = "<I"
WOL_DESC_SIZE = HEAD_SIZE + struct.calcsize(WOL_BODY_FORMAT)

LAST_DESC_MIN_VER = 1
LAST_DESC_CUR_VER = 2
# The last descriptor is sized like a fix descriptor without entries.
LAST_DESC_SIZE = FIX_DESC_SIZE

DESC_MAX_LENGTH = 8192

MIN_SIZE = 32
MAX_SIZE = 16384

VERSION_YEAR = 12
VERSION_MONTH = 7
VERSION_DAY = 7
VERSION_GIT = "1.9.6"


@dataclass
class DescriptorHead:
    """Common header that starts every firmware descriptor."""

    magic: bytes
    length: int
    min_ver: int
    cur_ver: int

    def __post_init__(self) -> None:
        self.magic = bytes(self.magic)
        if len(self.magic) != MAGIC_SIZE:
            raise ValueError(f"descriptor magic must be {MAGIC_SIZE} bytes")
        if not 0 <= self.length <= 0xFFFF:
            raise ValueError(f"descriptor length {self.length} out of range")
        for name in ("min_ver", "cur_ver"):
            if not 0 <= getattr(self, name) <= 0xFF:
                raise ValueError(f"{name} out of range")

    def pack(self) -> bytes:
        """Return the little-endian wire form of the header."""
        return struct.pack(HEAD_FORMAT, self.magic, self.length, self.min_ver, self.cur_ver)

    def is_incompatible(self, revision: int) -> bool:
        """True when the header cannot be read by a reader of ``revision``."""
        return self.cur_ver < revision or self.min_ver > revision


def parse_head(data: bytes, offset: int = 0) -> DescriptorHead:
    """Decode the descriptor header found at ``offset`` in ``data``."""
    if offset < 0 or offset + HEAD_SIZE > len(data):
        raise ValueError(f"no descriptor header at offset {offset}")
    magic, length, min_ver, cur_ver = struct.unpack_from(HEAD_FORMAT, data, offset)
    return DescriptorHead(magic, length, min_ver, cur_ver)


def supports(feature_set: int, feature: int) -> bool:
    """True when bit ``feature`` is set in ``feature_set``."""
    return bool((feature_set >> int(feature)) & 1)


def desc_matches(
    head: DescriptorHead, magic: bytes, min_len: int, compatible_revision: int
) -> bool:
    """True when ``head`` has ``magic``, a compatible version and enough length."""
    return (
        head.magic == bytes(magic)
        and not head.is_incompatible(compatible_revision)
        and head.length >= min_len
    )


def size_check(length: int) -> bool:
    """True when a firmware image of ``length`` bytes has an acceptable size."""
    return MIN_SIZE <= length <= MAX_SIZE


def encode_date(year: int, month: int, day: int) -> int:
    """Pack a build date; ``year`` counts from 2000 and must be at least 10."""
    if year < 10 or month < 1 or day < 1:
        raise ValueError(f"invalid firmware date {year}-{month}-{day}")
    return ((day - 1) % 31) + ((month - 1) % 12) * 31 + (year - 10) * 372


def decode_date(value: int) -> tuple[int, int, int]:
    """Unpack a build date into ``(year, month, day)``; year counts from 2000."""
    if value < 0:
        raise ValueError("firmware date must not be negative")
    return value // 372 + 10, (value // 31) % 12 + 1, value % 31 + 1


def iter_descriptors(data: bytes, offset: int = 0) -> Iterator[tuple[int, DescriptorHead]]:
    """Yield ``(offset, head)`` for each descriptor up to, but not including, LAST.

    The walk also ends at a header whose length is shorter than a header or
    not below the maximum descriptor length, or where no header fits.
    """
    while offset + HEAD_SIZE <= len(data):
        head = parse_head(data, offset)
        if head.magic == LAST_MAGIC:
            return
        if not HEAD_SIZE <= head.length < DESC_MAX_LENGTH:
            return
        if offset + head.length > len(data):
            raise ValueError(f"descriptor at offset {offset} runs past the end of the data")
        yield offset, head
        offset += head.length