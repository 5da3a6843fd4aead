"""Load, edit and store firmware images that carry a descriptor block."""

from __future__ import annotations

import errno
import struct
import zlib
from collections.abc import Iterator
from pathlib import Path

from otusfw.descriptors import (
    CHK_BODY_FORMAT,
    CHK_DESC_CUR_VER,
    CHK_DESC_MIN_VER,
    CHK_DESC_SIZE,
    CHK_MAGIC,
    DESC_MAX_LENGTH,
    HEAD_SIZE,
    LAST_DESC_CUR_VER,
    LAST_DESC_MIN_VER,
    LAST_DESC_SIZE,
    LAST_MAGIC,
    OTUS_DESC_CUR_VER,
    OTUS_DESC_SIZE,
    OTUS_MAGIC,
    DescriptorHead,
    desc_matches,
    iter_descriptors,
    parse_head,
    size_check,
)

__all__ = [
    "FirmwareError",
    "Descriptor",
    "Firmware",
    "crc32_le",
    "load_firmware",
]

_MASK32 = 0xFFFFFFFF
_LENGTH_OFFSET = 4


class FirmwareError(Exception):
    """A firmware operation failed; ``errno`` holds the matching error code."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.errno = code


def crc32_le(crc: int, data: bytes) -> int:
    """Update the reflected CRC-32 ``crc`` with ``data``, without final inversion."""
    return zlib.crc32(bytes(data), (crc & _MASK32) ^ _MASK32) ^ _MASK32


class Descriptor:
    """One firmware descriptor held as its raw little-endian bytes."""

    __slots__ = ("data",)

    def __init__(self, data: bytes) -> None:
        raw = bytearray(data)
        if len(raw) < HEAD_SIZE:
            raise FirmwareError(errno.EINVAL, "descriptor shorter than its header")
        length = parse_head(raw).length
        if length < HEAD_SIZE:
            raise FirmwareError(errno.EINVAL, f"descriptor length {length} too small")
        if length > len(raw):
            raise FirmwareError(errno.EINVAL, "descriptor data shorter than its length")
        self.data = raw[:length]

    @classmethod
    def create(cls, magic: bytes, min_ver: int, cur_ver: int, body: bytes = b"") -> Descriptor:
        """Build a descriptor from its magic, versions and body bytes."""
        head = DescriptorHead(magic, HEAD_SIZE + len(body), min_ver, cur_ver)
        return cls(head.pack() + bytes(body))

    @property
    def head(self) -> DescriptorHead:
        return parse_head(self.data)

    @property
    def magic(self) -> bytes:
        return bytes(self.data[:4])

    @property
    def length(self) -> int:
        return self.head.length

    @property
    def min_ver(self) -> int:
        return self.head.min_ver

    @property
    def cur_ver(self) -> int:
        return self.head.cur_ver

    @property
    def body(self) -> bytes:
        return bytes(self.data[HEAD_SIZE:])

    def __repr__(self) -> str:
        return f"Descriptor(magic={self.magic!r}, length={self.length})"


def _locate(data: bytes, magic: bytes, min_len: int, revision: int) -> int | None:
    """Offset of the last ``magic`` in ``data`` if its header is usable."""
    pos = bytes(data).rfind(magic)
    if pos < 0 or pos + HEAD_SIZE > len(data):
        return None
    head = parse_head(data, pos)
    if head.is_incompatible(revision) or head.length < min_len:
        return None
    return pos


class Firmware:
    """A firmware image together with its list of descriptors."""

    def __init__(self, path: str | Path, data: bytes = b"", descriptors=()) -> None:
        self.path = Path(path)
        self.data = bytearray(data)
        self._descs: list[Descriptor] = []
        for desc in descriptors:
            self.add_desc(desc)

    @property
    def descriptor_count(self) -> int:
        return len(self._descs)

    @property
    def descriptor_size(self) -> int:
        return sum(desc.length for desc in self._descs)

    def descriptors(self) -> Iterator[Descriptor]:
        """Iterate over the descriptors in order."""
        return iter(list(self._descs))

    def find_desc(self, magic: bytes, min_len: int, compatible_revision: int) -> Descriptor | None:
        """Return the first descriptor matching magic, length and revision."""
        for desc in self._descs:
            if desc_matches(desc.head, magic, min_len, compatible_revision):
                return desc
        return None

    @staticmethod
    def _prepare(desc) -> Descriptor:
        return Descriptor(desc.data if isinstance(desc, Descriptor) else desc)

    def _index(self, desc: Descriptor) -> int:
        for index, item in enumerate(self._descs):
            if item is desc:
                return index
        raise FirmwareError(errno.ENOENT, "descriptor is not part of this firmware")

    def add_desc(self, desc) -> Descriptor:
        """Append a copy of ``desc`` and return the stored descriptor."""
        entry = self._prepare(desc)
        self._descs.append(entry)
        return entry

    def insert_desc_before(self, desc, pos: Descriptor) -> Descriptor:
        """Insert a copy of ``desc`` in front of ``pos`` and return it."""
        index = self._index(pos)
        entry = self._prepare(desc)
        self._descs.insert(index, entry)
        return entry

    def remove_desc(self, desc: Descriptor) -> None:
        """Drop ``desc`` from the descriptor list."""
        del self._descs[self._index(desc)]

    def resize_desc(self, desc: Descriptor, delta: int) -> Descriptor:
        """Grow or shrink ``desc`` by ``delta`` bytes and fix its length field."""
        self._index(desc)
        new_len = desc.length + delta
        if new_len < HEAD_SIZE:
            raise FirmwareError(errno.EINVAL, f"descriptor length {new_len} too small")
        if new_len > DESC_MAX_LENGTH:
            raise FirmwareError(errno.E2BIG, f"descriptor length {new_len} too large")
        if delta >= 0:
            desc.data.extend(bytes(delta))
        else:
            del desc.data[new_len:]
        struct.pack_into("<H", desc.data, _LENGTH_OFFSET, new_len)
        return desc

    def mod_tailroom(self, delta: int) -> int:
        """Grow (zero-filled) or cut the image tail; return where the change starts."""
        new_len = len(self.data) + delta
        if not size_check(new_len):
            raise FirmwareError(errno.EINVAL, f"firmware size {new_len} out of range")
        start = new_len - delta
        if delta >= 0:
            self.data.extend(bytes(delta))
        else:
            del self.data[new_len:]
        return start

    def mod_headroom(self, delta: int) -> bytearray:
        """Prepend ``delta`` zero bytes, or drop ``-delta`` leading bytes."""
        new_len = len(self.data) + delta
        if not size_check(new_len):
            raise FirmwareError(errno.EINVAL, f"firmware size {new_len} out of range")
        if delta >= 0:
            self.data[0:0] = bytes(delta)
        else:
            del self.data[:-delta]
        return self.data

    def apply_checksums(self) -> Descriptor:
        """Replace the checksum descriptor with fresh image and descriptor CRCs."""
        old = self.find_desc(CHK_MAGIC, CHK_DESC_SIZE, CHK_DESC_CUR_VER)
        if old is not None:
            self.remove_desc(old)
        fw_crc = crc32_le(_MASK32, self.data)
        crc = fw_crc
        for desc in self._descs:
            crc = crc32_le(crc, desc.data)
        body = struct.pack(CHK_BODY_FORMAT, fw_crc, crc)
        return self.add_desc(Descriptor.create(CHK_MAGIC, CHK_DESC_MIN_VER, CHK_DESC_CUR_VER, body))

    def check_crc32s(self) -> None:
        """Verify the checksum descriptor against the image and the descriptors."""
        chk = self.find_desc(CHK_MAGIC, CHK_DESC_SIZE, CHK_DESC_CUR_VER)
        if chk is None:
            raise FirmwareError(errno.ENODATA, "no checksum descriptor")
        fw_crc, hdr_crc = struct.unpack_from(CHK_BODY_FORMAT, chk.data, HEAD_SIZE)
        crc = crc32_le(_MASK32, self.data)
        if crc != fw_crc:
            raise FirmwareError(errno.EINVAL, "firmware image checksum mismatch")
        for desc in self._descs:
            if desc_matches(desc.head, CHK_MAGIC, CHK_DESC_SIZE, CHK_DESC_CUR_VER):
                continue
            crc = crc32_le(crc, desc.data)
        if crc != hdr_crc:
            raise FirmwareError(errno.EINVAL, "descriptor checksum mismatch")

    def store(self) -> None:
        """Refresh checksums and write image, descriptors and LAST to ``path``."""
        self.apply_checksums()
        for desc in self._descs:
            if desc.length > DESC_MAX_LENGTH:
                raise FirmwareError(errno.E2BIG, f"descriptor {desc.magic!r} too large")
        last = DescriptorHead(LAST_MAGIC, LAST_DESC_SIZE, LAST_DESC_MIN_VER, LAST_DESC_CUR_VER)
        blob = b"".join([bytes(self.data), *(bytes(d.data) for d in self._descs), last.pack()])
        try:
            self.path.write_bytes(blob)
        except OSError as exc:
            raise FirmwareError(exc.errno or errno.EIO, f"cannot write {self.path}: {exc}") from exc


def load_firmware(path: str | Path) -> Firmware:
    """Read a firmware file, split off its descriptors and verify any checksums."""
    target = Path(path)
    try:
        data = bytearray(target.read_bytes())
    except OSError as exc:
        raise FirmwareError(exc.errno or errno.EIO, f"cannot read {target}: {exc}") from exc

    otus = _locate(data, OTUS_MAGIC, OTUS_DESC_SIZE, OTUS_DESC_CUR_VER)
    last = _locate(data, LAST_MAGIC, LAST_DESC_SIZE, LAST_DESC_CUR_VER)
    if otus is None or last is None or otus > last:
        raise FirmwareError(errno.ENODATA, "no usable descriptor block found")

    firmware = Firmware(target)
    try:
        for offset, head in iter_descriptors(bytes(data), otus):
            firmware.add_desc(data[offset:offset + head.length])
    except ValueError as exc:
        raise FirmwareError(errno.EINVAL, str(exc)) from exc

    del data[otus:last + LAST_DESC_SIZE]
    firmware.data = data

    try:
        firmware.check_crc32s()
    except FirmwareError as exc:
        if exc.errno != errno.ENODATA:
            raise
    return firmware