"""Add or remove the miniboot image in front of a firmware image."""

from __future__ import annotations

import errno
import struct
import sys
from collections.abc import Sequence

from otusfw.descriptors import (
    HEAD_SIZE,
    OTUS_BODY_FORMAT,
    OTUS_DESC_CUR_VER,
    OTUS_DESC_SIZE,
    OTUS_MAGIC,
    Feature,
    supports,
)
from otusfw.firmware import Descriptor, Firmware, FirmwareError, load_firmware

__all__ = ["MinibootError", "add_miniboot", "remove_miniboot", "main"]

_FEATURE_SET = 0
_MINIBOOT_SIZE = 4


class MinibootError(Exception):
    """A miniboot operation failed; ``errno`` holds the matching error code."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.errno = code


def _otus(firmware: Firmware, missing: str) -> tuple[Descriptor, list[int]]:
    desc = firmware.find_desc(OTUS_MAGIC, OTUS_DESC_SIZE, OTUS_DESC_CUR_VER)
    if desc is None:
        raise MinibootError(errno.ENODATA, missing)
    return desc, list(struct.unpack_from(OTUS_BODY_FORMAT, desc.data, HEAD_SIZE))


def _write_otus(desc: Descriptor, fields: list[int]) -> None:
    struct.pack_into(OTUS_BODY_FORMAT, desc.data, HEAD_SIZE, *fields)


def add_miniboot(firmware: Firmware, image: bytes) -> Descriptor:
    """Put ``image`` in front of the firmware and flag it in the OTUS descriptor."""
    image = bytes(image)
    desc, fields = _otus(firmware, "No OTUS descriptor found")
    if supports(fields[_FEATURE_SET], Feature.MINIBOOT):
        raise MinibootError(errno.EEXIST, "Firmware has already a miniboot image.")
    if len(image) > 0xFFFF:
        raise MinibootError(errno.E2BIG, "Unable to add miniboot image.")
    try:
        data = firmware.mod_headroom(len(image))
    except FirmwareError as exc:
        raise MinibootError(exc.errno, "Unable to add miniboot image.") from exc
    data[:len(image)] = image
    fields[_FEATURE_SET] |= 1 << Feature.MINIBOOT
    fields[_MINIBOOT_SIZE] = len(image)
    _write_otus(desc, fields)
    return desc


def remove_miniboot(firmware: Firmware) -> bytes:
    """Strip the miniboot image from the firmware and return it."""
    desc, fields = _otus(firmware, "Firmware is not for USB devices.")
    if not supports(fields[_FEATURE_SET], Feature.MINIBOOT):
        raise MinibootError(errno.EINVAL, "Firmware has no miniboot image.")
    cut = fields[_MINIBOOT_SIZE]
    removed = bytes(firmware.data[:cut])
    try:
        firmware.mod_headroom(-cut)
    except FirmwareError as exc:
        raise MinibootError(exc.errno, "Unable to remove miniboot.") from exc
    fields[_FEATURE_SET] &= ~(1 << Feature.MINIBOOT) & 0xFFFFFFFF
    fields[_MINIBOOT_SIZE] = 0
    _write_otus(desc, fields)
    return removed


def _usage() -> None:
    sys.stderr.write(
        "Usage:\n"
        "\tminiboot ACTION FW-FILE [MB-FILE]\n"
        "\nDescription:\n"
        "\tFirmware concatenation utility.\n"
        "\nParameteres:\n"
        "\t'ACTION'\t= [a|d]\n"
        "\t | 'a'\t= Add miniboot firmware.\n"
        "\t * 'd'\t= remove miniboot firmware.\n"
        "\t'FW-FILE'\t= destination for the package.\n"
        "\t'MB-FILE'\t= extra firmware image.\n"
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry point: ``a FW-FILE MB-FILE`` adds, ``d FW-FILE`` removes."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not 2 <= len(args) <= 3:
        _usage()
        return 1

    action = args[0][:1]
    if not ((action == "a" and len(args) == 3) or (action == "d" and len(args) == 2)):
        _usage()
        return 1

    try:
        firmware = load_firmware(args[1])
    except FirmwareError as exc:
        print(f"miniboot action failed ({-exc.errno}).", file=sys.stderr)
        return 1

    try:
        if action == "a":
            try:
                with open(args[2], "rb") as handle:
                    image = handle.read()
            except OSError as exc:
                print(f"Failed to open file {args[2]} ({exc.errno}).", file=sys.stderr)
                return 1
            add_miniboot(firmware, image)
        else:
            remove_miniboot(firmware)
        firmware.store()
    except (MinibootError, FirmwareError) as exc:
        print(str(exc), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())