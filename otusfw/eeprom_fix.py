"""Manage the EEPROM override entries kept in a firmware's FIX descriptor."""

from __future__ import annotations

import errno
import operator
import os
import re
import struct
import sys
from collections.abc import Callable, Sequence

from otusfw.descriptors import (
    FIX_DESC_CUR_VER,
    FIX_DESC_MIN_VER,
    FIX_DESC_SIZE,
    FIX_ENTRY_FORMAT,
    FIX_ENTRY_SIZE,
    FIX_MAGIC,
    HEAD_SIZE,
)
from otusfw.firmware import Descriptor, Firmware, FirmwareError, load_firmware

__all__ = [
    "FixError",
    "parse_value",
    "parse_address",
    "fix_entries",
    "set_fix",
    "delete_fix",
    "delete_all",
    "main",
]

_MASK32 = 0xFFFFFFFF
_HEX_WIDTH = 8
_HEX = re.compile(r"([+-]?)(0[xX](?=[0-9a-fA-F]))?([0-9a-fA-F]+)")

_OPERATIONS: dict[str, Callable[[int, int], int]] = {
    "=": lambda old, new: new,
    "O": operator.or_,
    "A": operator.and_,
}

# Number of arguments (after the program name) each switch takes.
_ARG_COUNTS = {"=": 5, "O": 5, "A": 5, "d": 3, "D": 2}


class FixError(Exception):
    """An override operation failed; ``errno`` holds the matching error code."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.errno = code


def parse_value(text: str) -> int:
    """Read a hexadecimal number of at most eight characters from ``text``."""
    head = text.lstrip()[:_HEX_WIDTH]
    match = _HEX.match(head)
    if match is None:
        raise FixError(errno.EINVAL, f'invalid hexadecimal value: "{text}"')
    value = int(match.group(3), 16)
    if match.group(1) == "-":
        value = -value
    return value & _MASK32


def parse_address(text: str) -> int:
    """Read an override address; it must be a multiple of four."""
    address = parse_value(text)
    if address & 3:
        raise FixError(errno.EINVAL, f"Address 0x{address:08x} is not a multiple of 4.")
    return address


def _find_fix(firmware: Firmware) -> Descriptor | None:
    return firmware.find_desc(FIX_MAGIC, FIX_DESC_SIZE, FIX_DESC_CUR_VER)


def _entries(desc: Descriptor) -> list[tuple[int, int, int]]:
    count = (desc.length - HEAD_SIZE) // FIX_ENTRY_SIZE
    raw = bytes(desc.data[HEAD_SIZE:HEAD_SIZE + count * FIX_ENTRY_SIZE])
    return list(struct.iter_unpack(FIX_ENTRY_FORMAT, raw))


def _slot(desc: Descriptor, address: int) -> int | None:
    for index, (entry_address, _mask, _value) in enumerate(_entries(desc)):
        if entry_address == address:
            return index
    return None


def fix_entries(firmware: Firmware) -> list[tuple[int, int, int]]:
    """Return the overrides as ``(address, mask, value)`` tuples, in stored order."""
    desc = _find_fix(firmware)
    return [] if desc is None else _entries(desc)


def _check_word(name: str, value: int) -> None:
    if not 0 <= value <= _MASK32:
        raise FixError(errno.EINVAL, f"{name} 0x{value:x} does not fit in 32 bits")


def set_fix(firmware: Firmware, option: str, address: int, value: int, mask: int) -> None:
    """Add an override, or combine it with an existing one for the same address.

    ``option`` is ``'='`` to replace, ``'O'`` to OR or ``'A'`` to AND the mask
    and value of an existing entry; a new entry is stored as given.
    """
    operation = _OPERATIONS.get(option)
    if operation is None:
        raise FixError(errno.EINVAL, f"Unknown option: '{option}'")
    _check_word("address", address)
    _check_word("value", value)
    _check_word("mask", mask)
    if address & 3:
        raise FixError(errno.EINVAL, f"Address 0x{address:08x} is not a multiple of 4.")

    desc = _find_fix(firmware)
    if desc is None:
        body = struct.pack(FIX_ENTRY_FORMAT, address, mask, value)
        firmware.add_desc(Descriptor.create(FIX_MAGIC, FIX_DESC_MIN_VER, FIX_DESC_CUR_VER, body))
        return

    index = _slot(desc, address)
    if index is None:
        try:
            firmware.resize_desc(desc, FIX_ENTRY_SIZE)
        except FirmwareError as exc:
            raise FixError(exc.errno, str(exc)) from exc
        struct.pack_into(
            FIX_ENTRY_FORMAT, desc.data, desc.length - FIX_ENTRY_SIZE, address, mask, value
        )
        return

    offset = HEAD_SIZE + index * FIX_ENTRY_SIZE
    _address, old_mask, old_value = struct.unpack_from(FIX_ENTRY_FORMAT, desc.data, offset)
    struct.pack_into(
        FIX_ENTRY_FORMAT,
        desc.data,
        offset,
        address,
        operation(old_mask, mask),
        operation(old_value, value),
    )


def delete_fix(firmware: Firmware, address: int) -> None:
    """Remove the override for ``address``."""
    desc = _find_fix(firmware)
    index = None if desc is None else _slot(desc, address)
    if desc is None or index is None:
        raise FixError(errno.EINVAL, f"Entry for 0x{address:08x} not found")
    offset = HEAD_SIZE + index * FIX_ENTRY_SIZE
    del desc.data[offset:offset + FIX_ENTRY_SIZE]
    desc.data.extend(bytes(FIX_ENTRY_SIZE))
    try:
        firmware.resize_desc(desc, -FIX_ENTRY_SIZE)
    except FirmwareError as exc:
        raise FixError(exc.errno, str(exc)) from exc


def delete_all(firmware: Firmware) -> None:
    """Drop the whole FIX descriptor, if there is one."""
    desc = _find_fix(firmware)
    if desc is not None:
        firmware.remove_desc(desc)


def _usage() -> None:
    sys.stderr.write(
        "Usage:\n"
        "\teeprom_fix FW-FILE SWITCH [ADDRESS [VALUE MASK]]\n"
        "\nDescription:\n"
        "\tThis utility manage a set of overrides which commands the driver\n"
        "\tto load customized EEPROM' data for all specified addresses.\n"
        "\nParameters:\n"
        "\t'FW-FILE'  = firmware file [basename]\n"
        "\t'SWITCH'   = [=|d|D]\n"
        "\t | '='       => add/set value for address\n"
        "\t | 'D'       => removes all EEPROM overrides\n"
        "\t * 'd'       => removed override for 'address'\n"
        "\n\t'ADDRESS'  = location of the EEPROM override\n"
        "\t\t     NB: must be a multiple of 4.\n"
        "\t\t     an address map can be found in eeprom.h.\n"
        "\n\t'VALUE'    = replacement value\n"
        "\t'MASK'     = mask for the value placement.\n\n"
    )


def _report(code: int) -> int:
    if code == errno.EINVAL:
        _usage()
    else:
        print(os.strerror(code), file=sys.stderr)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry point: ``FW-FILE SWITCH [ADDRESS [VALUE MASK]]``."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not 2 <= len(args) <= 5:
        return _report(errno.EINVAL)

    try:
        firmware = load_firmware(args[0])
    except FirmwareError as exc:
        print(f'Failed to open file "{args[0]}" ({-exc.errno}).', file=sys.stderr)
        return _report(exc.errno)

    option = args[1][:1]
    if option not in _ARG_COUNTS:
        print(f"Unknown option: '{option}'", file=sys.stderr)
        return 1
    if len(args) != _ARG_COUNTS[option]:
        return _report(errno.EINVAL)

    try:
        if option in ("=", "O", "A"):
            address = parse_address(args[2])
            value = parse_value(args[3])
            mask = parse_value(args[4])
            set_fix(firmware, option, address, value, mask)
        elif option == "d":
            delete_fix(firmware, parse_address(args[2]))
        else:
            delete_all(firmware)
    except (FixError, FirmwareError) as exc:
        print(str(exc), file=sys.stderr)
        return _report(exc.errno)

    try:
        firmware.store()
    except FirmwareError as exc:
        print(f"Failed to apply changes ({-exc.errno}).", file=sys.stderr)
        return _report(exc.errno)
    return 0


if __name__ == "__main__":
    sys.exit(main())