"""Show the descriptors of a firmware image in a human readable form."""

from __future__ import annotations

import errno
import os
import struct
import sys
from collections.abc import Callable, Sequence

from otusfw.descriptors import (
    CHK_BODY_FORMAT,
    CHK_DESC_CUR_VER,
    CHK_DESC_SIZE,
    CHK_MAGIC,
    DBG_BODY_FORMAT,
    DBG_DESC_CUR_VER,
    DBG_DESC_SIZE,
    DBG_MAGIC,
    FIX_DESC_CUR_VER,
    FIX_DESC_SIZE,
    FIX_ENTRY_FORMAT,
    FIX_ENTRY_SIZE,
    FIX_MAGIC,
    HEAD_SIZE,
    LAST_DESC_CUR_VER,
    LAST_DESC_SIZE,
    LAST_MAGIC,
    MOTD_BODY_FORMAT,
    MOTD_DESC_CUR_VER,
    MOTD_DESC_SIZE,
    MOTD_MAGIC,
    OTUS_BODY_FORMAT,
    OTUS_DESC_CUR_VER,
    OTUS_DESC_SIZE,
    OTUS_MAGIC,
    TXSQ_BODY_FORMAT,
    TXSQ_DESC_CUR_VER,
    TXSQ_DESC_SIZE,
    TXSQ_MAGIC,
    WOL_BODY_FORMAT,
    WOL_DESC_CUR_VER,
    WOL_DESC_SIZE,
    WOL_MAGIC,
    Feature,
    decode_date,
    desc_matches,
    supports,
)
from otusfw.firmware import Descriptor, Firmware, FirmwareError, load_firmware

__all__ = ["describe_descriptor", "describe_firmware", "main"]

_Extra = Callable[[Descriptor], list[str]]


def _body(desc: Descriptor, fmt: str) -> tuple:
    return struct.unpack_from(fmt, desc.data, HEAD_SIZE)


def _miniboot_info(desc: Descriptor) -> list[str]:
    miniboot_size = _body(desc, OTUS_BODY_FORMAT)[4]
    return [f"\t\t\tminiboot size: {miniboot_size} Bytes"]


_OTUS_FEATURES: list[tuple[int, str, _Extra | None]] = [
    (
        int(feature),
        f"CARL9170FW_{feature.name}",
        _miniboot_info if feature is Feature.MINIBOOT else None,
    )
    for feature in Feature
]

_WOL_TRIGGERS: list[tuple[int, str, _Extra | None]] = [
    (1, "CARL9170_WOL_DISCONNECT", None),
    (2, "CARL9170_WOL_MAGIC_PKT", None),
]


def _feature_lines(
    desc: Descriptor, bitmap: int, features: list[tuple[int, str, _Extra | None]]
) -> list[str]:
    lines = []
    for ident, name, extra in features:
        if not supports(bitmap, ident):
            continue
        lines.append(f"\t\t{ident:2d} = {name}")
        if extra is not None:
            lines.extend(extra(desc))
    return lines


def _show_otus(desc: Descriptor) -> list[str]:
    (
        feature_set,
        fw_address,
        bcn_addr,
        bcn_len,
        _miniboot_size,
        tx_frag_len,
        rx_max_frame_len,
        tx_descs,
        cmd_bufs,
        api_ver,
        vif_num,
    ) = _body(desc, OTUS_BODY_FORMAT)
    lines = [
        f"\tFirmware upload pointer: 0x{fw_address:x}",
        f"\tBeacon Address: {bcn_addr:x}, (reserved:{bcn_len} Bytes)",
        f"\tTX DMA chunk size:{tx_frag_len} Bytes, TX DMA chunks:{tx_descs}",
        f"\t=> {tx_frag_len * tx_descs} Bytes are reserved for the TX queues",
        f"\tCommand response buffers:{cmd_bufs}",
        f"\tMax. RX stream block size:{rx_max_frame_len} Bytes",
        f"\tSupported Firmware Interfaces: {vif_num}",
        f"\tFirmware API Version: {api_ver}",
        f"\tSupported Features: (raw:{feature_set:08x})",
    ]
    lines.extend(_feature_lines(desc, feature_set, _OTUS_FEATURES))
    return lines


def _c_string(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("latin-1")


def _show_motd(desc: Descriptor) -> list[str]:
    fw_date, text, release = _body(desc, MOTD_BODY_FORMAT)
    year, month, day = decode_date(fw_date)
    return [
        f"\tFirmware Build Date (YYYY-MM-DD): 2{year:03d}-{month:02d}-{day:02d}",
        f'\tFirmware Text:"{_c_string(text)}"',
        f'\tFirmware Release:"{_c_string(release)}"',
    ]


def _show_fix(desc: Descriptor) -> list[str]:
    count = (desc.length - HEAD_SIZE) // FIX_ENTRY_SIZE
    raw = bytes(desc.data[HEAD_SIZE:HEAD_SIZE + count * FIX_ENTRY_SIZE])
    return [
        f"\t\t{index}: 0x{address:08x} := 0x{value:08x} (0x{mask:08x})"
        for index, (address, mask, value) in enumerate(struct.iter_unpack(FIX_ENTRY_FORMAT, raw))
    ]


_DBG_NAMES = ("bogoclock    ", "counter      ", "rx total     ", "rx overrun   ", "rx filer     ")


def _show_dbg(desc: Descriptor) -> list[str]:
    lines = ["\tFirmware Debug Registers/Counters"]
    for name, value in zip(_DBG_NAMES, _body(desc, DBG_BODY_FORMAT)):
        if value:
            lines.append(f"\t\t{name} = 0x{value:08x}")
    return lines


def _show_txsq(desc: Descriptor) -> list[str]:
    (seq_table_addr,) = _body(desc, TXSQ_BODY_FORMAT)
    return [f"\t\ttx-seq table addr: 0x{seq_table_addr:x}"]


def _show_wol(desc: Descriptor) -> list[str]:
    (triggers,) = _body(desc, WOL_BODY_FORMAT)
    lines = [f"\tSupported WOWLAN triggers: (raw:{triggers:08x})"]
    lines.extend(_feature_lines(desc, triggers, _WOL_TRIGGERS))
    return lines


def _show_chk(desc: Descriptor) -> list[str]:
    fw_crc, hdr_crc = _body(desc, CHK_BODY_FORMAT)
    return [
        f"\tFirmware Descriptor CRC32: {hdr_crc:08x}",
        f"\tFirmware Image CRC32: {fw_crc:08x}",
    ]


def _show_last(desc: Descriptor) -> list[str]:
    return []


_KNOWN_MAGICS: list[tuple[bytes, int, int, Callable[[Descriptor], list[str]]]] = [
    (OTUS_MAGIC, OTUS_DESC_CUR_VER, OTUS_DESC_SIZE, _show_otus),
    (TXSQ_MAGIC, TXSQ_DESC_CUR_VER, TXSQ_DESC_SIZE, _show_txsq),
    (MOTD_MAGIC, MOTD_DESC_CUR_VER, MOTD_DESC_SIZE, _show_motd),
    (DBG_MAGIC, DBG_DESC_CUR_VER, DBG_DESC_SIZE, _show_dbg),
    (FIX_MAGIC, FIX_DESC_CUR_VER, FIX_DESC_SIZE, _show_fix),
    (CHK_MAGIC, CHK_DESC_CUR_VER, CHK_DESC_SIZE, _show_chk),
    (WOL_MAGIC, WOL_DESC_CUR_VER, WOL_DESC_SIZE, _show_wol),
    (LAST_MAGIC, LAST_DESC_CUR_VER, LAST_DESC_SIZE, _show_last),
]


def _handler_for(desc: Descriptor) -> Callable[[Descriptor], list[str]] | None:
    head = desc.head
    for magic, min_ver, size, handler in _KNOWN_MAGICS:
        if desc_matches(head, magic, size, min_ver):
            return handler
    return None


def _head_line(desc: Descriptor) -> str:
    magic = "".join(chr(b) if 0x20 <= b < 0x7F else " " for b in desc.magic)
    return (
        f">\t{magic} Descriptor: size:{desc.length}, "
        f"compatible:{desc.min_ver}, version:{desc.cur_ver}"
    )


def describe_descriptor(desc: Descriptor) -> list[str]:
    """Return the header line and, for a known descriptor, its details."""
    lines = [_head_line(desc)]
    handler = _handler_for(desc)
    if handler is not None:
        lines.extend(handler(desc))
    return lines


def _statistics(firmware: Firmware) -> list[str]:
    return [
        "General Firmware Statistics:",
        f"\tFirmware file size: {len(firmware.data)} Bytes",
        f"\t{firmware.descriptor_count} Descriptors in {firmware.descriptor_size} Bytes",
    ]


def describe_firmware(firmware: Firmware) -> str:
    """Return the full report for ``firmware`` as text."""
    lines = _statistics(firmware)
    lines += ["", "Detailed Descriptor Description:"]
    for desc in firmware.descriptors():
        lines.extend(describe_descriptor(desc))
        lines.append("")
    return "\n".join(lines) + "\n"


def _usage() -> None:
    sys.stderr.write(
        "Usage:\n"
        "\tfwinfo FW-FILE\n"
        "\nDescription:\n"
        "\tDisplay firmware descriptors information in a human readable form.\n"
        "\nParameteres:\n"
        "\t 'FW-FILE'\t= firmware file/base-name\n\n"
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry point: print the descriptors of one firmware file."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        _usage()
        return 1

    try:
        firmware = load_firmware(args[0])
    except FirmwareError as exc:
        print(f'Failed to open firmware "{args[0]}" ({-exc.errno}).', file=sys.stderr)
        if exc.errno == errno.EINVAL:
            _usage()
        else:
            print(os.strerror(exc.errno), file=sys.stderr)
        return 1

    for line in _statistics(firmware):
        print(line)
    print()
    print("Detailed Descriptor Description:")
    for desc in firmware.descriptors():
        print(_head_line(desc))
        handler = _handler_for(desc)
        if handler is None:
            print("Unknown Descriptor.", file=sys.stderr)
        else:
            for line in handler(desc):
                print(line)
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())