"""Add or refresh the checksum descriptor of a firmware file."""

from __future__ import annotations

import errno
import sys
from collections.abc import Sequence
from pathlib import Path

from otusfw.firmware import Firmware, FirmwareError, load_firmware

__all__ = ["apply_checksum", "main"]


def apply_checksum(path: str | Path) -> Firmware:
    """Load ``path``, recompute its checksums and write it back."""
    firmware = load_firmware(path)
    firmware.store()
    return firmware


def _usage() -> None:
    sys.stderr.write(
        "Usage:\n"
        "\tchecksum FW-FILE\n"
        "\nDescription:\n"
        "\tThis simple utility adds/updates various checksums.\n"
        "\nParameteres:\n"
        "\t 'FW-FILE'\t= firmware name\n\n"
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry point: apply checksums to one firmware file."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        _usage()
        return 1

    try:
        firmware = load_firmware(args[0])
    except FirmwareError as exc:
        print(f'Failed to open file "{args[0]}" ({-exc.errno}).', file=sys.stderr)
        if exc.errno == errno.EINVAL:
            _usage()
        return 1

    try:
        firmware.store()
    except FirmwareError as exc:
        print(f"Failed to apply checksum ({-exc.errno}).", file=sys.stderr)
        if exc.errno == errno.EINVAL:
            _usage()
        return 1

    print("checksum applied.")
    return 0


if __name__ == "__main__":
    sys.exit(main())