"""Build the OEM parameter block ("isci_firmware.bin") for the Intel SCU controller."""

from __future__ import annotations

import argparse
import enum
import struct
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

__all__ = [
    "PortConfigurationMode",
    "OromSettings",
    "default_settings",
    "build_orom",
    "write_blob",
    "main",
]

FW_NAME = "isci/isci_firmware.bin"
BLOB_NAME = "isci_firmware.bin"

ROM_SIGNATURE = b"ISCUOEMB"
ROM_SIG_SIZE = 8

ROM_VER_1_0 = 0x10
ROM_VER_1_1 = 0x11
ROM_VER_1_3 = 0x13
ROM_VER_LATEST = ROM_VER_1_3

MAX_PORTS = 4
MAX_PHYS = 4
MAX_CONTROLLERS = 2

# signature, total_block_length, hdr_length, version, preboot_source,
# num_elements, element_length, reserved
_HEADER = struct.Struct(f"<{ROM_SIG_SIZE}sHBBBBH8s")
# mode_type, max_concurr_spin_up, do_enable_ssc, cable_selection_mask
_CONTROLLER = struct.Struct("<BBBB")
_PORTS = struct.Struct(f"<{MAX_PORTS}B")
# sas_address.high, sas_address.low, afe_tx_amp_control0..3
_PHY = struct.Struct("<IIIIII")

CONTROLLER_PARAMS_SIZE = _CONTROLLER.size + _PORTS.size + MAX_PHYS * _PHY.size
HEADER_SIZE = _HEADER.size
OROM_SIZE = HEADER_SIZE + MAX_CONTROLLERS * CONTROLLER_PARAMS_SIZE

DEFAULT_AFE_TX_AMP_CONTROL = (0x000BDD08, 0x000FFC00, 0x000B7C09, 0x000AFC6E)

_APC_SAS_ADDR = (
    (0x5FCFFFFF00000001,) * MAX_PHYS,
    (0x5FCFFFFF00000002,) * MAX_PHYS,
)
_MPC_SAS_ADDR = (
    (0x5FCFFFFFF0000001, 0x5FCFFFFFF0000002, 0x5FCFFFFFF0000003, 0x5FCFFFFFF0000004),
    (0x5FCFFFFFF0000005, 0x5FCFFFFFF0000006, 0x5FCFFFFFF0000007, 0x5FCFFFFFF0000008),
)
_MPC_PHY_MASK = ((1, 2, 4, 8), (1, 2, 4, 8))


class PortConfigurationMode(enum.IntEnum):
    """How the controller groups its phys into ports."""

    MANUAL = 0
    AUTOMATIC = 1


def _grid(rows: Sequence[Sequence[int]], width: int, name: str, limit: int) -> tuple[tuple[int, ...], ...]:
    grid = tuple(tuple(int(v) for v in row) for row in rows)
    if len(grid) != MAX_CONTROLLERS or any(len(row) != width for row in grid):
        raise ValueError(f"{name} must be {MAX_CONTROLLERS} rows of {width} values")
    for row in grid:
        for value in row:
            if not 0 <= value <= limit:
                raise ValueError(f"{name} value {value:#x} out of range")
    return grid


def _zero_grid(width: int) -> tuple[tuple[int, ...], ...]:
    return tuple((0,) * width for _ in range(MAX_CONTROLLERS))


@dataclass
class OromSettings:
    """Per-controller OEM parameters written into the option ROM block."""

    mode_type: PortConfigurationMode = PortConfigurationMode.AUTOMATIC
    phy_mask: Sequence[Sequence[int]] = field(default_factory=lambda: _zero_grid(MAX_PORTS))
    sas_addr: Sequence[Sequence[int]] = _APC_SAS_ADDR
    cable_selection: Sequence[Sequence[int]] = field(default_factory=lambda: _zero_grid(MAX_PHYS))
    max_concurrent_spin_up: int = 1
    enable_ssc: int = 0
    afe_tx_amp_control: Sequence[int] = DEFAULT_AFE_TX_AMP_CONTROL
    signature: bytes = ROM_SIGNATURE
    version: int = ROM_VER_LATEST
    num_elements: int = MAX_CONTROLLERS

    def __post_init__(self) -> None:
        self.mode_type = PortConfigurationMode(self.mode_type)
        self.phy_mask = _grid(self.phy_mask, MAX_PORTS, "phy_mask", 0xFF)
        self.sas_addr = _grid(self.sas_addr, MAX_PHYS, "sas_addr", 0xFFFFFFFFFFFFFFFF)
        self.cable_selection = _grid(self.cable_selection, MAX_PHYS, "cable_selection", 0xFF)
        self.afe_tx_amp_control = tuple(int(v) for v in self.afe_tx_amp_control)
        if len(self.afe_tx_amp_control) != 4:
            raise ValueError("afe_tx_amp_control must hold 4 values")
        if any(not 0 <= v <= 0xFFFFFFFF for v in self.afe_tx_amp_control):
            raise ValueError("afe_tx_amp_control value out of range")
        for name in ("max_concurrent_spin_up", "enable_ssc", "version", "num_elements"):
            if not 0 <= getattr(self, name) <= 0xFF:
                raise ValueError(f"{name} out of range")
        self.signature = bytes(self.signature)
        if len(self.signature) > ROM_SIG_SIZE:
            raise ValueError(f"signature longer than {ROM_SIG_SIZE} bytes")


def default_settings(manual: bool = False) -> OromSettings:
    """Return the stock settings: automatic port configuration, or manual if asked."""
    if manual:
        return OromSettings(
            mode_type=PortConfigurationMode.MANUAL,
            phy_mask=_MPC_PHY_MASK,
            sas_addr=_MPC_SAS_ADDR,
        )
    return OromSettings()


def _cable_selection_mask(cables: Sequence[int]) -> int:
    mask = 0
    for phy_idx, cable in enumerate(cables):
        mask |= (cable & 1) << phy_idx
        mask |= (cable & 2) << (phy_idx + 3)
    return mask & 0xFF


def _controller_block(settings: OromSettings, index: int) -> bytes:
    parts = [
        _CONTROLLER.pack(
            int(settings.mode_type),
            settings.max_concurrent_spin_up,
            settings.enable_ssc,
            _cable_selection_mask(settings.cable_selection[index]),
        ),
        _PORTS.pack(*settings.phy_mask[index]),
    ]
    for address in settings.sas_addr[index]:
        parts.append(
            _PHY.pack(address >> 32, address & 0xFFFFFFFF, *settings.afe_tx_amp_control)
        )
    return b"".join(parts)


def build_orom(settings: OromSettings | None = None) -> bytes:
    """Return the packed OEM parameter block for ``settings``."""
    settings = settings or default_settings()
    header = _HEADER.pack(
        settings.signature,
        OROM_SIZE,
        HEADER_SIZE,
        settings.version,
        0,
        settings.num_elements,
        0,
        bytes(8),
    )
    return header + b"".join(
        _controller_block(settings, index) for index in range(MAX_CONTROLLERS)
    )


def write_blob(path: str | Path = BLOB_NAME, settings: OromSettings | None = None) -> Path:
    """Write the parameter block to ``path`` and return the path."""
    target = Path(path)
    target.write_bytes(build_orom(settings))
    return target


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry point: write the parameter block file."""
    parser = argparse.ArgumentParser(
        prog="isci-create-fw", description="Create the SCU OEM parameter blob."
    )
    parser.add_argument(
        "-o", "--output", default=BLOB_NAME, help=f"output file (default: {BLOB_NAME})"
    )
    parser.add_argument(
        "--manual",
        action="store_true",
        help="use manual port configuration instead of automatic",
    )
    args = parser.parse_args(argv)
    try:
        write_blob(args.output, default_settings(args.manual))
    except OSError as exc:
        print(f"Write data failed: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())