"""Build wake-on-WLAN magic frames and inject them through a monitor interface."""

from __future__ import annotations

import getopt
import re
import socket
import sys
from collections.abc import Sequence

__all__ = [
    "parse_mac",
    "build_wol_frame",
    "radiotap_frame",
    "open_monitor",
    "send_frames",
    "main",
]

ETH_ALEN = 6
ETH_P_ALL = 0x0003
IFNAMSIZ = 16

_RADIOTAP_F_FRAG = 0x08
RADIOTAP_HEADER = bytes(
    [
        0x00, 0x00,              # radiotap version
        0x0E, 0x00,              # radiotap length
        0x02, 0xC0, 0x00, 0x00,  # bitmap: flags, tx and rx flags
        _RADIOTAP_F_FRAG,        # fragment if required
        0x00,                    # padding
        0x00, 0x00,              # rx and tx flags marking
        0x00, 0x00,              # the frame as injected
    ]
)

_WOL_HEADER = (
    bytes([0x08, 0x00, 0x00, 0x00])
    + b"\xff" * ETH_ALEN  # RA
    + b"\xff" * ETH_ALEN  # TA
    + b"\xff" * ETH_ALEN  # SA
    + bytes(2)
)
_SYNC = b"\xff" * ETH_ALEN
_MAC_REPEATS = 16
WOL_FRAME_LEN = 30 + ETH_ALEN + _MAC_REPEATS * ETH_ALEN

_MAC = re.compile(r"\s*([0-9a-fA-F]{1,2})" + r":\s*([0-9a-fA-F]{1,2})" * (ETH_ALEN - 1))
_NUMBER = re.compile(r"\s*([+-]?\d+)")


def parse_mac(text: str) -> bytes:
    """Parse a colon separated hardware address such as ``02:00:00:00:00:01``."""
    match = _MAC.match(text)
    if match is None:
        raise ValueError(f'invalid MAC: "{text}"')
    return bytes(int(part, 16) for part in match.groups())


def build_wol_frame(mac: bytes) -> bytes:
    """Return the magic wake-up data frame addressed to ``mac``."""
    mac = bytes(mac)
    if len(mac) != ETH_ALEN:
        raise ValueError(f"MAC address must be {ETH_ALEN} bytes")
    frame = _WOL_HEADER + _SYNC + mac * _MAC_REPEATS
    return frame + bytes(WOL_FRAME_LEN - len(frame))


def radiotap_frame(payload: bytes) -> bytes:
    """Prefix ``payload`` with the radiotap header used for injection."""
    return RADIOTAP_HEADER + bytes(payload)


def open_monitor(ifname: str) -> socket.socket:
    """Open a raw packet socket bound to the monitor interface ``ifname``."""
    try:
        socket.if_nametoindex(ifname)
    except OSError as exc:
        raise OSError(f"Monitor interface '{ifname}' does not exist") from exc
    family = getattr(socket, "AF_PACKET", None)
    if family is None:
        raise OSError("socket(PF_PACKET,SOCK_RAW): packet sockets are not supported here")
    try:
        sock = socket.socket(family, socket.SOCK_RAW, socket.htons(ETH_P_ALL))
    except OSError as exc:
        raise OSError(f"socket(PF_PACKET,SOCK_RAW): {exc.strerror or exc}") from exc
    try:
        sock.bind((ifname, 0))
    except OSError as exc:
        sock.close()
        raise OSError(f"bind(PACKET): {exc.strerror or exc}") from exc
    return sock


def send_frames(sock, frame: bytes, count: int, verbose: bool = False) -> int:
    """Inject ``frame`` with a radiotap header ``count`` times; return frames sent."""
    sent = 0
    for _ in range(count):
        try:
            sock.sendmsg([RADIOTAP_HEADER, bytes(frame)])
        except OSError as exc:
            print(f"sendmsg: {exc.strerror or exc}", file=sys.stderr)
            print("failed to send WOL packet.", file=sys.stderr)
            raise
        sent += 1
        if verbose:
            print("WOL packet sent.")
    return sent


def _usage() -> int:
    sys.stderr.write(
        "Usage:\n"
        "\twol -i monitor_dev -m DE:VI:CE:MA:CW:OL -n #num -v\n"
        "\nDescription:\n"
        "\tThis utility generates a WOL packet for the given [MAC] address "
        "and tries to injects it into [monitor_dev]\n"
    )
    return 1


def _parse_tries(text: str) -> int:
    match = _NUMBER.match(text)
    if match is None:
        raise ValueError(f'invalid tries: "{text}"')
    num = int(match.group(1))
    if not 1 <= num <= 1000:
        raise ValueError(f'invalid tries: "{text}"')
    return num


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry point: ``-i monitor_dev -m MAC [-n num] [-v]``."""
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        options, _rest = getopt.getopt(args, "m:i:n:v")
    except getopt.GetoptError as exc:
        print(str(exc), file=sys.stderr)
        return _usage()

    mac: bytes | None = None
    dev_name: str | None = None
    num = 10
    verbose = False
    for opt, value in options:
        try:
            if opt == "-i":
                dev_name = value[:IFNAMSIZ]
            elif opt == "-m":
                mac = parse_mac(value)
            elif opt == "-n":
                num = _parse_tries(value)
            elif opt == "-v":
                verbose = True
        except ValueError as exc:
            print(str(exc), file=sys.stderr)
            return _usage()

    if mac is None or dev_name is None:
        return _usage()

    if verbose:
        print(f"Opening monitor injection interface [{dev_name}].")
    try:
        sock = open_monitor(dev_name)
    except OSError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    with sock:
        if verbose:
            shown = ":".join(f"{b:2X}" for b in mac)
            print(f"Generating {num} WOL packet for [{shown}].")
        try:
            send_frames(sock, build_wol_frame(mac), num, verbose)
        except OSError:
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())