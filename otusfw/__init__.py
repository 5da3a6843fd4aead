"""Tools for carl9170 firmware descriptors, wake-on-WLAN frames and isci OEM parameter blobs."""

__version__ = "0.1.0"

__all__ = [
    "descriptors",
    "firmware",
    "fwinfo",
    "checksum",
    "miniboot",
    "eeprom_fix",
    "wol",
    "isci_orom",
]