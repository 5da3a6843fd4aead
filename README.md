# otusfw

Command-line tools and a small library for two kinds of firmware data:

* **carl9170 firmware images** (AR9170 "otus" USB wireless devices). An image
  is followed by a chain of descriptors (`OTAR`, `TXSQ`, `MOTD`, `DBG`, `FIX`,
  `CHK`, `WOL`, closed by `LAST`) that tell the driver what the firmware
  supports. The tools show those descriptors, refresh their checksums, attach
  or remove a miniboot image and manage EEPROM overrides.
* **isci OEM parameter blobs** (`isci_firmware.bin`) for the SCU storage
  controller, with the settings for two controllers.

It also includes a small tool that injects wake-on-WLAN magic frames.

Only the Python standard library is needed (Python 3.10 or later).

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Commands

### Show what a firmware image contains

```
otus-fwinfo carl9170-1.fw
```

Prints the size of the firmware body, the number and total size of the
descriptors, and then each descriptor's header followed by its details:
supported features (with the miniboot size when that feature is set), beacon
address, TX queue layout, build date, message and release text, non-zero debug
registers, EEPROM overrides, wake-on-WLAN triggers and checksums. A descriptor
it does not know is reported as `Unknown Descriptor.` on standard error.

Loading fails if the file has no usable `OTAR`…`LAST` descriptor block, or if
it has a `CHK` descriptor whose checksums do not match.

### Add or refresh checksums

```
otus-checksum carl9170-1.fw
```

Computes the CRC32 of the firmware body and the CRC32 of the descriptor chain
(seeded with the body's CRC), replaces any `CHK` descriptor with a fresh one
and writes the file back, then prints `checksum applied.`.

### Attach or remove a miniboot image

```
otus-miniboot a carl9170-1.fw miniboot.fw
otus-miniboot d carl9170-1.fw
```

`a` puts the miniboot image in front of the firmware body, sets the miniboot
feature bit and records the image size in the `OTAR` descriptor; it refuses a
firmware that already has one. `d` strips the recorded number of bytes from
the front of the body and clears the flag and size again.

### Manage EEPROM overrides

```
otus-eeprom-fix carl9170-1.fw = ADDRESS VALUE MASK
otus-eeprom-fix carl9170-1.fw O ADDRESS VALUE MASK
otus-eeprom-fix carl9170-1.fw A ADDRESS VALUE MASK
otus-eeprom-fix carl9170-1.fw d ADDRESS
otus-eeprom-fix carl9170-1.fw D
```

Addresses, values and masks are hexadecimal (at most eight characters, an
optional `0x` prefix counts towards them); addresses must be a multiple of 4.
The overrides live in the `FIX` descriptor, which is created when the first
one is added. For an address that has no override yet, `=`, `O` and `A` all
add one as given; for an existing one, `=` replaces its value and mask while
`O` and `A` combine them with OR and AND. `d` removes the override for one
address and `D` removes the whole `FIX` descriptor. The file is written back
with fresh checksums.

### Send wake-on-WLAN frames

```
otus-wol -i mon0 -m 02:00:00:00:00:01 -n 10 -v
```

Builds an 802.11 magic frame for the given hardware address and injects it,
behind a radiotap header, the requested number of times (1 to 1000, default
10) through a monitor-mode interface. `-v` reports each step. This needs
Linux, an existing monitor interface and the privileges to open a raw packet
socket.

### Build the isci OEM parameter blob

```
isci-create-fw
isci-create-fw --manual -o isci_firmware.bin
```

Writes `isci_firmware.bin` (or the file given with `-o`/`--output`) with the
stock settings for two controllers in automatic port configuration mode;
`--manual` uses manual port configuration with one phy per port and per-phy
SAS addresses instead.

## Library use

```python
from otusfw.descriptors import OTUS_DESC_CUR_VER, OTUS_DESC_SIZE, OTUS_MAGIC
from otusfw.firmware import load_firmware
from otusfw.fwinfo import describe_firmware

firmware = load_firmware("carl9170-1.fw")
for desc in firmware.descriptors():
    print(desc.magic, desc.length)

print(describe_firmware(firmware))

otus = firmware.find_desc(OTUS_MAGIC, OTUS_DESC_SIZE, OTUS_DESC_CUR_VER)
firmware.store()  # refreshes checksums and writes the file back
```

* `otusfw.descriptors` — the descriptor format: the `Feature` enumeration,
  `DescriptorHead` (with `pack()`), `parse_head`, `iter_descriptors`,
  `supports`, `desc_matches`, `size_check`, and `encode_date` /
  `decode_date` for the packed build date.
* `otusfw.firmware` — `load_firmware`, `Firmware` (descriptor list editing
  with `add_desc`, `insert_desc_before`, `remove_desc`, `resize_desc`; body
  editing with `mod_headroom` and `mod_tailroom`; `apply_checksums`,
  `check_crc32s`, `store`), `Descriptor`, `crc32_le` and `FirmwareError`,
  whose `errno` attribute holds the matching error code.
* `otusfw.fwinfo` — `describe_descriptor` and `describe_firmware` return the
  report as lines or text.
* `otusfw.checksum` — `apply_checksum(path)`.
* `otusfw.miniboot` — `add_miniboot`, `remove_miniboot`, `MinibootError`.
* `otusfw.eeprom_fix` — `parse_value`, `parse_address`, `fix_entries`,
  `set_fix`, `delete_fix`, `delete_all`, `FixError`.
* `otusfw.wol` — `parse_mac`, `build_wol_frame`, `radiotap_frame`,
  `open_monitor`, `send_frames`.
* `otusfw.isci_orom` — `PortConfigurationMode`, `OromSettings`,
  `default_settings`, `build_orom` (returns the blob as bytes) and
  `write_blob`.

## What it does not do

The package edits and inspects existing firmware images; it does not build
carl9170 firmware, and it does not talk to the wireless device or the storage
controller. Descriptors are always read from and written to the end of the
firmware file itself; a separate descriptor file is not supported.