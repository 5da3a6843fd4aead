import struct

import pytest

from otusfw.descriptors import (
    CHK_MAGIC,
    DBG_BODY_FORMAT,
    DBG_DESC_CUR_VER,
    DBG_DESC_MIN_VER,
    DBG_MAGIC,
    FIX_DESC_CUR_VER,
    FIX_DESC_MIN_VER,
    FIX_ENTRY_FORMAT,
    FIX_MAGIC,
    HEAD_SIZE,
    MOTD_BODY_FORMAT,
    MOTD_DESC_CUR_VER,
    MOTD_DESC_MIN_VER,
    MOTD_MAGIC,
    OTUS_BODY_FORMAT,
    OTUS_DESC_CUR_VER,
    OTUS_DESC_MIN_VER,
    OTUS_DESC_SIZE,
    OTUS_MAGIC,
    VERSION_DAY,
    VERSION_MONTH,
    VERSION_YEAR,
    Feature,
    encode_date,
)
from otusfw.firmware import Descriptor, Firmware, load_firmware
from otusfw.fwinfo import describe_descriptor, describe_firmware, main

IMAGE = bytes(range(64))


def otus_desc(features=0, miniboot=0):
    body = struct.pack(
        OTUS_BODY_FORMAT, features, 0x200000, 0x1117F00, 256, miniboot, 1600, 8192, 32, 2, 4, 1
    )
    return Descriptor.create(OTUS_MAGIC, OTUS_DESC_MIN_VER, OTUS_DESC_CUR_VER, body)


def make_file(tmp_path, extra=(), features=0, miniboot=0):
    path = tmp_path / "fw.bin"
    fw = Firmware(path, IMAGE)
    fw.add_desc(otus_desc(features, miniboot))
    for desc in extra:
        fw.add_desc(desc)
    fw.store()
    return path


def test_otus_head_line_and_features():
    features = (1 << Feature.MINIBOOT) | (1 << Feature.PSM)
    lines = describe_descriptor(otus_desc(features, miniboot=512))
    assert lines[0] == (
        f">\tOTAR Descriptor: size:{OTUS_DESC_SIZE}, "
        f"compatible:{OTUS_DESC_MIN_VER}, version:{OTUS_DESC_CUR_VER}"
    )
    assert "\tFirmware upload pointer: 0x200000" in lines
    assert "\t\t 1 = CARL9170FW_MINIBOOT" in lines
    assert "\t\t\tminiboot size: 512 Bytes" in lines
    assert f"\t\t{int(Feature.PSM)} = CARL9170FW_PSM" in lines
    assert not any("CARL9170FW_WOL" in line for line in lines)


def test_otus_tx_queue_reservation():
    lines = describe_descriptor(otus_desc())
    assert f"\t=> {1600 * 32} Bytes are reserved for the TX queues" in lines


def test_fix_descriptor_lines():
    body = struct.pack(FIX_ENTRY_FORMAT, 0x100, 0xFFFF, 0xABCD)
    desc = Descriptor.create(FIX_MAGIC, FIX_DESC_MIN_VER, FIX_DESC_CUR_VER, body)
    lines = describe_descriptor(desc)
    assert lines[0].startswith(">\tFIX  Descriptor:")
    assert lines[1:] == ["\t\t0: 0x00000100 := 0x0000abcd (0x0000ffff)"]


def test_motd_date_and_text():
    date = encode_date(VERSION_YEAR, VERSION_MONTH, VERSION_DAY)
    body = struct.pack(MOTD_BODY_FORMAT, date, b"community AR9170", b"1.9.6")
    desc = Descriptor.create(MOTD_MAGIC, MOTD_DESC_MIN_VER, MOTD_DESC_CUR_VER, body)
    lines = describe_descriptor(desc)
    assert "\tFirmware Build Date (YYYY-MM-DD): 2012-07-07" in lines
    assert '\tFirmware Text:"community AR9170"' in lines
    assert '\tFirmware Release:"1.9.6"' in lines


def test_dbg_skips_zero_registers():
    body = struct.pack(DBG_BODY_FORMAT, 0x1234, 0, 0, 0, 0)
    desc = Descriptor.create(DBG_MAGIC, DBG_DESC_MIN_VER, DBG_DESC_CUR_VER, body)
    lines = describe_descriptor(desc)
    assert lines[1] == "\tFirmware Debug Registers/Counters"
    assert len(lines) == 3
    assert lines[2].endswith("= 0x00001234")


def test_unknown_descriptor_has_only_head():
    desc = Descriptor.create(b"ZZZZ", 1, 1, b"\0" * 4)
    assert describe_descriptor(desc) == [">\tZZZZ Descriptor: size:12, compatible:1, version:1"]


def test_describe_firmware_statistics(tmp_path):
    firmware = load_firmware(make_file(tmp_path))
    text = describe_firmware(firmware)
    assert text.startswith("General Firmware Statistics:\n")
    assert f"\tFirmware file size: {len(IMAGE)} Bytes" in text
    assert f"\t{firmware.descriptor_count} Descriptors in {firmware.descriptor_size} Bytes" in text
    assert "Detailed Descriptor Description:" in text
    assert "CHK" in text


def test_chk_descriptor_reports_crcs(tmp_path):
    firmware = load_firmware(make_file(tmp_path))
    chk = next(d for d in firmware.descriptors() if d.magic == CHK_MAGIC)
    fw_crc, hdr_crc = struct.unpack_from("<II", chk.data, HEAD_SIZE)
    lines = describe_descriptor(chk)
    assert f"\tFirmware Descriptor CRC32: {hdr_crc:08x}" in lines
    assert f"\tFirmware Image CRC32: {fw_crc:08x}" in lines


def test_main_prints_report(tmp_path, capsys):
    path = make_file(tmp_path, extra=[Descriptor.create(b"ZZZZ", 1, 1, b"\0" * 4)])
    assert main([str(path)]) == 0
    captured = capsys.readouterr()
    assert "General Firmware Statistics:" in captured.out
    assert ">\tZZZZ Descriptor" in captured.out
    assert "Unknown Descriptor." in captured.err


def test_main_without_arguments_shows_usage(capsys):
    assert main([]) == 1
    assert "Usage:" in capsys.readouterr().err


def test_main_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / "missing.bin")]) == 1
    assert "Failed to open firmware" in capsys.readouterr().err


@pytest.mark.parametrize("feature", list(Feature))
def test_each_feature_named(feature):
    lines = describe_descriptor(otus_desc(1 << feature))
    assert any(line.endswith(f" = CARL9170FW_{feature.name}") for line in lines)