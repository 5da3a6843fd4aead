import errno
import struct

import pytest

from otusfw.descriptors import (
    HEAD_SIZE,
    OTUS_BODY_FORMAT,
    OTUS_DESC_CUR_VER,
    OTUS_DESC_MIN_VER,
    OTUS_DESC_SIZE,
    OTUS_MAGIC,
    Feature,
    supports,
)
from otusfw.firmware import Descriptor, Firmware, load_firmware
from otusfw.miniboot import MinibootError, add_miniboot, main, remove_miniboot

IMAGE = bytes(range(64))
MINI = b"\xaa" * 32


def otus_desc():
    body = struct.pack(OTUS_BODY_FORMAT, 1, 0x200000, 0x1117F00, 256, 0, 1600, 8192, 32, 2, 4, 1)
    return Descriptor.create(OTUS_MAGIC, OTUS_DESC_MIN_VER, OTUS_DESC_CUR_VER, body)


def make_firmware(tmp_path):
    fw = Firmware(tmp_path / "fw.bin", IMAGE)
    fw.add_desc(otus_desc())
    return fw


def otus_fields(firmware):
    desc = firmware.find_desc(OTUS_MAGIC, OTUS_DESC_SIZE, OTUS_DESC_CUR_VER)
    return struct.unpack_from(OTUS_BODY_FORMAT, desc.data, HEAD_SIZE)


def test_add_sets_feature_and_size(tmp_path):
    fw = make_firmware(tmp_path)
    add_miniboot(fw, MINI)
    fields = otus_fields(fw)
    assert supports(fields[0], Feature.MINIBOOT)
    assert fields[4] == len(MINI)
    assert bytes(fw.data) == MINI + IMAGE


def test_add_then_remove_round_trip(tmp_path):
    fw = make_firmware(tmp_path)
    add_miniboot(fw, MINI)
    removed = remove_miniboot(fw)
    assert removed == MINI
    assert bytes(fw.data) == IMAGE
    fields = otus_fields(fw)
    assert not supports(fields[0], Feature.MINIBOOT)
    assert fields[4] == 0
    assert supports(fields[0], Feature.DUMMY_FEATURE)


def test_add_twice_fails(tmp_path):
    fw = make_firmware(tmp_path)
    add_miniboot(fw, MINI)
    with pytest.raises(MinibootError):
        add_miniboot(fw, MINI)
    assert bytes(fw.data) == MINI + IMAGE


def test_remove_without_miniboot(tmp_path):
    fw = make_firmware(tmp_path)
    with pytest.raises(MinibootError) as info:
        remove_miniboot(fw)
    assert info.value.errno == errno.EINVAL


def test_no_otus_descriptor(tmp_path):
    fw = Firmware(tmp_path / "fw.bin", IMAGE)
    with pytest.raises(MinibootError) as info:
        add_miniboot(fw, MINI)
    assert info.value.errno == errno.ENODATA
    with pytest.raises(MinibootError) as info:
        remove_miniboot(fw)
    assert info.value.errno == errno.ENODATA


def test_add_too_large_image(tmp_path):
    fw = make_firmware(tmp_path)
    with pytest.raises(MinibootError):
        add_miniboot(fw, b"\xaa" * 20000)
    assert bytes(fw.data) == IMAGE
    assert not supports(otus_fields(fw)[0], Feature.MINIBOOT)


def test_main_add_and_delete(tmp_path):
    fw = make_firmware(tmp_path)
    fw.store()
    mini_path = tmp_path / "mini.bin"
    mini_path.write_bytes(MINI)

    assert main(["a", str(fw.path), str(mini_path)]) == 0
    loaded = load_firmware(fw.path)
    assert bytes(loaded.data) == MINI + IMAGE
    assert otus_fields(loaded)[4] == len(MINI)

    assert main(["d", str(fw.path)]) == 0
    loaded = load_firmware(fw.path)
    assert bytes(loaded.data) == IMAGE
    assert not supports(otus_fields(loaded)[0], Feature.MINIBOOT)


def test_main_delete_without_miniboot(tmp_path, capsys):
    fw = make_firmware(tmp_path)
    fw.store()
    assert main(["d", str(fw.path)]) == 1
    assert "Firmware has no miniboot image." in capsys.readouterr().err


@pytest.mark.parametrize("args", [[], ["a", "fw.bin"], ["d", "fw.bin", "x"], ["x", "fw.bin"]])
def test_main_bad_arguments(args, capsys):
    assert main(args) == 1
    assert "Usage:" in capsys.readouterr().err


def test_main_missing_firmware(tmp_path, capsys):
    assert main(["d", str(tmp_path / "missing.bin")]) == 1
    assert "miniboot action failed" in capsys.readouterr().err