import struct

import pytest

from otusfw import descriptors as d
from otusfw.descriptors import (
    DescriptorHead,
    Feature,
    decode_date,
    desc_matches,
    encode_date,
    iter_descriptors,
    parse_head,
    size_check,
    supports,
)


def _desc(magic, body=b"", min_ver=1, cur_ver=1):
    head = DescriptorHead(magic, d.HEAD_SIZE + len(body), min_ver, cur_ver)
    return head.pack() + body


def test_pack_wire_bytes():
    head = DescriptorHead(d.OTUS_MAGIC, d.OTUS_DESC_SIZE, 6, 7)
    assert head.pack() == b"OTAR\x20\x00\x06\x07"


def test_pack_parse_round_trip():
    head = DescriptorHead(d.CHK_MAGIC, d.CHK_DESC_SIZE, 1, 2)
    data = b"\xaa\xbb" + head.pack()
    assert parse_head(data, 2) == head


def test_parse_head_short_data_raises():
    with pytest.raises(ValueError):
        parse_head(b"OTAR\x20", 0)


def test_parse_head_negative_offset_raises():
    with pytest.raises(ValueError):
        parse_head(b"OTAR\x20\x00\x06\x07", -1)


def test_bad_magic_length_raises():
    with pytest.raises(ValueError):
        DescriptorHead(b"OTA", 8, 1, 1)


def test_length_out_of_range_raises():
    with pytest.raises(ValueError):
        DescriptorHead(b"OTAR", 0x10000, 1, 1)


def test_supports_bits():
    feature_set = (1 << Feature.MINIBOOT) | (1 << Feature.RX_BA_FILTER)
    assert supports(feature_set, Feature.MINIBOOT)
    assert supports(feature_set, Feature.RX_BA_FILTER)
    assert not supports(feature_set, Feature.DUMMY_FEATURE)
    assert not supports(feature_set, Feature.WOL)


def test_feature_order_is_fixed():
    # The bit positions on the wire follow the enumeration order.
    assert supports(0b001, Feature.DUMMY_FEATURE)
    assert supports(0b010, Feature.MINIBOOT)
    assert supports(0b100, Feature.USB_INIT_FIRMWARE)
    assert not supports(0b100, Feature.MINIBOOT)
    assert supports(1 << 17, Feature.RX_BA_FILTER)
    assert d.FEATURE_NUM == 18


def test_desc_matches_accepts_compatible():
    head = DescriptorHead(d.OTUS_MAGIC, d.OTUS_DESC_SIZE, d.OTUS_DESC_MIN_VER, d.OTUS_DESC_CUR_VER)
    assert desc_matches(head, d.OTUS_MAGIC, d.OTUS_DESC_SIZE, d.OTUS_DESC_CUR_VER)


def test_desc_matches_rejects_wrong_magic():
    head = DescriptorHead(d.OTUS_MAGIC, d.OTUS_DESC_SIZE, 6, 7)
    assert not desc_matches(head, d.MOTD_MAGIC, d.OTUS_DESC_SIZE, 7)


def test_desc_matches_rejects_old_version():
    head = DescriptorHead(d.OTUS_MAGIC, d.OTUS_DESC_SIZE, 6, 6)
    assert not desc_matches(head, d.OTUS_MAGIC, d.OTUS_DESC_SIZE, 7)


def test_desc_matches_rejects_newer_minimum():
    head = DescriptorHead(d.OTUS_MAGIC, d.OTUS_DESC_SIZE, 8, 9)
    assert not desc_matches(head, d.OTUS_MAGIC, d.OTUS_DESC_SIZE, 7)


def test_desc_matches_rejects_short_length():
    head = DescriptorHead(d.OTUS_MAGIC, d.OTUS_DESC_SIZE - 4, 6, 7)
    assert not desc_matches(head, d.OTUS_MAGIC, d.OTUS_DESC_SIZE, 7)


def test_size_check_bounds():
    assert size_check(d.MIN_SIZE)
    assert size_check(d.MAX_SIZE)
    assert not size_check(d.MIN_SIZE - 1)
    assert not size_check(d.MAX_SIZE + 1)


def test_date_round_trip_of_version():
    value = encode_date(d.VERSION_YEAR, d.VERSION_MONTH, d.VERSION_DAY)
    assert decode_date(value) == (d.VERSION_YEAR, d.VERSION_MONTH, d.VERSION_DAY)


@pytest.mark.parametrize("year,month,day", [(10, 1, 1), (25, 12, 31), (11, 2, 28)])
def test_date_round_trip(year, month, day):
    assert decode_date(encode_date(year, month, day)) == (year, month, day)


def test_date_earliest_is_zero():
    assert encode_date(10, 1, 1) == 0


def test_encode_date_invalid_raises():
    with pytest.raises(ValueError):
        encode_date(9, 1, 1)


def test_iter_descriptors_stops_at_last():
    chain = (
        _desc(d.OTUS_MAGIC, b"\0" * (d.OTUS_DESC_SIZE - d.HEAD_SIZE), 6, 7)
        + _desc(d.TXSQ_MAGIC, struct.pack("<I", 0x1234))
        + _desc(d.LAST_MAGIC, b"", 1, 2)
        + _desc(d.MOTD_MAGIC, b"\0" * 48)
    )
    found = list(iter_descriptors(chain))
    assert [h.magic for _, h in found] == [d.OTUS_MAGIC, d.TXSQ_MAGIC]
    assert [off for off, _ in found] == [0, d.OTUS_DESC_SIZE]


def test_iter_descriptors_honours_offset():
    chain = b"\xff" * 5 + _desc(d.WOL_MAGIC, b"\0" * 4) + _desc(d.LAST_MAGIC)
    found = list(iter_descriptors(chain, 5))
    assert [(off, h.magic) for off, h in found] == [(5, d.WOL_MAGIC)]


def test_iter_descriptors_stops_at_bad_length():
    bad = DescriptorHead(d.DBG_MAGIC, 4, 1, 1).pack()
    chain = _desc(d.WOL_MAGIC, b"\0" * 4) + bad
    assert [h.magic for _, h in iter_descriptors(chain)] == [d.WOL_MAGIC]


def test_iter_descriptors_truncated_raises():
    data = DescriptorHead(d.MOTD_MAGIC, d.MOTD_DESC_SIZE, 1, 2).pack()
    with pytest.raises(ValueError):
        list(iter_descriptors(data))