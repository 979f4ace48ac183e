# tests/pytest/codec/test_value_codec.py
import pytest

from modbus_gateway.modbus_gateway_utils import (
    calculate_stagger_offsets,
    decode_boolean,
    decode_registers,
    decode_signed16,
    decode_signed32,
    encode_signed16,
    encode_signed32,
    get_register_count_for_width,
    parse_modbus_offset,
)


@pytest.mark.parametrize("hi, lo, expected", [
    (0xFFFF, 0xFFFF, -1),
    (0x0000, 0x0001, 1),
    (0x8000, 0x0000, -2**31),
    (0x7FFF, 0xFFFF, 2**31 - 1),
    (0x0000, 0x0400, 1024),
    (0x0001, 0x0000, 65536),
])
def test_decode_signed32(hi, lo, expected):
    assert decode_signed32(hi, lo) == expected


@pytest.mark.parametrize("value", [-2**31, -65536, -1, 0, 1, 1024, 2**31 - 1])
def test_signed32_round_trip(value):
    assert decode_signed32(*encode_signed32(value)) == value


@pytest.mark.parametrize("word, expected", [
    (0x0000, 0),
    (0x7FFF, 32767),
    (0x8000, -32768),
    (0xFFFF, -1),
    (0x1FFFF, -1),  # only the low 16 bits count
])
def test_decode_signed16(word, expected):
    assert decode_signed16(word) == expected


def test_encode_signed16_rejects_out_of_range():
    assert encode_signed16(-1) == 0xFFFF
    with pytest.raises(ValueError):
        encode_signed16(40000)
    with pytest.raises(ValueError):
        encode_signed32(2**31)


@pytest.mark.parametrize("bit, invert, expected", [
    (1, False, True),
    (0, False, False),
    (True, False, True),
    (1, True, False),
    (0, True, True),
    (False, True, True),
])
def test_decode_boolean(bit, invert, expected):
    assert decode_boolean(bit, invert) is expected


def test_register_count_for_width():
    assert get_register_count_for_width(16) == 1
    assert get_register_count_for_width(32) == 2
    with pytest.raises(ValueError):
        get_register_count_for_width(8)


def test_decode_registers_word_order():
    assert decode_registers([0x0001, 0x0000], 32) == 65536
    assert decode_registers([0x0001, 0x0000], 32, word_order="little") == 1
    assert decode_registers([0xFFFE], 16) == -2


def test_decode_registers_needs_enough_words():
    with pytest.raises(ValueError):
        decode_registers([0x0001], 32)


@pytest.mark.parametrize("offset, expected", [
    ("0", 0),
    ("23322", 23322),
    ("0x25", 37),
    (" 0XFFFF ", 0xFFFF),
])
def test_parse_modbus_offset(offset, expected):
    assert parse_modbus_offset(offset) == expected


@pytest.mark.parametrize("offset", ["", "abc", "-1", "65536", 12])
def test_parse_modbus_offset_invalid(offset):
    with pytest.raises(ValueError):
        parse_modbus_offset(offset)


def test_calculate_stagger_offsets():
    assert calculate_stagger_offsets(3, 200) == [0.0, 0.2, 0.4]
    assert calculate_stagger_offsets(0, 200) == []
    with pytest.raises(ValueError):
        calculate_stagger_offsets(2, -1)
