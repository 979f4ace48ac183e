"""Modbus gateway value codec and utility functions."""

from typing import List, Sequence, Tuple

WORD_MASK = 0xFFFF
INT16_MIN, INT16_MAX = -0x8000, 0x7FFF
INT32_MIN, INT32_MAX = -0x80000000, 0x7FFFFFFF


def decode_signed16(word: int) -> int:
    """
    Reinterpret one 16-bit register as a two's-complement integer.

    Only the low 16 bits of ``word`` are considered.
    """
    word &= WORD_MASK
    if word & 0x8000:
        return word - 0x10000
    return word


def decode_signed32(hi_word: int, lo_word: int) -> int:
    """
    Combine two registers (high word first) into a signed 32-bit integer.

    The value is ``(hi << 16) | lo``; when bit 31 is set the result is the
    negative two's-complement interpretation. Total over all 2^32 patterns.
    """
    value = ((hi_word & WORD_MASK) << 16) | (lo_word & WORD_MASK)
    if value & 0x80000000:
        return value - 0x100000000
    return value


def decode_boolean(bit, invert: bool = False) -> bool:
    """
    Decode a coil / discrete input reading.

    Args:
        bit: Raw reading (0/1 or a bool as returned by pymodbus)
        invert: True for active-low points

    Returns:
        ``bit == 1``, negated when the point is active-low
    """
    value = bit == 1
    return value != invert


def encode_signed16(value: int) -> int:
    """Encode a signed 16-bit integer as a raw register word."""
    if not INT16_MIN <= value <= INT16_MAX:
        raise ValueError(f"Value {value} does not fit a signed 16-bit register")
    return value & WORD_MASK


def encode_signed32(value: int) -> Tuple[int, int]:
    """Encode a signed 32-bit integer as (high word, low word)."""
    if not INT32_MIN <= value <= INT32_MAX:
        raise ValueError(f"Value {value} does not fit a signed 32-bit register pair")
    raw = value & 0xFFFFFFFF
    return (raw >> 16) & WORD_MASK, raw & WORD_MASK


def get_register_count_for_width(width: int) -> int:
    """
    Returns how many 16-bit Modbus registers an analog point of ``width`` bits needs.

    Raises:
        ValueError: If the width is not 16 or 32
    """
    if width == 16:
        return 1
    if width == 32:
        return 2
    raise ValueError(f"Unsupported decode width: {width} (expected 16 or 32)")


def decode_registers(registers: Sequence[int], width: int, word_order: str = "big") -> int:
    """
    Decode the registers of one analog point into a signed integer.

    Args:
        registers: Raw register words as read from the device
        width: Decode width in bits (16 or 32)
        word_order: "big" when the high word comes first, "little" otherwise

    Returns:
        Signed integer value
    """
    needed = get_register_count_for_width(width)
    if len(registers) < needed:
        raise ValueError(f"Need {needed} register(s) for a {width}-bit value, got {len(registers)}")

    if width == 16:
        return decode_signed16(registers[0])

    hi_word, lo_word = registers[0], registers[1]
    if word_order == "little":
        hi_word, lo_word = lo_word, hi_word
    return decode_signed32(hi_word, lo_word)


def parse_modbus_offset(offset_str: str) -> int:
    """
    Parse Modbus offset string supporting decimal and hexadecimal formats.

    Args:
        offset_str: Offset string (e.g., "123", "0x1234", "0X1234")

    Returns:
        Parsed integer offset

    Raises:
        ValueError: If offset cannot be parsed, is negative or exceeds 0xFFFF
    """
    if not isinstance(offset_str, str) or not offset_str.strip():
        raise ValueError(f"Offset must be a non-empty string, got: {offset_str!r}")

    offset_str = offset_str.strip()
    try:
        if offset_str.lower().startswith("0x"):
            address = int(offset_str, 16)
        else:
            address = int(offset_str, 10)
    except ValueError as conv_err:
        raise ValueError(
            f"Cannot convert offset '{offset_str}' to integer (supports decimal or 0x hex): {conv_err}"
        ) from conv_err

    if address < 0 or address > WORD_MASK:
        raise ValueError(f"Offset must be within 0..65535, got: {address}")

    return address


def calculate_stagger_offsets(unit_count: int, stagger_ms: int) -> List[float]:
    """
    Start delays (seconds) for concurrent endpoint units.

    Unit ``i`` starts ``i * stagger_ms`` after the first one so reconnect
    attempts are not synchronized.
    """
    if stagger_ms < 0:
        raise ValueError(f"stagger_ms must be non-negative, got: {stagger_ms}")
    return [(i * stagger_ms) / 1000.0 for i in range(unit_count)]
