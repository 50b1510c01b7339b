"""Minimal protobuf wire-format primitives.

Only what the otpauth-migration payload needs: varints, tags and
length-delimited fields. Every reader takes ``(buf, pos)`` and returns
``(value, bytes_consumed)`` so callers advance their own cursor.
"""
from typing import Iterator, Tuple

from .errors import EncodeError, TruncatedMessageError, UnsupportedWireTypeError, VarintOverflowError
from .models import ProtobufField, WireType

MAX_VARINT_BYTES = 10
MAX_VARINT = (1 << 64) - 1


def read_varint(buf: bytes, pos: int = 0) -> Tuple[int, int]:
    """
    Read a base-128 varint starting at ``pos``.

    Raises:
        VarintOverflowError: More than 10 bytes, or a 10th byte other than 1
        TruncatedMessageError: Buffer ends before the last byte
    """
    value = 0
    consumed = 0
    while True:
        if consumed == MAX_VARINT_BYTES:
            raise VarintOverflowError(f"Varint at byte {pos} is longer than {MAX_VARINT_BYTES} bytes")
        if pos + consumed >= len(buf):
            raise TruncatedMessageError(f"Varint at byte {pos} runs past end of buffer")
        byte = buf[pos + consumed]
        consumed += 1
        if consumed == MAX_VARINT_BYTES and byte != 1:
            raise VarintOverflowError(f"Varint at byte {pos} has invalid terminal byte 0x{byte:02x}")
        value |= (byte & 0x7F) << (7 * (consumed - 1))
        if not byte & 0x80:
            return value, consumed


def read_tag(buf: bytes, pos: int = 0) -> Tuple[Tuple[int, int], int]:
    tag, consumed = read_varint(buf, pos)
    return (tag >> 3, tag & 0x7), consumed


def read_length_delimited(buf: bytes, pos: int = 0) -> Tuple[bytes, int]:
    length, consumed = read_varint(buf, pos)
    start = pos + consumed
    end = start + length
    if end > len(buf):
        raise TruncatedMessageError(f"Field at byte {pos} claims {length} bytes, only {len(buf) - start} left")
    return bytes(buf[start:end]), consumed + length


def _read_fixed(buf: bytes, pos: int, width: int) -> Tuple[bytes, int]:
    if pos + width > len(buf):
        raise TruncatedMessageError(f"Fixed{width * 8} field at byte {pos} runs past end of buffer")
    return bytes(buf[pos:pos + width]), width


def read_field(buf: bytes, pos: int = 0) -> Tuple[ProtobufField, int]:
    """
    Read one tag and its payload.

    Group markers carry no payload and come back with ``value=None``.

    Raises:
        UnsupportedWireTypeError: Wire type 6 or 7
    """
    (field_number, wire_type), consumed = read_tag(buf, pos)
    try:
        wire_type = WireType(wire_type)
    except ValueError:
        raise UnsupportedWireTypeError(wire_type, pos) from None
    cursor = pos + consumed

    if wire_type == WireType.VARINT:
        value, used = read_varint(buf, cursor)
    elif wire_type == WireType.FIXED64:
        value, used = _read_fixed(buf, cursor, 8)
    elif wire_type == WireType.LENGTH_DELIMITED:
        value, used = read_length_delimited(buf, cursor)
    elif wire_type == WireType.FIXED32:
        value, used = _read_fixed(buf, cursor, 4)
    else:
        value, used = None, 0

    return ProtobufField(field_number, wire_type, value), consumed + used


def iter_fields(buf: bytes) -> Iterator[ProtobufField]:
    pos = 0
    while pos < len(buf):
        parsed, consumed = read_field(buf, pos)
        pos += consumed
        yield parsed


def write_varint(value: int) -> bytes:
    """
    Encode a non-negative integer as a varint.

    Raises:
        EncodeError: Negative value or one that does not fit in 64 bits
    """
    if value < 0:
        raise EncodeError(f"Cannot encode negative value {value} as varint")
    if value > MAX_VARINT:
        raise EncodeError(f"Value {value} needs more than {MAX_VARINT_BYTES} varint bytes")

    out = bytearray()
    while True:
        low = value & 0x7F
        value >>= 7
        if value:
            out.append(low | 0x80)
        else:
            out.append(low)
            return bytes(out)


def write_tag(field_number: int, wire_type: int) -> bytes:
    return write_varint((field_number << 3) | int(wire_type))


def write_length_delimited(payload: bytes) -> bytes:
    return write_varint(len(payload)) + payload


def write_varint_field(field_number: int, value: int) -> bytes:
    return write_tag(field_number, WireType.VARINT) + write_varint(value)


def write_bytes_field(field_number: int, payload: bytes) -> bytes:
    return write_tag(field_number, WireType.LENGTH_DELIMITED) + write_length_delimited(payload)
