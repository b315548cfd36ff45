"""Minimal protocol buffers wire-format encoding and decoding."""

from __future__ import annotations

import struct
from typing import Iterator, Optional, Tuple, Union

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LEN = 2
WIRE_FIXED32 = 5

_MAX_VARINT_BYTES = 10
_U64 = 1 << 64


class DecodeError(ValueError):
    """Raised when bytes are not a valid protobuf encoding."""


def encode_varint(value: int) -> bytes:
    """Encode an integer as a varint; negatives use 64-bit two's complement."""
    if value < 0:
        value += _U64
    if not 0 <= value < _U64:
        raise ValueError(f"varint out of range: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Decode an unsigned varint at `offset`, returning (value, next offset)."""
    result = 0
    for shift_index in range(_MAX_VARINT_BYTES):
        pos = offset + shift_index
        if pos >= len(data):
            raise DecodeError("truncated varint")
        byte = data[pos]
        result |= (byte & 0x7F) << (7 * shift_index)
        if not byte & 0x80:
            if result >= _U64:
                raise DecodeError("varint overflow")
            return result, pos + 1
    raise DecodeError("varint too long")


def to_signed64(value: int) -> int:
    """Interpret an unsigned 64-bit integer as signed."""
    return value - _U64 if value >= (1 << 63) else value


def to_signed32(value: int) -> int:
    """Interpret a varint-decoded value as a signed 32-bit integer."""
    value = to_signed64(value)
    if not -(1 << 31) <= value < (1 << 31):
        raise DecodeError(f"int32 out of range: {value}")
    return value


def encode_length_delimited(payload: bytes) -> bytes:
    """Prefix a payload with its varint length."""
    return encode_varint(len(payload)) + bytes(payload)


def decode_length_delimited(data: bytes) -> bytes:
    """Return the payload of a length-prefixed message."""
    data = bytes(data)
    length, offset = decode_varint(data, 0)
    end = offset + length
    if end > len(data):
        raise DecodeError(
            f"buffer underflow: need {length} bytes, have {len(data) - offset}"
        )
    return data[offset:end]


FieldValue = Union[int, bytes]


def iter_fields(data: bytes) -> Iterator[Tuple[int, int, FieldValue]]:
    """Yield (field number, wire type, value) for each field in a message."""
    data = bytes(data)
    offset = 0
    while offset < len(data):
        key, offset = decode_varint(data, offset)
        field, wire_type = key >> 3, key & 0x07
        if field == 0:
            raise DecodeError("invalid field number 0")
        if wire_type == WIRE_VARINT:
            value, offset = decode_varint(data, offset)
            yield field, wire_type, value
        elif wire_type == WIRE_FIXED64:
            if offset + 8 > len(data):
                raise DecodeError("truncated fixed64")
            (value,) = struct.unpack_from("<Q", data, offset)
            offset += 8
            yield field, wire_type, value
        elif wire_type == WIRE_FIXED32:
            if offset + 4 > len(data):
                raise DecodeError("truncated fixed32")
            (value,) = struct.unpack_from("<I", data, offset)
            offset += 4
            yield field, wire_type, value
        elif wire_type == WIRE_LEN:
            length, offset = decode_varint(data, offset)
            end = offset + length
            if end > len(data):
                raise DecodeError("truncated length-delimited field")
            yield field, wire_type, data[offset:end]
            offset = end
        else:
            raise DecodeError(f"unsupported wire type {wire_type}")


class MessageWriter:
    """Builds a protobuf message, omitting fields that hold default values."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def _key(self, field: int, wire_type: int) -> None:
        self._buf += encode_varint((field << 3) | wire_type)

    def varint(self, field: int, value: int) -> "MessageWriter":
        if value:
            self._key(field, WIRE_VARINT)
            self._buf += encode_varint(value)
        return self

    def sfixed64(self, field: int, value: int) -> "MessageWriter":
        if value:
            self._key(field, WIRE_FIXED64)
            self._buf += struct.pack("<q", value)
        return self

    def bytes_field(self, field: int, value: bytes) -> "MessageWriter":
        if value:
            self._key(field, WIRE_LEN)
            self._buf += encode_length_delimited(bytes(value))
        return self

    def string(self, field: int, value: str) -> "MessageWriter":
        return self.bytes_field(field, value.encode("utf-8"))

    def message(self, field: int, value: Optional[bytes]) -> "MessageWriter":
        """Write an embedded message; present messages are written even if empty."""
        if value is not None:
            self._key(field, WIRE_LEN)
            self._buf += encode_length_delimited(bytes(value))
        return self

    def to_bytes(self) -> bytes:
        return bytes(self._buf)