"""
Variable-length integer primitives of the frame block wire format.

Integers are stored little-endian in base 128: each byte carries 7 data bits,
and the high bit is set on every byte except the last one of an integer.
Signed deltas are sign-folded ("zig-zag") before encoding so that small
negative values stay short.
"""

from typing import Union

import numpy as np
from numpy.typing import NDArray

from ..config import MAX_VARINT_BYTES, VARINT_CONTINUATION_BIT, VARINT_DATA_BITS
from ..exceptions import CorruptFrameError

VARINT_DATA_MASK = 0x7F


def zigzag_encode(value: int) -> int:
    """Fold a signed integer onto the non-negative integers (0, -1, 1, -2, ...)."""
    if value >= 0:
        return value << 1
    return ((-value) << 1) - 1


def zigzag_decode(value: Union[int, NDArray[np.uint64]]) -> Union[int, NDArray[np.int64]]:
    """Inverse of ``zigzag_encode``; accepts a Python int or a uint64 array."""
    if isinstance(value, np.ndarray):
        folded = value.astype(np.int64)
        return (folded >> 1) ^ -(folded & 1)
    if value < 0:
        raise ValueError("zig-zag encoded values are non-negative")
    return (value >> 1) ^ -(value & 1)


def encode_varint(value: int) -> bytes:
    """Encode one non-negative integer."""
    if value < 0:
        raise ValueError(f"varint values must be non-negative, got {value}")
    encoded = bytearray()
    while True:
        chunk = value & VARINT_DATA_MASK
        value >>= VARINT_DATA_BITS
        if value:
            encoded.append(chunk | VARINT_CONTINUATION_BIT)
        else:
            encoded.append(chunk)
            return bytes(encoded)


def decode_varints(raw: Union[bytes, bytearray, memoryview]) -> NDArray[np.uint64]:
    """
    Decode every integer of a buffer at once.

    Args:
        raw: Buffer holding a whole number of encoded integers

    Returns:
        Decoded values in stream order

    Raises:
        CorruptFrameError: If the buffer ends in the middle of an integer or an
            integer spans more than ``MAX_VARINT_BYTES`` bytes
    """
    data = np.frombuffer(raw, dtype=np.uint8)
    if data.size == 0:
        return np.empty(0, dtype=np.uint64)

    if data[-1] & VARINT_CONTINUATION_BIT:
        raise CorruptFrameError("stream ends in the middle of an encoded integer")

    # Every byte without the continuation bit terminates one integer
    ends = np.flatnonzero((data & VARINT_CONTINUATION_BIT) == 0)
    starts = np.empty_like(ends)
    starts[0] = 0
    starts[1:] = ends[:-1] + 1
    lengths = ends - starts + 1

    longest = int(lengths.max())
    if longest > MAX_VARINT_BYTES:
        raise CorruptFrameError(
            f"encoded integer spans {longest} bytes (limit {MAX_VARINT_BYTES})"
        )

    payload = (data & VARINT_DATA_MASK).astype(np.uint64)
    values = np.zeros(len(ends), dtype=np.uint64)
    for byte_index in range(longest):
        has_byte = lengths > byte_index
        shift = np.uint64(VARINT_DATA_BITS * byte_index)
        values[has_byte] |= payload[starts[has_byte] + byte_index] << shift
    return values
