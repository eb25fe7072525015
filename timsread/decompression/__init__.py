# timsread/decompression/__init__.py

"""
Decoding of compressed frame blocks.

This package contains the variable-length integer primitives of the wire
format and the two-pass frame decompressor built on top of them.
"""

from .frame_decompressor import FrameDecompressor, decode_peak_arrays, decompress
from .varint import decode_varints, encode_varint, zigzag_decode, zigzag_encode

__all__ = [
    "FrameDecompressor",
    "decode_peak_arrays",
    "decompress",
    "decode_varints",
    "encode_varint",
    "zigzag_decode",
    "zigzag_encode",
]
