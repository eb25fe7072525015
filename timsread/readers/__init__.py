# timsread/readers/__init__.py

from .frame_reader import FrameReader, FrameResult
from .tdf_blob_store import BinaryFrameStore

__all__ = ["BinaryFrameStore", "FrameReader", "FrameResult"]
