# timsread/metadata/__init__.py

"""
Metadata access for TIMS-TOF acquisitions.

This package reads the SQLite metadata store: the frame table, the global
acquisition metadata and the optional MALDI imaging table.
"""

from .index import MetadataIndex
from .maldi import MaldiJoin
from .metadata_models import (
    AcquisitionType,
    BinaryOffset,
    ExtendedMetadata,
    FrameDescriptor,
    GlobalMetadata,
    MaldiInfo,
    MsLevel,
)

__all__ = [
    "AcquisitionType",
    "BinaryOffset",
    "ExtendedMetadata",
    "FrameDescriptor",
    "GlobalMetadata",
    "MaldiInfo",
    "MaldiJoin",
    "MetadataIndex",
    "MsLevel",
]
