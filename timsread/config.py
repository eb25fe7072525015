"""
Configuration constants for timsread.

This module centralizes the file names, wire-format limits and default
settings used throughout the codebase so they can be tuned in one place.
"""

# Acquisition directory layout
METADATA_FILENAME = "analysis.tdf"  # SQLite metadata store
BINARY_FILENAME = "analysis.tdf_bin"  # Concatenated compressed frame blocks

# Table names in the metadata store
FRAMES_TABLE = "Frames"
MALDI_TABLE = "MaldiFrameInfo"
GLOBAL_METADATA_TABLE = "GlobalMetadata"
DIA_FRAME_INFO_TABLE = "DiaFrameMsMsInfo"  # Frame -> WindowGroup
DIA_WINDOWS_TABLE = "DiaFrameMsMsWindows"  # Isolation windows per WindowGroup

# Binary compression
SUPPORTED_COMPRESSION_TYPES = (2,)
COMPRESSION_TYPE_KEY = "TimsCompressionType"

# Wire format limits
UINT32_MAX = 0xFFFFFFFF
VARINT_DATA_BITS = 7
VARINT_CONTINUATION_BIT = 0x80
MAX_VARINT_BYTES = 5  # 35 data bits: enough for uint32 values and zig-zag folded deltas

# MsMsType codes in the frame table
MSMS_TYPE_MS1 = 0
MSMS_TYPE_DDA_PASEF = 8
MSMS_TYPE_DIA_PASEF = 9

# Calibration
OTOF_CONTROL_SOFTWARE = "Bruker otofControl"
OTOF_CONTROL_MZ_MARGIN = 5.0  # otofControl stores an m/z range 5 Th narrower on each side

# Parallel reading
DEFAULT_READ_WORKERS = 4
MAX_READ_WORKERS = 64

# Logging
LOG_FILE_MAX_SIZE_MB = 10  # Max log file size before rotation
LOG_BACKUP_COUNT = 5
MB_TO_BYTES = 1024 * 1024

# Configuration classes
from dataclasses import dataclass
from typing import Optional


@dataclass
class ReaderConfig:
    """Configuration for opening an acquisition directory"""
    metadata_filename: str = METADATA_FILENAME
    binary_filename: str = BINARY_FILENAME

    # Calibration settings
    require_calibration: bool = False  # fail at open instead of at first conversion
    mobility_descending: bool = True  # scan 0 carries the highest 1/K0

    # Performance settings
    max_workers: int = DEFAULT_READ_WORKERS

    # Validation settings
    check_compression_type: bool = True

    def __post_init__(self):
        """Validate configuration after initialization"""
        if not self.metadata_filename or not self.binary_filename:
            raise ValueError("Metadata and binary file names must be non-empty")

        if self.metadata_filename == self.binary_filename:
            raise ValueError("Metadata and binary stores must be different files")

        if not 1 <= self.max_workers <= MAX_READ_WORKERS:
            raise ValueError(
                f"max_workers must satisfy: 1 <= max_workers <= {MAX_READ_WORKERS}"
            )

    def get_summary(self) -> dict:
        """Get configuration summary for logging"""
        return {
            "metadata_filename": self.metadata_filename,
            "binary_filename": self.binary_filename,
            "require_calibration": self.require_calibration,
            "mobility_descending": self.mobility_descending,
            "max_workers": self.max_workers,
        }


def resolve_workers(requested: Optional[int], config: ReaderConfig) -> int:
    """Clamp a requested worker count to the configured limits."""
    if requested is None:
        return config.max_workers
    return max(1, min(int(requested), MAX_READ_WORKERS))
