"""
timsread - Read TIMS-TOF acquisitions (analysis.tdf + analysis.tdf_bin).

This package decodes the compressed frame blocks of Bruker TIMS-TOF
acquisition directories and exposes frames, scans, calibration and optional
MALDI imaging metadata as numpy/pandas friendly objects.
"""

from pathlib import Path
from typing import Optional, Union

from .calibration.calibration_model import CalibrationModel
from .config import ReaderConfig
from .core.frame import Frame, PeakArrays, Scan
from .exceptions import (
    CompressionTypeError,
    CorruptFrameError,
    DataIOError,
    FrameNotFoundError,
    MissingCalibrationError,
    OutOfRangeError,
    ReaderOpenError,
    SchemaError,
    TimsReaderError,
)
from .metadata.metadata_models import AcquisitionType, MaldiInfo, MsLevel, QuadrupoleSettings
from .readers.frame_reader import FrameReader, FrameResult

__version__ = "0.1.0"


def open_dataset(
    path: Union[str, Path], config: Optional[ReaderConfig] = None
) -> FrameReader:
    """
    Open a TIMS-TOF acquisition directory.

    Args:
        path: Path to the .d directory
        config: Reader configuration (None for defaults)

    Returns:
        An open FrameReader; use it as a context manager or call close()

    Raises:
        ReaderOpenError: If the metadata or binary store cannot be opened
    """
    return FrameReader.open(path, config)


# Expose main API
__all__ = [
    "__version__",
    "open_dataset",
    "AcquisitionType",
    "CalibrationModel",
    "CompressionTypeError",
    "CorruptFrameError",
    "DataIOError",
    "Frame",
    "FrameNotFoundError",
    "FrameReader",
    "FrameResult",
    "MaldiInfo",
    "MissingCalibrationError",
    "MsLevel",
    "OutOfRangeError",
    "PeakArrays",
    "QuadrupoleSettings",
    "ReaderConfig",
    "ReaderOpenError",
    "Scan",
    "SchemaError",
    "TimsReaderError",
]
