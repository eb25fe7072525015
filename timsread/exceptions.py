# timsread/exceptions.py
"""
Exception hierarchy for reading TIMS-TOF acquisitions.

Every error raised by the package derives from ``TimsReaderError`` so callers
can catch the whole family at once. Several classes also derive from the
matching builtin (``LookupError``, ``IndexError``, ``ValueError``) so generic
handlers keep working.
"""

from typing import Optional


class TimsReaderError(Exception):
    """Base class for all timsread errors."""


class DataIOError(TimsReaderError, OSError):
    """A file is missing, unreadable or shorter than expected."""


class SchemaError(TimsReaderError):
    """A required table or column is missing or structurally inconsistent."""


class CompressionTypeError(SchemaError):
    """The acquisition uses a binary compression type that is not supported."""

    def __init__(self, compression_type: int):
        self.compression_type = compression_type
        super().__init__(f"Compression type {compression_type} not understood")


class FrameNotFoundError(TimsReaderError, LookupError):
    """No frame with the requested identifier exists."""

    def __init__(self, frame_id: int):
        self.frame_id = frame_id
        super().__init__(f"Frame {frame_id} not found")


class OutOfRangeError(TimsReaderError, IndexError):
    """An index lies outside the bounds of the object it addresses."""


class CorruptFrameError(TimsReaderError, ValueError):
    """A compressed frame block violates the wire format."""

    def __init__(self, message: str, frame_id: Optional[int] = None):
        self.frame_id = frame_id
        if frame_id is not None:
            message = f"Frame {frame_id}: {message}"
        super().__init__(message)


class MissingCalibrationError(TimsReaderError):
    """Calibration coefficients needed for a physical-unit conversion are absent."""


class ReaderOpenError(TimsReaderError):
    """Opening a dataset failed; ``store`` names the store that failed."""

    def __init__(self, store: str, path, reason: str):
        self.store = store
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to open {store} store at {path}: {reason}")
