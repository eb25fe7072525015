# timsread/core/base_reader.py
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from .frame import Frame
from .sequence import LazySequence


class BaseFrameReader(ABC):
    """Abstract base class for reading frame-based TIMS acquisitions."""

    def __init__(self, data_path: Path, **kwargs):
        """
        Initialize the reader with the path to the data.

        Args:
            data_path: Path to the acquisition directory
            **kwargs: Additional reader-specific parameters
        """
        self.data_path = Path(data_path)

    @abstractmethod
    def get_metadata(self) -> Dict[str, Any]:
        """Return metadata about the dataset."""
        pass

    @abstractmethod
    def frame(self, frame_id: int) -> Frame:
        """Return one frame by identifier."""
        pass

    @abstractmethod
    def frames(self) -> LazySequence[Frame]:
        """Return a restartable lazy sequence of all frames in ascending id order."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close all open file handles."""
        pass

    def filter(self, predicate: Callable[[Frame], bool]) -> Iterator[Frame]:
        """
        Lazily yield the frames matching a predicate.

        Args:
            predicate: Called with each frame, in ascending id order
        """
        return (frame for frame in self.frames() if predicate(frame))

    def get_dimensions(self) -> Optional[Tuple[int, int, int]]:
        """
        Return the pixel grid dimensions (x, y, z) of an imaging dataset.

        Default implementation returns None (not an imaging dataset).
        """
        return None

    def get_spatial_bounds(self) -> Optional[Dict[str, int]]:
        """
        Get spatial bounds WITHOUT decoding any frame.

        Returns:
            Dictionary with keys: min_x, max_x, min_y, max_y, or None if the
            dataset carries no pixel grid
        """
        dimensions = self.get_dimensions()
        if dimensions is None:
            return None
        return {
            "min_x": 0,
            "max_x": dimensions[0] - 1,
            "min_y": 0,
            "max_y": dimensions[1] - 1,
        }

    @property
    def shape(self) -> Optional[Tuple[int, int, int]]:
        return self.get_dimensions()

    @property
    def n_frames(self) -> int:
        """Total number of frames in the dataset"""
        return len(self.frames())

    def __iter__(self) -> Iterator[Frame]:
        return iter(self.frames())

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit with cleanup."""
        self.close()
