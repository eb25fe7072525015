"""
Join of MALDI imaging metadata onto frames.
"""

import logging
from typing import Dict, Optional, Tuple

from .index import MetadataIndex
from .metadata_models import FrameDescriptor, MaldiInfo


class MaldiJoin:
    """Attach imaging metadata to frames by frame identifier.

    Whether a dataset is an imaging dataset is decided once, when the join is
    built; non-imaging datasets never get imaging metadata attached.
    """

    def __init__(self, index: MetadataIndex):
        self.index = index
        self.enabled = index.is_maldi()
        if self.enabled:
            logging.info("MALDI imaging metadata detected, attaching pixel information to frames")

    def attach(self, descriptor: FrameDescriptor) -> Optional[MaldiInfo]:
        """Return the imaging metadata for a frame, or None.

        For imaging datasets a frame without its own row degrades to None
        (the index logs the gap).
        """
        if not self.enabled:
            return None
        return self.index.maldi_info(descriptor.frame_id)

    def spatial_bounds(self) -> Optional[Dict[str, int]]:
        """
        Pixel grid bounds of the imaging run.

        Returns:
            Dictionary with keys min_x, max_x, min_y, max_y, or None for
            non-imaging datasets
        """
        if not self.enabled:
            return None
        pixels = self.index.maldi_pixels()
        return {
            "min_x": int(pixels["XIndexPos"].min()),
            "max_x": int(pixels["XIndexPos"].max()),
            "min_y": int(pixels["YIndexPos"].min()),
            "max_y": int(pixels["YIndexPos"].max()),
        }

    def dimensions(self) -> Optional[Tuple[int, int, int]]:
        """Return the dimensions of the pixel grid (x, y, z), None if not imaging."""
        bounds = self.spatial_bounds()
        if bounds is None:
            return None
        return (
            bounds["max_x"] - bounds["min_x"] + 1,
            bounds["max_y"] - bounds["min_y"] + 1,
            1,
        )
