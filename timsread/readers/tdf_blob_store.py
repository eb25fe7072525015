# timsread/readers/tdf_blob_store.py
import logging
import os
import threading
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray

from ..exceptions import DataIOError, OutOfRangeError, SchemaError
from ..metadata.metadata_models import BinaryOffset


class BinaryFrameStore:
    """Random access to the compressed frame blocks of analysis.tdf_bin.

    A single read handle is shared by all callers. Every seek-and-read pair
    runs under one lock, so concurrent readers never observe each other's
    file position or a partially read block.
    """

    def __init__(
        self,
        path: Union[str, Path],
        frame_ids: ArrayLike,
        offsets: ArrayLike,
    ):
        """
        Open the binary store.

        Args:
            path: Path to analysis.tdf_bin
            frame_ids: Frame identifiers in ascending order
            offsets: Byte offset of each frame's block, same order

        Raises:
            DataIOError: If the file is missing or cannot be opened
            SchemaError: If the offsets do not describe consecutive blocks
                inside the file
        """
        self.path = Path(path)
        if not self.path.is_file():
            raise DataIOError(f"Binary store not found: {self.path}")

        try:
            self._handle = open(self.path, "rb")
        except OSError as e:
            raise DataIOError(f"Cannot open binary store {self.path}: {e}") from e

        try:
            self.file_size = os.fstat(self._handle.fileno()).st_size
            self._ids, self._offsets, self._lengths = self._derive_ranges(
                frame_ids, offsets, self.file_size
            )
        except BaseException:
            self._handle.close()
            raise

        self._lock = threading.Lock()
        self._closed = False
        logging.debug(
            f"Opened binary store {self.path} ({self.file_size} bytes, {len(self._ids)} blocks)"
        )

    @staticmethod
    def _derive_ranges(
        frame_ids: ArrayLike, offsets: ArrayLike, file_size: int
    ) -> Tuple[NDArray[np.int64], NDArray[np.int64], NDArray[np.int64]]:
        ids = np.asarray(frame_ids, dtype=np.int64)
        starts = np.asarray(offsets, dtype=np.int64)
        if ids.shape != starts.shape:
            raise SchemaError("Every frame needs exactly one binary offset")

        if len(ids) > 1 and np.any(np.diff(ids) <= 0):
            raise SchemaError("Frame identifiers must be strictly increasing")

        if len(starts) == 0:
            return ids, starts, starts.copy()

        backwards = np.flatnonzero(np.diff(starts) < 0)
        if backwards.size:
            bad = int(ids[backwards[0] + 1])
            raise SchemaError(
                f"Binary offset of frame {bad} precedes the block of the previous frame"
            )

        if starts[-1] > file_size:
            beyond = int(ids[np.argmax(starts > file_size)])
            raise SchemaError(
                f"Frame {beyond} points past the end of the binary store ({file_size} bytes)"
            )

        # Each block runs up to the next one; the last runs to end of file
        lengths = np.diff(np.append(starts, file_size))
        for array in (ids, starts, lengths):
            array.flags.writeable = False
        return ids, starts, lengths

    def __len__(self) -> int:
        return len(self._ids)

    def resolve(self, frame_id: int) -> BinaryOffset:
        """
        Get the byte range of a frame's block.

        Raises:
            OutOfRangeError: If the store has no block for this frame
        """
        frame_id = int(frame_id)
        position = int(np.searchsorted(self._ids, frame_id))
        if position >= len(self._ids) or self._ids[position] != frame_id:
            raise OutOfRangeError(f"No binary block for frame {frame_id}")
        return BinaryOffset(int(self._offsets[position]), int(self._lengths[position]))

    def read_raw(self, frame_id: int) -> bytes:
        """
        Read the compressed block of one frame.

        Raises:
            OutOfRangeError: If the store has no block for this frame
            DataIOError: If the store is closed or the read comes back short
        """
        offset, length = self.resolve(frame_id)
        if length == 0:
            return b""

        with self._lock:
            if self._closed:
                raise DataIOError(f"Binary store {self.path} is closed")
            try:
                self._handle.seek(offset)
                data = self._handle.read(length)
            except OSError as e:
                raise DataIOError(f"Reading frame {frame_id} from {self.path} failed: {e}") from e

        if len(data) != length:
            raise DataIOError(
                f"Short read for frame {frame_id}: expected {length} bytes at offset "
                f"{offset}, got {len(data)}"
            )
        return data

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the file handle (idempotent)."""
        with self._lock:
            if not self._closed:
                self._handle.close()
                self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
