"""
Decompression of raw frame blocks into per-scan peak lists.

A block holds, as variable-length integers (see ``varint.py``):

    count[0] ... count[num_scans - 1]
    zigzag(delta) intensity      repeated sum(count) times

Decoding runs in two passes. The first pass reads the per-scan peak counts
and turns them into cumulative scan offsets. The second pass walks the peak
stream once, rebuilding absolute mobility indices as a running sum of deltas
that restarts at zero at the beginning of every scan.

Decoding is a pure function of its inputs; nothing is cached.
"""

from typing import List, Optional, Union

import numpy as np
from numpy.typing import NDArray

from ..config import UINT32_MAX
from ..core.frame import PeakArrays, Scan, scans_from_arrays
from ..exceptions import CorruptFrameError, OutOfRangeError
from .varint import decode_varints, zigzag_decode


def _scan_offsets(counts: NDArray[np.uint64]) -> NDArray[np.int64]:
    offsets = np.zeros(len(counts) + 1, dtype=np.int64)
    np.cumsum(counts.astype(np.int64), out=offsets[1:])
    return offsets


def decode_peak_arrays(
    raw: Union[bytes, bytearray, memoryview],
    num_scans: int,
    declared_peak_count: int,
    frame_id: Optional[int] = None,
) -> PeakArrays:
    """
    Decode a raw frame block into flat arrays.

    Args:
        raw: Compressed frame block
        num_scans: Number of scans of the frame
        declared_peak_count: Total number of peaks recorded in the frame table
        frame_id: Only used to label errors

    Returns:
        PeakArrays with read-only arrays

    Raises:
        OutOfRangeError: If num_scans or declared_peak_count is negative
        CorruptFrameError: If the block violates the wire format
    """
    if num_scans < 0:
        raise OutOfRangeError(f"num_scans must be non-negative, got {num_scans}")
    if declared_peak_count < 0:
        raise OutOfRangeError(
            f"declared_peak_count must be non-negative, got {declared_peak_count}"
        )

    try:
        values = decode_varints(raw)
    except CorruptFrameError as e:
        raise CorruptFrameError(str(e), frame_id) from e

    # Pass 1: per-scan peak counts -> cumulative offsets
    if len(values) < num_scans:
        raise CorruptFrameError(
            f"stream holds {len(values)} integers, fewer than the {num_scans} scan peak counts",
            frame_id,
        )
    counts = values[:num_scans]
    if num_scans and int(counts.max()) > UINT32_MAX:
        raise CorruptFrameError("scan peak count exceeds the uint32 range", frame_id)

    scan_offsets = _scan_offsets(counts)
    total_peaks = int(scan_offsets[-1])
    if total_peaks != declared_peak_count:
        raise CorruptFrameError(
            f"scan peak counts sum to {total_peaks}, "
            f"but {declared_peak_count} peaks were declared",
            frame_id,
        )

    peak_stream = values[num_scans:]
    if len(peak_stream) != 2 * total_peaks:
        raise CorruptFrameError(
            f"peak stream holds {len(peak_stream)} integers, "
            f"expected {2 * total_peaks} for {total_peaks} peaks",
            frame_id,
        )

    # Pass 2: (delta, intensity) pairs -> absolute mobility indices per scan
    deltas = zigzag_decode(peak_stream[0::2])
    intensities = peak_stream[1::2]
    if total_peaks and int(intensities.max()) > UINT32_MAX:
        raise CorruptFrameError("intensity exceeds the uint32 range", frame_id)

    running = np.cumsum(deltas, dtype=np.int64)
    # Restart the running sum at every scan start: subtract the total reached
    # before the scan's first peak
    scan_starts = scan_offsets[:-1]
    counts_int = counts.astype(np.int64)
    base_at_start = np.zeros(num_scans, dtype=np.int64)
    non_initial = scan_starts > 0
    base_at_start[non_initial] = running[scan_starts[non_initial] - 1]
    mobility = running - np.repeat(base_at_start, counts_int)

    if total_peaks:
        if int(mobility.min()) < 0:
            raise CorruptFrameError("mobility index accumulates below zero", frame_id)
        if int(mobility.max()) > UINT32_MAX:
            raise CorruptFrameError("mobility index overflows the uint32 range", frame_id)

    mobility_indices = mobility.astype(np.uint32)
    intensities = intensities.astype(np.uint32)
    for array in (scan_offsets, mobility_indices, intensities):
        array.flags.writeable = False
    return PeakArrays(scan_offsets, mobility_indices, intensities)


def decompress(
    raw: Union[bytes, bytearray, memoryview],
    num_scans: int,
    declared_peak_count: int,
    frame_id: Optional[int] = None,
) -> List[Scan]:
    """
    Decode a raw frame block into its scans, in scan index order.

    Scans without peaks come back as empty scans. Peaks within a scan are in
    the order they were encoded; they are never re-sorted.
    """
    arrays = decode_peak_arrays(raw, num_scans, declared_peak_count, frame_id)
    return scans_from_arrays(arrays)


class FrameDecompressor:
    """Stateless callable wrapper so readers can swap the decoding strategy"""

    def decompress(
        self,
        raw: Union[bytes, bytearray, memoryview],
        num_scans: int,
        declared_peak_count: int,
        frame_id: Optional[int] = None,
    ) -> List[Scan]:
        return decompress(raw, num_scans, declared_peak_count, frame_id)

    __call__ = decompress

    def peak_arrays(
        self,
        raw: Union[bytes, bytearray, memoryview],
        num_scans: int,
        declared_peak_count: int,
        frame_id: Optional[int] = None,
    ) -> PeakArrays:
        return decode_peak_arrays(raw, num_scans, declared_peak_count, frame_id)
