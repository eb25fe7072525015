# timsread/core/frame.py
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from ..metadata.metadata_models import (
    ExtendedMetadata,
    FrameDescriptor,
    MaldiInfo,
    MsLevel,
    QuadrupoleSettings,
)

if TYPE_CHECKING:
    from ..calibration.calibration_model import CalibrationModel


class PeakArrays(NamedTuple):
    """Flat decoded frame: scan ``i`` owns peaks ``scan_offsets[i]:scan_offsets[i + 1]``"""
    scan_offsets: NDArray[np.int64]
    mobility_indices: NDArray[np.uint32]
    intensities: NDArray[np.uint32]

    @property
    def num_scans(self) -> int:
        return len(self.scan_offsets) - 1

    def scan_indices(self) -> NDArray[np.int64]:
        """Scan index of every peak"""
        return np.repeat(
            np.arange(self.num_scans, dtype=np.int64), np.diff(self.scan_offsets)
        )


@dataclass(frozen=True, eq=False)
class Scan:
    """One ion-mobility slice of a frame: (mobility_index, intensity) peaks"""
    index: int
    mobility_indices: NDArray[np.uint32]
    intensities: NDArray[np.uint32]

    def __len__(self) -> int:
        return len(self.mobility_indices)

    def __iter__(self) -> Iterator[Tuple[int, int]]:
        for mobility_index, intensity in zip(self.mobility_indices, self.intensities):
            yield int(mobility_index), int(intensity)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scan):
            return NotImplemented
        return (
            self.index == other.index
            and np.array_equal(self.mobility_indices, other.mobility_indices)
            and np.array_equal(self.intensities, other.intensities)
        )

    __hash__ = None

    @property
    def is_empty(self) -> bool:
        return len(self.mobility_indices) == 0

    def to_list(self) -> List[Tuple[int, int]]:
        return list(self)


def scans_from_arrays(arrays: PeakArrays) -> List[Scan]:
    """Split flat peak arrays into Scan views (no copies)"""
    offsets = arrays.scan_offsets
    return [
        Scan(
            index=scan_index,
            mobility_indices=arrays.mobility_indices[offsets[scan_index]:offsets[scan_index + 1]],
            intensities=arrays.intensities[offsets[scan_index]:offsets[scan_index + 1]],
        )
        for scan_index in range(len(offsets) - 1)
    ]


@dataclass(frozen=True)
class Frame:
    """
    One TIMS frame: its metadata plus on-demand access to the decoded scans.

    Scan data is decoded from the binary store on every call to ``scans()`` or
    ``peak_arrays()``; callers that need it repeatedly should keep the result.
    """
    descriptor: FrameDescriptor
    maldi_info: Optional[MaldiInfo] = None
    scan_loader: Optional[Callable[[FrameDescriptor], PeakArrays]] = field(
        default=None, repr=False, compare=False
    )

    @property
    def frame_id(self) -> int:
        return self.descriptor.frame_id

    @property
    def time(self) -> float:
        return self.descriptor.time

    @property
    def ms_level(self) -> MsLevel:
        return self.descriptor.ms_level

    @property
    def num_scans(self) -> int:
        return self.descriptor.num_scans

    @property
    def num_peaks(self) -> int:
        return self.descriptor.num_peaks

    @property
    def accumulation_time(self) -> Optional[float]:
        return self.descriptor.accumulation_time

    @property
    def extended_meta(self) -> Optional[ExtendedMetadata]:
        return self.descriptor.extended_meta

    @property
    def window_group(self) -> Optional[int]:
        return self.descriptor.window_group

    @property
    def quadrupole_settings(self) -> Optional[QuadrupoleSettings]:
        """Isolation windows of this frame's window group (diaPASEF MS2 only)"""
        return self.descriptor.quadrupole_settings

    @property
    def intensity_correction_factor(self) -> float:
        """1 / accumulation time, or 1.0 when the accumulation time is unknown"""
        accumulation_time = self.descriptor.accumulation_time
        if accumulation_time is None or not accumulation_time > 0:
            return 1.0
        return 1.0 / accumulation_time

    def peak_arrays(self) -> PeakArrays:
        if self.scan_loader is None:
            raise RuntimeError(f"Frame {self.frame_id} is not attached to a reader")
        return self.scan_loader(self.descriptor)

    def scans(self) -> List[Scan]:
        """Decode the frame's scans, indexed 0..num_scans-1"""
        return scans_from_arrays(self.peak_arrays())

    def corrected_intensities(self) -> NDArray[np.float64]:
        """All peak intensities scaled by the intensity correction factor"""
        return self.peak_arrays().intensities * self.intensity_correction_factor

    def to_dataframe(self, calibration: Optional["CalibrationModel"] = None) -> pd.DataFrame:
        """
        Flatten the decoded frame into one row per peak.

        Args:
            calibration: If given, adds the ion mobility (1/K0) of each peak's scan

        Returns:
            DataFrame with columns frame_id, scan_index, mobility_index,
            intensity (and mobility)
        """
        arrays = self.peak_arrays()
        scan_indices = arrays.scan_indices()
        data = {
            "frame_id": np.full(len(scan_indices), self.frame_id, dtype=np.int64),
            "scan_index": scan_indices,
            "mobility_index": arrays.mobility_indices,
            "intensity": arrays.intensities,
        }
        if calibration is not None:
            data["mobility"] = calibration.mobility(scan_indices)
        return pd.DataFrame(data)
