"""
Conversion of raw indices into physical units.

Two conversions are provided, both pure functions of an immutable model:

- scan index -> ion mobility (1/K0), linear between the acquired mobility
  bounds. Its direction is a stored per-acquisition flag; on TIMS devices
  scan 0 carries the highest 1/K0, hence descending is the default.
- TOF index -> m/z through the vendor polynomial
  ``sqrt(mz) = c0 + c1 * tof + c2 * tof**2 + ...``.
"""

import logging
import math
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.polynomial import polynomial as P
from numpy.typing import ArrayLike, NDArray
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..config import OTOF_CONTROL_MZ_MARGIN, OTOF_CONTROL_SOFTWARE
from ..exceptions import MissingCalibrationError, OutOfRangeError
from ..metadata.metadata_models import GlobalMetadata

REQUIRED_CALIBRATION_KEYS = (
    "MzAcqRangeLower",
    "MzAcqRangeUpper",
    "DigitizerNumSamples",
    "OneOverK0AcqRangeLower",
    "OneOverK0AcqRangeUpper",
)


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        converted = float(value)
    except (TypeError, ValueError):
        return None
    return converted if math.isfinite(converted) else None


class CalibrationModel(BaseModel):
    """Immutable per-acquisition calibration coefficients"""
    model_config = ConfigDict(frozen=True)

    mz_coefficients: Tuple[float, ...] = Field(min_length=1)
    tof_max_index: int = Field(gt=0)
    mobility_lower: float
    mobility_upper: float
    scan_max_index: int = Field(gt=0)
    mobility_descending: bool = True

    @model_validator(mode="after")
    def _check_ranges(self) -> "CalibrationModel":
        if not self.mobility_lower < self.mobility_upper:
            raise ValueError(
                f"Invalid mobility range: {self.mobility_lower} >= {self.mobility_upper}"
            )
        return self

    # --- Construction ---

    @classmethod
    def load(
        cls,
        acquisition_metadata: Union[GlobalMetadata, Mapping[str, Any]],
        scan_max_index: int,
        mobility_descending: bool = True,
    ) -> "CalibrationModel":
        """
        Build the model from acquisition metadata (GlobalMetadata key/values).

        The m/z polynomial is linear in sqrt(m/z) between the acquired m/z
        bounds over the digitizer samples. Acquisitions written by otofControl
        store a range 5 Th narrower on each side, which is compensated here.

        Args:
            acquisition_metadata: GlobalMetadata or a plain key/value mapping
            scan_max_index: Largest scan count of any frame in the acquisition
            mobility_descending: Whether 1/K0 decreases with scan index

        Returns:
            Calibration model

        Raises:
            MissingCalibrationError: If a required coefficient is absent or
                not numeric, or the ranges are degenerate
        """
        if isinstance(acquisition_metadata, GlobalMetadata):
            values: Mapping[str, Any] = acquisition_metadata.values
        else:
            values = acquisition_metadata

        parsed = {key: _as_float(values.get(key)) for key in REQUIRED_CALIBRATION_KEYS}
        missing = [key for key, value in parsed.items() if value is None]
        if missing:
            raise MissingCalibrationError(
                f"Calibration coefficients missing from acquisition metadata: {', '.join(missing)}"
            )

        mz_lower = parsed["MzAcqRangeLower"]
        mz_upper = parsed["MzAcqRangeUpper"]
        if values.get("AcquisitionSoftware") == OTOF_CONTROL_SOFTWARE:
            logging.warning(
                "Acquisition software is otofControl, m/z bounds are assumed to be "
                f"{OTOF_CONTROL_MZ_MARGIN:g} m/z wider than recorded"
            )
            mz_lower -= OTOF_CONTROL_MZ_MARGIN
            mz_upper += OTOF_CONTROL_MZ_MARGIN

        tof_max_index = int(parsed["DigitizerNumSamples"])
        if mz_lower < 0 or not mz_lower < mz_upper or tof_max_index <= 0:
            raise MissingCalibrationError(
                f"Degenerate m/z calibration: range ({mz_lower}, {mz_upper}), "
                f"{tof_max_index} digitizer samples"
            )
        if scan_max_index <= 0:
            raise MissingCalibrationError("No scans recorded, mobility cannot be calibrated")

        tof_intercept = math.sqrt(mz_lower)
        tof_slope = (math.sqrt(mz_upper) - tof_intercept) / tof_max_index

        try:
            return cls(
                mz_coefficients=(tof_intercept, tof_slope),
                tof_max_index=tof_max_index,
                mobility_lower=parsed["OneOverK0AcqRangeLower"],
                mobility_upper=parsed["OneOverK0AcqRangeUpper"],
                scan_max_index=int(scan_max_index),
                mobility_descending=mobility_descending,
            )
        except ValueError as e:
            raise MissingCalibrationError(f"Invalid calibration coefficients: {e}") from e

    @classmethod
    def from_coefficients(
        cls,
        mz_coefficients: Sequence[float],
        tof_max_index: int,
        mobility_bounds: Tuple[float, float],
        scan_max_index: int,
        mobility_descending: bool = True,
    ) -> "CalibrationModel":
        """Build the model from explicit vendor coefficients."""
        lower, upper = mobility_bounds
        return cls(
            mz_coefficients=tuple(float(c) for c in mz_coefficients),
            tof_max_index=tof_max_index,
            mobility_lower=lower,
            mobility_upper=upper,
            scan_max_index=scan_max_index,
            mobility_descending=mobility_descending,
        )

    # --- Conversions ---

    @staticmethod
    def _checked_indices(indices: ArrayLike, upper: int, name: str) -> NDArray[np.float64]:
        values = np.asarray(indices, dtype=np.float64)
        if values.size and (values.min() < 0 or values.max() > upper):
            raise OutOfRangeError(f"{name} outside [0, {upper}]")
        return values

    def mobility(self, scan_index: ArrayLike) -> Union[float, NDArray[np.float64]]:
        """
        Convert scan index(es) to ion mobility (1/K0).

        Raises:
            OutOfRangeError: If an index lies outside [0, scan_max_index]
        """
        scans = self._checked_indices(scan_index, self.scan_max_index, "scan index")
        span = self.mobility_upper - self.mobility_lower
        fraction = scans / self.scan_max_index
        if self.mobility_descending:
            result = self.mobility_upper - span * fraction
        else:
            result = self.mobility_lower + span * fraction
        return float(result) if result.ndim == 0 else result

    def mz(self, tof_index: ArrayLike) -> Union[float, NDArray[np.float64]]:
        """
        Convert TOF index(es) to m/z.

        Raises:
            OutOfRangeError: If an index lies outside [0, tof_max_index]
        """
        tofs = self._checked_indices(tof_index, self.tof_max_index, "TOF index")
        result = P.polyval(tofs, self.mz_coefficients) ** 2
        return float(result) if np.ndim(result) == 0 else result
