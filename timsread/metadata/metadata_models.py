from enum import Enum
from typing import Dict, Iterable, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..config import MSMS_TYPE_DDA_PASEF, MSMS_TYPE_DIA_PASEF, MSMS_TYPE_MS1


class MsLevel(str, Enum):
    """MS level of a frame, derived from the MsMsType column"""
    MS1 = "MS1"
    MS2 = "MS2"
    UNKNOWN = "unknown"

    @classmethod
    def from_msms_type(cls, msms_type: Optional[int]) -> "MsLevel":
        if msms_type == MSMS_TYPE_MS1:
            return cls.MS1
        if msms_type in (MSMS_TYPE_DDA_PASEF, MSMS_TYPE_DIA_PASEF):
            return cls.MS2
        return cls.UNKNOWN


class AcquisitionType(str, Enum):
    """Acquisition scheme of the whole dataset"""
    DDA_PASEF = "ddaPASEF"
    DIA_PASEF = "diaPASEF"
    UNKNOWN = "unknown"

    @classmethod
    def from_msms_types(cls, msms_types: Iterable[int]) -> "AcquisitionType":
        # NULL MsMsType cells come through as NaN
        msms_types = set(int(value) for value in msms_types if value == value)
        if MSMS_TYPE_DDA_PASEF in msms_types:
            return cls.DDA_PASEF
        if MSMS_TYPE_DIA_PASEF in msms_types:
            return cls.DIA_PASEF
        return cls.UNKNOWN


class BinaryOffset(NamedTuple):
    """Byte range of one compressed frame block in the binary store"""
    offset: int
    length: int


class ExtendedMetadata(BaseModel):
    """Optional per-frame acquisition details, present dataset-wide or not at all"""
    model_config = ConfigDict(frozen=True)

    retention_time: float
    ms_level: MsLevel
    msms_type: int
    num_scans: int
    num_peaks: int
    polarity: Optional[str] = None
    scan_mode: Optional[int] = None
    summed_intensities: Optional[int] = None
    max_intensity: Optional[int] = None


class MaldiInfo(BaseModel):
    """Spatial and laser metadata for one imaging pixel.

    ``frame_id`` is a lookup key into the frame table, not a reference to the
    frame object.
    """
    model_config = ConfigDict(frozen=True)

    frame_id: int
    pixel_x: int
    pixel_y: int
    spot_name: str = ""
    position_x_um: Optional[float] = None
    position_y_um: Optional[float] = None
    laser_power: Optional[float] = None
    laser_rep_rate: Optional[float] = None
    laser_shots: Optional[int] = None


class QuadrupoleSettings(BaseModel):
    """Isolation windows of one diaPASEF window group.

    Window ``i`` isolates ``isolation_mz[i]`` +/- ``isolation_width[i]`` / 2
    over the scans ``scan_starts[i]`` to ``scan_ends[i]``.
    """
    model_config = ConfigDict(frozen=True)

    window_group: int = Field(ge=1)
    scan_starts: Tuple[int, ...] = ()
    scan_ends: Tuple[int, ...] = ()
    isolation_mz: Tuple[float, ...] = ()
    isolation_width: Tuple[float, ...] = ()
    collision_energy: Tuple[float, ...] = ()

    def __len__(self) -> int:
        return len(self.isolation_mz)


class FrameDescriptor(BaseModel):
    """Frame table row, without any decoded peak data"""
    model_config = ConfigDict(frozen=True)

    frame_id: int = Field(ge=0)
    time: float
    ms_level: MsLevel = MsLevel.UNKNOWN
    num_scans: int = Field(ge=0)
    num_peaks: int = Field(ge=0)
    binary_offset: int = Field(ge=0)
    accumulation_time: Optional[float] = None
    extended_meta: Optional[ExtendedMetadata] = None
    # diaPASEF MS2 frames only
    window_group: Optional[int] = None
    quadrupole_settings: Optional[QuadrupoleSettings] = None


class GlobalMetadata(BaseModel):
    """Key/value pairs from the GlobalMetadata table"""
    model_config = ConfigDict(frozen=True)

    values: Dict[str, str] = {}

    def __contains__(self, key: str) -> bool:
        return key in self.values

    def __len__(self) -> int:
        return len(self.values)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(key, default)

    def get_float(self, key: str) -> Optional[float]:
        """Return the value as float, or None when absent or not numeric."""
        raw = self.values.get(key)
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            return None

    def get_int(self, key: str) -> Optional[int]:
        value = self.get_float(key)
        if value is None:
            return None
        return int(value)
