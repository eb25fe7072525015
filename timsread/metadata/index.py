"""
Frame index over the SQLite metadata store of a TIMS-TOF acquisition.

All tables needed for reading are loaded once when the index is opened; the
connection is closed before ``MetadataIndex.open`` returns, so an index holds
no file handles and is safe to share between threads.
"""

import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from ..config import FRAMES_TABLE, MALDI_TABLE, MSMS_TYPE_DIA_PASEF, SUPPORTED_COMPRESSION_TYPES
from ..core.sequence import LazySequence
from ..exceptions import CompressionTypeError, DataIOError, FrameNotFoundError, SchemaError
from .bruker_extractor import (
    BrukerMetadataExtractor,
    coerce_numeric,
    table_columns,
    table_exists,
)
from .dia_windows import read_dia_windows
from .metadata_models import (
    AcquisitionType,
    ExtendedMetadata,
    FrameDescriptor,
    GlobalMetadata,
    MaldiInfo,
    MsLevel,
    QuadrupoleSettings,
)

REQUIRED_FRAME_COLUMNS = ("Id", "Time", "NumScans", "NumPeaks", "TimsId")
OPTIONAL_FRAME_COLUMNS = (
    "Polarity",
    "ScanMode",
    "MsMsType",
    "AccumulationTime",
    "SummedIntensities",
    "MaxIntensity",
)

REQUIRED_MALDI_COLUMNS = ("Frame", "XIndexPos", "YIndexPos")
# Output field -> candidate columns, first present wins
OPTIONAL_MALDI_COLUMNS = {
    "spot_name": ("SpotName",),
    "position_x_um": ("PositionX", "MotorPositionX"),
    "position_y_um": ("PositionY", "MotorPositionY"),
    "laser_power": ("LaserPower",),
    "laser_rep_rate": ("LaserRepRate",),
    "laser_shots": ("NumLaserShots",),
}

# Columns that must hold numbers, and which of those must be whole numbers
FRAME_FLOAT_COLUMNS = ("Time", "AccumulationTime")
FRAME_INTEGER_COLUMNS = (
    "Id",
    "NumScans",
    "NumPeaks",
    "TimsId",
    "ScanMode",
    "MsMsType",
    "SummedIntensities",
    "MaxIntensity",
)
MALDI_FLOAT_COLUMNS = ("position_x_um", "position_y_um", "laser_power", "laser_rep_rate")
MALDI_INTEGER_COLUMNS = ("Frame", "XIndexPos", "YIndexPos", "laser_shots")


def _optional_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or pd.isna(value):
        return None
    return int(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    return str(value)


def _open_read_only(path: Path) -> sqlite3.Connection:
    uri = f"{path.resolve().as_uri()}?mode=ro"
    try:
        return sqlite3.connect(uri, uri=True)
    except sqlite3.Error as e:
        raise DataIOError(f"Cannot open metadata store {path}: {e}") from e


class MetadataIndex:
    """Immutable view of the frame table, global metadata and imaging table"""

    def __init__(
        self,
        path: Path,
        frames: pd.DataFrame,
        global_metadata: GlobalMetadata,
        maldi: Optional[pd.DataFrame] = None,
        instrument_info: Optional[Dict[str, Any]] = None,
        dia_window_groups: Optional[Dict[int, int]] = None,
        dia_windows: Optional[Dict[int, QuadrupoleSettings]] = None,
    ):
        """
        Build an index from already loaded tables. Use ``MetadataIndex.open``
        to load them from an analysis.tdf file.

        Args:
            path: Path of the metadata store the tables came from
            frames: Frame table sorted by ascending Id
            global_metadata: GlobalMetadata key/value pairs
            maldi: Imaging table (one row per frame), or None if absent
            instrument_info: Instrument description for summaries
            dia_window_groups: Frame id -> window group of diaPASEF frames
            dia_windows: Window group -> isolation windows (diaPASEF only)
        """
        self.path = Path(path)
        self.global_metadata = global_metadata
        self.instrument_info = instrument_info or {}

        self._columns: Dict[str, NDArray] = {
            name: frames[name].to_numpy() for name in frames.columns
        }
        for array in self._columns.values():
            array.flags.writeable = False
        self._ids: NDArray[np.int64] = frames["Id"].to_numpy(dtype=np.int64)
        self._offsets: NDArray[np.int64] = frames["TimsId"].to_numpy(dtype=np.int64)
        self._num_scans: NDArray[np.int64] = frames["NumScans"].to_numpy(dtype=np.int64)
        self._num_peaks: NDArray[np.int64] = frames["NumPeaks"].to_numpy(dtype=np.int64)
        self._times: NDArray[np.float64] = frames["Time"].to_numpy(dtype=np.float64)
        for array in (self._ids, self._offsets, self._num_scans, self._num_peaks, self._times):
            array.flags.writeable = False

        self.has_extended_metadata: bool = "MsMsType" in frames.columns
        if self.has_extended_metadata:
            self.acquisition_type = AcquisitionType.from_msms_types(
                self._columns["MsMsType"]
            )
        else:
            self.acquisition_type = AcquisitionType.UNKNOWN

        # The imaging decision is taken once for the whole dataset
        self._maldi = maldi if maldi is not None and len(maldi) > 0 else None
        self._maldi_positions: Dict[int, int] = {}
        if self._maldi is not None:
            self._maldi_positions = {
                int(frame_id): position
                for position, frame_id in enumerate(self._maldi["Frame"].to_numpy())
            }

        self._dia_window_groups = dia_window_groups or {}
        self._dia_windows = dia_windows

    # --- Loading ---

    @classmethod
    def open(
        cls, path: Union[str, Path], check_compression_type: bool = True
    ) -> "MetadataIndex":
        """
        Load the metadata store at ``path``.

        Args:
            path: Path to analysis.tdf
            check_compression_type: Reject acquisitions declaring an
                unsupported TimsCompressionType

        Returns:
            Loaded index

        Raises:
            DataIOError: If the store is missing or not a readable SQLite file
            SchemaError: If the frame table or a required column is missing,
                or the tables are structurally inconsistent
        """
        path = Path(path)
        if not path.is_file():
            raise DataIOError(f"Metadata store not found: {path}")

        logging.info(f"Loading frame metadata from {path}")
        with closing(_open_read_only(path)) as connection:
            try:
                return cls._load(connection, path, check_compression_type)
            except (sqlite3.DatabaseError, pd.errors.DatabaseError) as e:
                raise DataIOError(f"Cannot read metadata store {path}: {e}") from e

    @classmethod
    def _load(
        cls, connection: sqlite3.Connection, path: Path, check_compression_type: bool
    ) -> "MetadataIndex":
        extractor = BrukerMetadataExtractor(connection)

        if check_compression_type:
            compression_type = extractor.extract_compression_type()
            if compression_type is not None and compression_type not in SUPPORTED_COMPRESSION_TYPES:
                raise CompressionTypeError(compression_type)

        frames = cls._read_frames(connection)
        maldi = cls._read_maldi(connection, frames["Id"].to_numpy(dtype=np.int64))

        window_groups, windows = None, None
        if (
            "MsMsType" in frames.columns
            and AcquisitionType.from_msms_types(frames["MsMsType"]) == AcquisitionType.DIA_PASEF
        ):
            dia_frames = frames.loc[frames["MsMsType"] == MSMS_TYPE_DIA_PASEF, "Id"]
            window_groups, windows = read_dia_windows(connection, dia_frames)

        index = cls(
            path,
            frames,
            extractor.extract_global_metadata(),
            maldi=maldi,
            instrument_info=extractor.extract_instrument_info(),
            dia_window_groups=window_groups,
            dia_windows=windows,
        )
        logging.info(
            f"Indexed {len(index)} frames "
            f"(acquisition: {index.acquisition_type.value}, MALDI: {index.is_maldi()})"
        )
        return index

    @staticmethod
    def _read_frames(connection: sqlite3.Connection) -> pd.DataFrame:
        if not table_exists(connection, FRAMES_TABLE):
            raise SchemaError(f"Required table '{FRAMES_TABLE}' is missing")

        available = set(table_columns(connection, FRAMES_TABLE))
        missing = [name for name in REQUIRED_FRAME_COLUMNS if name not in available]
        if missing:
            raise SchemaError(
                f"Table '{FRAMES_TABLE}' is missing required columns: {', '.join(missing)}"
            )

        selected = list(REQUIRED_FRAME_COLUMNS) + [
            name for name in OPTIONAL_FRAME_COLUMNS if name in available
        ]
        frames = pd.read_sql_query(
            f"SELECT {', '.join(selected)} FROM {FRAMES_TABLE} ORDER BY Id", connection
        )

        for name in REQUIRED_FRAME_COLUMNS:
            if frames[name].isna().any():
                raise SchemaError(f"Column '{FRAMES_TABLE}.{name}' contains NULL values")

        for name in frames.columns:
            if name in FRAME_INTEGER_COLUMNS or name in FRAME_FLOAT_COLUMNS:
                coerce_numeric(frames, FRAMES_TABLE, name, name in FRAME_INTEGER_COLUMNS)

        if frames["Id"].duplicated().any():
            duplicates = frames.loc[frames["Id"].duplicated(), "Id"].tolist()
            raise SchemaError(f"Duplicate frame identifiers: {duplicates[:10]}")

        for name in ("Id", "NumScans", "NumPeaks", "TimsId"):
            if (frames[name] < 0).any():
                raise SchemaError(f"Column '{FRAMES_TABLE}.{name}' contains negative values")

        if len(frames) == 0:
            logging.warning(f"Table '{FRAMES_TABLE}' is empty")

        return frames

    @staticmethod
    def _read_maldi(
        connection: sqlite3.Connection, frame_ids: NDArray[np.int64]
    ) -> Optional[pd.DataFrame]:
        if not table_exists(connection, MALDI_TABLE):
            return None

        available = set(table_columns(connection, MALDI_TABLE))
        missing = [name for name in REQUIRED_MALDI_COLUMNS if name not in available]
        if missing:
            raise SchemaError(
                f"Table '{MALDI_TABLE}' is missing required columns: {', '.join(missing)}"
            )

        selected: List[str] = list(REQUIRED_MALDI_COLUMNS)
        renames: Dict[str, str] = {}
        for field, candidates in OPTIONAL_MALDI_COLUMNS.items():
            column = next((name for name in candidates if name in available), None)
            if column is not None:
                selected.append(column)
                renames[column] = field

        maldi = pd.read_sql_query(
            f"SELECT {', '.join(selected)} FROM {MALDI_TABLE} ORDER BY Frame", connection
        ).rename(columns=renames)

        for name in REQUIRED_MALDI_COLUMNS:
            if maldi[name].isna().any():
                raise SchemaError(f"Column '{MALDI_TABLE}.{name}' contains NULL values")

        columns = dict(zip(REQUIRED_MALDI_COLUMNS, REQUIRED_MALDI_COLUMNS))
        columns.update((field, column) for column, field in renames.items())
        for name, column in columns.items():
            if name in MALDI_INTEGER_COLUMNS or name in MALDI_FLOAT_COLUMNS:
                coerce_numeric(
                    maldi, MALDI_TABLE, name, name in MALDI_INTEGER_COLUMNS, label=column
                )

        if maldi["Frame"].duplicated().any():
            duplicates = maldi.loc[maldi["Frame"].duplicated(), "Frame"].tolist()
            raise SchemaError(f"Duplicate imaging rows for frames: {duplicates[:10]}")

        orphans = ~maldi["Frame"].isin(frame_ids)
        if orphans.any():
            # Never looked up through the frame table, so they are harmless
            logging.warning(
                f"{int(orphans.sum())} imaging rows reference frames missing from the frame table"
            )

        return maldi

    # --- Frame lookup ---

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, frame_id: object) -> bool:
        try:
            self._position(frame_id)
        except (FrameNotFoundError, TypeError, ValueError):
            return False
        return True

    @property
    def max_frame_id(self) -> Optional[int]:
        if len(self._ids) == 0:
            return None
        return int(self._ids[-1])

    @property
    def scan_max_index(self) -> int:
        """Largest scan count of any frame"""
        if len(self._num_scans) == 0:
            return 0
        return int(self._num_scans.max())

    def frame_ids(self) -> NDArray[np.int64]:
        """Frame identifiers in ascending order (read-only)"""
        return self._ids

    def binary_offsets(self) -> Tuple[NDArray[np.int64], NDArray[np.int64]]:
        """Frame identifiers and the byte offsets of their blocks, by ascending id"""
        return self._ids, self._offsets

    def _position(self, frame_id) -> int:
        frame_id = int(frame_id)
        position = int(np.searchsorted(self._ids, frame_id))
        if position >= len(self._ids) or self._ids[position] != frame_id:
            raise FrameNotFoundError(frame_id)
        return position

    def frame(self, frame_id: int) -> FrameDescriptor:
        """
        Get the descriptor of one frame.

        Raises:
            FrameNotFoundError: If no frame has this identifier
        """
        return self._descriptor_at(self._position(frame_id))

    def frames(self) -> LazySequence[FrameDescriptor]:
        """Restartable lazy sequence of descriptors in ascending id order"""
        return LazySequence(self._iter_descriptors, len(self))

    def _iter_descriptors(self) -> Iterator[FrameDescriptor]:
        for position in range(len(self._ids)):
            yield self._descriptor_at(position)

    def _column_value(self, name: str, position: int) -> Any:
        column = self._columns.get(name)
        if column is None:
            return None
        return column[position]

    def _descriptor_at(self, position: int) -> FrameDescriptor:
        msms_type = _optional_int(self._column_value("MsMsType", position))
        ms_level = MsLevel.from_msms_type(msms_type)
        num_scans = int(self._num_scans[position])
        num_peaks = int(self._num_peaks[position])
        time = float(self._times[position])

        extended_meta = None
        if self.has_extended_metadata:
            polarity = self._column_value("Polarity", position)
            extended_meta = ExtendedMetadata(
                retention_time=time,
                ms_level=ms_level,
                msms_type=msms_type if msms_type is not None else -1,
                num_scans=num_scans,
                num_peaks=num_peaks,
                polarity=None if polarity is None or pd.isna(polarity) else str(polarity),
                scan_mode=_optional_int(self._column_value("ScanMode", position)),
                summed_intensities=_optional_int(
                    self._column_value("SummedIntensities", position)
                ),
                max_intensity=_optional_int(self._column_value("MaxIntensity", position)),
            )

        frame_id = int(self._ids[position])
        window_group = None
        quadrupole_settings = None
        if msms_type == MSMS_TYPE_DIA_PASEF and self._dia_windows is not None:
            window_group = self._dia_window_groups[frame_id]
            quadrupole_settings = self._dia_windows[window_group]

        return FrameDescriptor(
            frame_id=frame_id,
            time=time,
            ms_level=ms_level,
            num_scans=num_scans,
            num_peaks=num_peaks,
            binary_offset=int(self._offsets[position]),
            accumulation_time=_optional_float(
                self._column_value("AccumulationTime", position)
            ),
            extended_meta=extended_meta,
            window_group=window_group,
            quadrupole_settings=quadrupole_settings,
        )

    def dia_windows(self) -> Optional[List[QuadrupoleSettings]]:
        """Isolation windows of every window group for diaPASEF, otherwise None"""
        if self._dia_windows is None:
            return None
        return [self._dia_windows[group] for group in sorted(self._dia_windows)]

    # --- Imaging metadata ---

    def is_maldi(self) -> bool:
        """True iff the imaging table exists and is non-empty"""
        return self._maldi is not None

    def maldi_info(self, frame_id: int) -> Optional[MaldiInfo]:
        """
        Get the imaging metadata of one frame.

        Returns None for non-imaging datasets. For an imaging dataset whose
        row for a known frame is missing, a warning is logged and None is
        returned instead of failing.
        """
        if self._maldi is None:
            return None

        position = self._maldi_positions.get(int(frame_id))
        if position is None:
            if frame_id in self:
                logging.warning(f"Imaging metadata missing for frame {frame_id}")
            return None

        row = self._maldi.iloc[position]
        return MaldiInfo(
            frame_id=int(row["Frame"]),
            pixel_x=int(row["XIndexPos"]),
            pixel_y=int(row["YIndexPos"]),
            spot_name=_optional_str(row.get("spot_name")) or "",
            position_x_um=_optional_float(row.get("position_x_um")),
            position_y_um=_optional_float(row.get("position_y_um")),
            laser_power=_optional_float(row.get("laser_power")),
            laser_rep_rate=_optional_float(row.get("laser_rep_rate")),
            laser_shots=_optional_int(row.get("laser_shots")),
        )

    def maldi_pixels(self) -> pd.DataFrame:
        """Frame, XIndexPos and YIndexPos of every imaging row (a copy)"""
        if self._maldi is None:
            return pd.DataFrame(columns=list(REQUIRED_MALDI_COLUMNS))
        return self._maldi.loc[:, list(REQUIRED_MALDI_COLUMNS)].copy()

    def get_summary(self) -> Dict[str, Any]:
        """Get dataset summary for logging"""
        return {
            "path": str(self.path),
            "n_frames": len(self),
            "max_frame_id": self.max_frame_id,
            "acquisition_type": self.acquisition_type.value,
            "is_maldi": self.is_maldi(),
            "n_maldi_rows": len(self._maldi) if self._maldi is not None else 0,
            "extended_metadata": self.has_extended_metadata,
            "n_dia_window_groups": len(self._dia_windows) if self._dia_windows else 0,
            "instrument": self.instrument_info,
        }
