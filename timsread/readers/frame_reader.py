# timsread/readers/frame_reader.py
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple, Union

from tqdm import tqdm

from ..calibration.calibration_model import CalibrationModel
from ..config import ReaderConfig, resolve_workers
from ..core.base_reader import BaseFrameReader
from ..core.frame import Frame, PeakArrays, Scan
from ..core.sequence import LazySequence
from ..decompression.frame_decompressor import FrameDecompressor
from ..exceptions import (
    DataIOError,
    MissingCalibrationError,
    ReaderOpenError,
    SchemaError,
    TimsReaderError,
)
from ..metadata.index import MetadataIndex
from ..metadata.maldi import MaldiJoin
from ..metadata.metadata_models import (
    AcquisitionType,
    FrameDescriptor,
    MsLevel,
    QuadrupoleSettings,
)
from .tdf_blob_store import BinaryFrameStore


class FrameResult(NamedTuple):
    """Outcome of decoding one frame in a batch: either scans or the error"""
    frame_id: int
    frame: Optional[Frame]
    scans: Optional[List[Scan]]
    error: Optional[TimsReaderError]

    @property
    def ok(self) -> bool:
        return self.error is None


class FrameReader(BaseFrameReader):
    """
    Reader for TIMS-TOF acquisition directories (analysis.tdf + analysis.tdf_bin).

    Frame metadata, imaging metadata and calibration are loaded once when the
    reader is opened and never change afterwards. Scan data is decoded from the
    binary store on demand and is not cached. A reader can be shared between
    threads: reads from the binary store are serialized internally and
    decoding is pure.
    """

    def __init__(
        self,
        data_path: Union[str, Path],
        config: Optional[ReaderConfig] = None,
        decompressor: Optional[FrameDecompressor] = None,
        **kwargs,
    ):
        """
        Open an acquisition directory.

        Args:
            data_path: Path to the .d directory
            config: Reader configuration (defaults to ReaderConfig())
            decompressor: Frame decoder, mainly to swap strategies in tests
            **kwargs: Additional arguments

        Raises:
            ReaderOpenError: If either store cannot be opened; ``store`` is
                "metadata" or "binary" and the underlying error is chained
        """
        super().__init__(data_path, **kwargs)
        self.config = config or ReaderConfig()
        self._decompressor = decompressor or FrameDecompressor()
        self._closed = False

        metadata_path = self.data_path / self.config.metadata_filename
        binary_path = self.data_path / self.config.binary_filename
        logging.info(f"Opening TIMS dataset {self.data_path}")
        logging.debug(f"Reader configuration: {self.config.get_summary()}")

        with ExitStack() as stack:
            try:
                self.index = MetadataIndex.open(
                    metadata_path,
                    check_compression_type=self.config.check_compression_type,
                )
            except (DataIOError, SchemaError) as e:
                raise ReaderOpenError("metadata", metadata_path, str(e)) from e

            self._calibration, self._calibration_error = self._load_calibration()
            if self._calibration_error is not None and self.config.require_calibration:
                raise ReaderOpenError(
                    "metadata", metadata_path, str(self._calibration_error)
                ) from self._calibration_error

            frame_ids, offsets = self.index.binary_offsets()
            try:
                self._store = BinaryFrameStore(binary_path, frame_ids, offsets)
            except (DataIOError, SchemaError) as e:
                raise ReaderOpenError("binary", binary_path, str(e)) from e
            stack.callback(self._store.close)

            self._maldi = MaldiJoin(self.index)

            # Everything opened, keep the store alive past the with-block
            stack.pop_all()

        logging.info(
            f"Opened {len(self.index)} frames "
            f"(acquisition: {self.index.acquisition_type.value}, "
            f"MALDI: {self._maldi.enabled}, calibration: {self._calibration is not None})"
        )

    @classmethod
    def open(
        cls, data_path: Union[str, Path], config: Optional[ReaderConfig] = None
    ) -> "FrameReader":
        """Open an acquisition directory (same as the constructor)."""
        return cls(data_path, config)

    def _load_calibration(
        self,
    ) -> Tuple[Optional[CalibrationModel], Optional[MissingCalibrationError]]:
        try:
            calibration = CalibrationModel.load(
                self.index.global_metadata,
                self.index.scan_max_index,
                mobility_descending=self.config.mobility_descending,
            )
        except MissingCalibrationError as e:
            logging.warning(f"No usable calibration: {e}")
            return None, e
        return calibration, None

    # --- Frame access ---

    def _load_peaks(self, descriptor: FrameDescriptor) -> PeakArrays:
        raw = self._store.read_raw(descriptor.frame_id)
        return self._decompressor.peak_arrays(
            raw, descriptor.num_scans, descriptor.num_peaks, descriptor.frame_id
        )

    def _compose(self, descriptor: FrameDescriptor) -> Frame:
        return Frame(
            descriptor=descriptor,
            maldi_info=self._maldi.attach(descriptor),
            scan_loader=self._load_peaks,
        )

    def frame(self, frame_id: int) -> Frame:
        """
        Get one frame by identifier.

        Raises:
            FrameNotFoundError: If no frame has this identifier
        """
        return self._compose(self.index.frame(frame_id))

    def frames(self) -> LazySequence[Frame]:
        """Restartable lazy sequence of all frames in ascending id order"""
        return LazySequence(self._iter_frames, len(self.index))

    def _iter_frames(self) -> Iterator[Frame]:
        for descriptor in self.index.frames():
            yield self._compose(descriptor)

    def read_scans(self, frame_id: int) -> List[Scan]:
        """
        Decode the scans of one frame.

        Raises:
            FrameNotFoundError: If no frame has this identifier
            CorruptFrameError: If the frame's block cannot be decoded
            DataIOError: If the block cannot be read
        """
        return self.frame(frame_id).scans()

    def ms1_frames(self) -> Iterator[Frame]:
        """Lazily yield the MS1 frames"""
        return self.filter(lambda frame: frame.ms_level == MsLevel.MS1)

    def ms2_frames(self) -> Iterator[Frame]:
        """Lazily yield the MS2 (PASEF fragment) frames"""
        return self.filter(lambda frame: frame.ms_level == MsLevel.MS2)

    def _decode_one(self, frame_id: int) -> FrameResult:
        try:
            frame = self.frame(frame_id)
            scans = frame.scans()
        except TimsReaderError as e:
            logging.warning(f"Failed to decode frame {frame_id}: {e}")
            return FrameResult(frame_id, None, None, e)
        return FrameResult(frame_id, frame, scans, None)

    def read_all(
        self,
        frame_ids: Optional[Iterable[int]] = None,
        max_workers: Optional[int] = None,
        show_progress: bool = False,
    ) -> List[FrameResult]:
        """
        Decode many frames in parallel.

        A failing frame does not abort the batch; its result carries the error
        instead of scans.

        Args:
            frame_ids: Frames to decode (default: all frames)
            max_workers: Worker threads (default: config.max_workers)
            show_progress: Display a progress bar

        Returns:
            One FrameResult per requested frame, in request order
        """
        if frame_ids is None:
            frame_ids = self.index.frame_ids().tolist()
        requested = [int(frame_id) for frame_id in frame_ids]
        workers = resolve_workers(max_workers, self.config)
        results: List[Optional[FrameResult]] = [None] * len(requested)

        logging.debug(f"Decoding {len(requested)} frames with {workers} workers")
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self._decode_one, frame_id): position
                for position, frame_id in enumerate(requested)
            }
            with tqdm(
                total=len(requested),
                desc="Decoding frames",
                unit="frame",
                disable=not show_progress,
            ) as pbar:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
                    pbar.update(1)

        failed = sum(1 for result in results if not result.ok)
        if failed:
            logging.warning(f"{failed} of {len(requested)} frames could not be decoded")
        return results

    # --- Dataset-level information ---

    @property
    def calibration(self) -> CalibrationModel:
        """
        The acquisition's calibration model.

        Raises:
            MissingCalibrationError: If the dataset has no usable calibration
        """
        if self._calibration is None:
            raise MissingCalibrationError(
                f"Dataset {self.data_path} has no usable calibration: {self._calibration_error}"
            )
        return self._calibration

    @property
    def acquisition_type(self) -> AcquisitionType:
        return self.index.acquisition_type

    def dia_windows(self) -> Optional[List[QuadrupoleSettings]]:
        """
        Quadrupole isolation windows of every diaPASEF window group, ordered
        by window group. None when the acquisition is not diaPASEF.
        """
        return self.index.dia_windows()

    def is_maldi(self) -> bool:
        return self._maldi.enabled

    def get_dimensions(self) -> Optional[Tuple[int, int, int]]:
        return self._maldi.dimensions()

    def get_spatial_bounds(self) -> Optional[Dict[str, int]]:
        """Pixel grid bounds from the imaging table, None if not imaging"""
        return self._maldi.spatial_bounds()

    def get_metadata(self) -> Dict[str, Any]:
        """Return dataset summary: index, calibration and imaging information"""
        metadata = self.index.get_summary()
        metadata["calibrated"] = self._calibration is not None
        metadata["dimensions"] = self.get_dimensions()
        metadata["spatial_bounds"] = self.get_spatial_bounds()
        return metadata

    def __len__(self) -> int:
        return len(self.index)

    def __contains__(self, frame_id: object) -> bool:
        return frame_id in self.index

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the binary store handle (idempotent)."""
        if not self._closed:
            self._store.close()
            self._closed = True
            logging.debug(f"Closed TIMS dataset {self.data_path}")
