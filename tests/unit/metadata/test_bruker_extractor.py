# tests/unit/metadata/test_bruker_extractor.py

"""
Tests for global acquisition metadata extraction and the metadata models.
"""

import sqlite3
from contextlib import closing

import pandas as pd
import pytest
from pydantic import ValidationError

from timsread.exceptions import SchemaError
from timsread.metadata.bruker_extractor import (
    BrukerMetadataExtractor,
    coerce_numeric,
    table_columns,
    table_exists,
)
from timsread.metadata.metadata_models import (
    AcquisitionType,
    FrameDescriptor,
    GlobalMetadata,
    MsLevel,
)


@pytest.fixture
def connection(standard_dataset):
    with closing(sqlite3.connect(standard_dataset / "analysis.tdf")) as conn:
        yield conn


class TestTableHelpers:
    """Test schema introspection helpers."""

    def test_table_exists(self, connection):
        assert table_exists(connection, "Frames")
        assert table_exists(connection, "GlobalMetadata")
        assert not table_exists(connection, "MaldiFrameInfo")

    def test_table_columns(self, connection):
        columns = table_columns(connection, "Frames")
        assert columns[:5] == ["Id", "Time", "NumScans", "NumPeaks", "TimsId"]
        assert table_columns(connection, "Missing") == []

    def test_coerce_numeric_keeps_nulls(self):
        table = pd.DataFrame({"Value": [1, "2", None, 4.0]})
        coerce_numeric(table, "T", "Value", integral=True)

        assert table["Value"].tolist()[:2] == [1.0, 2.0]
        assert pd.isna(table["Value"].iloc[2])

    def test_coerce_numeric_rejects_text(self):
        table = pd.DataFrame({"position_x_um": [1.5, "left"]})
        with pytest.raises(SchemaError, match=r"T\.PositionX.*left"):
            coerce_numeric(table, "T", "position_x_um", integral=False, label="PositionX")

    def test_coerce_numeric_rejects_fractions(self):
        table = pd.DataFrame({"Id": [1, 2.5]})
        with pytest.raises(SchemaError, match=r"T\.Id.*non-integer"):
            coerce_numeric(table, "T", "Id", integral=True)

    def test_coerce_numeric_allows_fractions_in_float_columns(self):
        table = pd.DataFrame({"Time": ["0.25", 1]})
        coerce_numeric(table, "T", "Time", integral=False)
        assert table["Time"].tolist() == [0.25, 1.0]


class TestBrukerMetadataExtractor:
    """Test GlobalMetadata extraction."""

    def test_global_metadata(self, connection):
        metadata = BrukerMetadataExtractor(connection).extract_global_metadata()

        assert "MzAcqRangeLower" in metadata
        assert metadata.get("InstrumentName") == "timsTOF Pro"
        assert metadata.get_float("OneOverK0AcqRangeUpper") == pytest.approx(1.6)

    def test_metadata_read_once(self, connection):
        extractor = BrukerMetadataExtractor(connection)
        assert extractor.extract_global_metadata() is extractor.extract_global_metadata()

    def test_bounds(self, connection):
        extractor = BrukerMetadataExtractor(connection)
        assert extractor.extract_mass_bounds() == (100.0, 1700.0)
        assert extractor.extract_mobility_bounds() == (0.6, 1.6)
        assert extractor.extract_compression_type() == 2

    def test_instrument_info(self, connection):
        info = BrukerMetadataExtractor(connection).extract_instrument_info()
        assert info["type"] == "TIMS-TOF"
        assert info["model"] == "timsTOF Pro"
        assert info["acquisition_software"] == "Bruker timsControl"

    def test_missing_table(self, dataset_factory):
        dataset = dataset_factory(global_metadata={})
        with closing(sqlite3.connect(dataset / "analysis.tdf")) as conn:
            extractor = BrukerMetadataExtractor(conn)
            assert len(extractor.extract_global_metadata()) == 0
            assert extractor.extract_mass_bounds() is None
            assert extractor.extract_compression_type() is None


class TestModels:
    """Test enum derivations and model validation."""

    @pytest.mark.parametrize(
        "msms_type,level",
        [(0, MsLevel.MS1), (8, MsLevel.MS2), (9, MsLevel.MS2), (2, MsLevel.UNKNOWN), (None, MsLevel.UNKNOWN)],
    )
    def test_ms_level(self, msms_type, level):
        assert MsLevel.from_msms_type(msms_type) == level

    def test_acquisition_type(self):
        assert AcquisitionType.from_msms_types([0, 8, 9]) == AcquisitionType.DDA_PASEF
        assert AcquisitionType.from_msms_types([0, 9]) == AcquisitionType.DIA_PASEF
        assert AcquisitionType.from_msms_types([0]) == AcquisitionType.UNKNOWN

    def test_global_metadata_numeric_access(self):
        metadata = GlobalMetadata(values={"a": "1.5", "b": "text", "c": "3"})
        assert metadata.get_float("a") == 1.5
        assert metadata.get_float("b") is None
        assert metadata.get_int("c") == 3
        assert metadata.get_int("missing") is None

    def test_descriptor_immutable(self):
        descriptor = FrameDescriptor(
            frame_id=1, time=0.5, num_scans=2, num_peaks=3, binary_offset=0
        )
        with pytest.raises(ValidationError):
            descriptor.num_peaks = 4

    def test_descriptor_rejects_negative_counts(self):
        with pytest.raises(ValidationError):
            FrameDescriptor(frame_id=1, time=0.5, num_scans=-1, num_peaks=0, binary_offset=0)
