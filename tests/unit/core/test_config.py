# tests/unit/core/test_config.py

"""
Tests for reader configuration, exceptions and logging setup.
"""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from timsread.config import MAX_READ_WORKERS, ReaderConfig, resolve_workers
from timsread.exceptions import (
    CorruptFrameError,
    DataIOError,
    FrameNotFoundError,
    OutOfRangeError,
    ReaderOpenError,
    TimsReaderError,
)
from timsread.utils.logging_config import setup_logging


class TestReaderConfig:
    """Test ReaderConfig validation."""

    def test_defaults(self):
        config = ReaderConfig()
        assert config.metadata_filename == "analysis.tdf"
        assert config.binary_filename == "analysis.tdf_bin"
        assert config.require_calibration is False
        assert config.mobility_descending is True

    def test_same_file_names_rejected(self):
        with pytest.raises(ValueError, match="different"):
            ReaderConfig(metadata_filename="x", binary_filename="x")

    def test_empty_file_name_rejected(self):
        with pytest.raises(ValueError):
            ReaderConfig(binary_filename="")

    @pytest.mark.parametrize("workers", [0, MAX_READ_WORKERS + 1])
    def test_worker_bounds(self, workers):
        with pytest.raises(ValueError, match="max_workers"):
            ReaderConfig(max_workers=workers)

    def test_summary(self):
        summary = ReaderConfig(max_workers=2).get_summary()
        assert summary["max_workers"] == 2

    def test_resolve_workers(self):
        config = ReaderConfig(max_workers=3)
        assert resolve_workers(None, config) == 3
        assert resolve_workers(0, config) == 1
        assert resolve_workers(1000, config) == MAX_READ_WORKERS


class TestExceptions:
    """Test the error taxonomy."""

    def test_builtin_bases(self):
        assert issubclass(FrameNotFoundError, LookupError)
        assert issubclass(OutOfRangeError, IndexError)
        assert issubclass(CorruptFrameError, ValueError)
        assert issubclass(DataIOError, OSError)

    def test_common_base(self):
        for error in (FrameNotFoundError(1), CorruptFrameError("bad"), ReaderOpenError("binary", "p", "r")):
            assert isinstance(error, TimsReaderError)

    def test_reader_open_error_fields(self):
        error = ReaderOpenError("metadata", "/data/run.d/analysis.tdf", "missing")
        assert error.store == "metadata"
        assert "metadata store" in str(error)


class TestSetupLogging:
    """Test logging configuration."""

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "timsread.log"
        setup_logging("DEBUG", log_file)
        try:
            root = logging.getLogger()
            assert root.level == logging.DEBUG
            assert any(isinstance(handler, RotatingFileHandler) for handler in root.handlers)
            logging.info("written to file")
            for handler in root.handlers:
                handler.flush()
            assert "written to file" in log_file.read_text()
        finally:
            root = logging.getLogger()
            for handler in root.handlers[:]:
                handler.close()
                root.removeHandler(handler)
            root.setLevel(logging.WARNING)
