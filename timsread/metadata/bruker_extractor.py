import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from ..config import COMPRESSION_TYPE_KEY, GLOBAL_METADATA_TABLE
from ..exceptions import SchemaError
from .metadata_models import GlobalMetadata


def table_exists(connection: sqlite3.Connection, table: str) -> bool:
    """Check sqlite_master for a table of the given name"""
    query = "SELECT name FROM sqlite_master WHERE type='table' AND name=?"
    return connection.execute(query, (table,)).fetchone() is not None


def table_columns(connection: sqlite3.Connection, table: str) -> List[str]:
    """Return the column names of a table (empty if the table does not exist)"""
    # PRAGMA does not accept bound parameters; the name is quoted instead
    quoted = table.replace('"', '""')
    rows = connection.execute(f'PRAGMA table_info("{quoted}")').fetchall()
    return [row[1] for row in rows]


def coerce_numeric(
    table: pd.DataFrame, table_name: str, name: str, integral: bool, label: Optional[str] = None
) -> None:
    """
    Convert one column to numbers in place.

    NULL cells stay missing. Text that does not parse as a number, and
    fractional values in an integer column, raise SchemaError naming the
    column (``label`` overrides the column name used in the message).
    """
    label = label or name
    original = table[name]
    converted = pd.to_numeric(original, errors="coerce")

    invalid = converted.isna() & original.notna()
    if invalid.any():
        examples = original[invalid].astype(str).tolist()[:5]
        raise SchemaError(f"Column '{table_name}.{label}' contains non-numeric values: {examples}")

    if integral:
        present = converted.dropna()
        fractional = present[(present % 1) != 0]
        if len(fractional):
            raise SchemaError(
                f"Column '{table_name}.{label}' contains non-integer values: "
                f"{fractional.tolist()[:5]}"
            )

    table[name] = converted


class BrukerMetadataExtractor:
    """Extract acquisition-level metadata from an open analysis.tdf connection
    WITHOUT reading frame data"""

    def __init__(self, connection: sqlite3.Connection):
        self.connection = connection
        self._global_metadata: Optional[GlobalMetadata] = None

    def extract_global_metadata(self) -> GlobalMetadata:
        """Get all key/value pairs from the GlobalMetadata table (read once)"""
        if self._global_metadata is not None:
            return self._global_metadata

        if not table_exists(self.connection, GLOBAL_METADATA_TABLE):
            logging.debug("No GlobalMetadata table present")
            self._global_metadata = GlobalMetadata()
            return self._global_metadata

        rows = self.connection.execute(
            f"SELECT Key, Value FROM {GLOBAL_METADATA_TABLE}"
        ).fetchall()
        self._global_metadata = GlobalMetadata(
            values={str(key): str(value) for key, value in rows if value is not None}
        )
        return self._global_metadata

    def extract_mass_bounds(self) -> Optional[Tuple[float, float]]:
        """Get the acquired m/z range, or None when not recorded"""
        metadata = self.extract_global_metadata()
        lower = metadata.get_float("MzAcqRangeLower")
        upper = metadata.get_float("MzAcqRangeUpper")
        if lower is None or upper is None:
            return None
        return lower, upper

    def extract_mobility_bounds(self) -> Optional[Tuple[float, float]]:
        """Get the acquired 1/K0 range, or None when not recorded"""
        metadata = self.extract_global_metadata()
        lower = metadata.get_float("OneOverK0AcqRangeLower")
        upper = metadata.get_float("OneOverK0AcqRangeUpper")
        if lower is None or upper is None:
            return None
        return lower, upper

    def extract_compression_type(self) -> Optional[int]:
        """Get the binary compression type declared by the acquisition software"""
        return self.extract_global_metadata().get_int(COMPRESSION_TYPE_KEY)

    def extract_instrument_info(self) -> Dict[str, Any]:
        """Get instrument type from metadata"""
        metadata = self.extract_global_metadata()
        instrument_name = metadata.get("InstrumentName", "Unknown")

        return {
            "type": "TIMS-TOF",
            "model": instrument_name,
            "vendor": metadata.get("InstrumentVendor", "Bruker"),
            "acquisition_software": metadata.get("AcquisitionSoftware"),
            "mz_range": self.extract_mass_bounds(),
            "mobility_range": self.extract_mobility_bounds(),
        }
