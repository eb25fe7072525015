"""
diaPASEF window groups.

Each diaPASEF fragment frame belongs to one window group
(DiaFrameMsMsInfo), and each window group lists the quadrupole isolation
windows cycled through during the frame (DiaFrameMsMsWindows).
"""

import logging
import sqlite3
from typing import Dict, Iterable, Tuple

import pandas as pd

from ..config import DIA_FRAME_INFO_TABLE, DIA_WINDOWS_TABLE
from ..exceptions import SchemaError
from .bruker_extractor import coerce_numeric, table_columns, table_exists
from .metadata_models import QuadrupoleSettings

FRAME_INFO_COLUMNS = ("Frame", "WindowGroup")
WINDOW_COLUMNS = ("WindowGroup", "ScanNumBegin", "ScanNumEnd", "IsolationMz", "IsolationWidth")
OPTIONAL_WINDOW_COLUMNS = ("CollisionEnergy",)


def _read_table(
    connection: sqlite3.Connection, table: str, required: Tuple[str, ...], optional=()
) -> pd.DataFrame:
    if not table_exists(connection, table):
        raise SchemaError(f"diaPASEF acquisition without a '{table}' table")

    available = set(table_columns(connection, table))
    missing = [name for name in required if name not in available]
    if missing:
        raise SchemaError(f"Table '{table}' is missing required columns: {', '.join(missing)}")

    selected = list(required) + [name for name in optional if name in available]
    data = pd.read_sql_query(f"SELECT {', '.join(selected)} FROM {table}", connection)

    for name in required:
        if data[name].isna().any():
            raise SchemaError(f"Column '{table}.{name}' contains NULL values")
        coerce_numeric(data, table, name, integral=name not in ("IsolationMz", "IsolationWidth"))
    for name in optional:
        if name in data.columns:
            coerce_numeric(data, table, name, integral=False)
    return data


def read_dia_windows(
    connection: sqlite3.Connection, dia_frame_ids: Iterable[int]
) -> Tuple[Dict[int, int], Dict[int, QuadrupoleSettings]]:
    """
    Load the window group of every diaPASEF frame and the isolation windows
    of every window group.

    Args:
        connection: Open analysis.tdf connection
        dia_frame_ids: Frames with MsMsType 9; each must have a window group

    Returns:
        (frame id -> window group, window group -> QuadrupoleSettings)

    Raises:
        SchemaError: If a table or column is missing, a frame is assigned
            twice or not at all, or a frame's window group has no windows
    """
    frame_info = _read_table(connection, DIA_FRAME_INFO_TABLE, FRAME_INFO_COLUMNS)
    if frame_info["Frame"].duplicated().any():
        duplicates = frame_info.loc[frame_info["Frame"].duplicated(), "Frame"].tolist()
        raise SchemaError(f"Frames assigned to more than one window group: {duplicates[:10]}")

    window_groups = {
        int(frame_id): int(group)
        for frame_id, group in zip(frame_info["Frame"], frame_info["WindowGroup"])
    }

    dia_frame_ids = [int(frame_id) for frame_id in dia_frame_ids]
    unassigned = [frame_id for frame_id in dia_frame_ids if frame_id not in window_groups]
    if unassigned:
        raise SchemaError(f"diaPASEF frames without a window group: {unassigned[:10]}")

    windows = _read_table(
        connection, DIA_WINDOWS_TABLE, WINDOW_COLUMNS, OPTIONAL_WINDOW_COLUMNS
    ).sort_values(["WindowGroup", "ScanNumBegin"], kind="stable")
    if (windows["WindowGroup"] < 1).any():
        raise SchemaError(f"Column '{DIA_WINDOWS_TABLE}.WindowGroup' contains values below 1")

    settings: Dict[int, QuadrupoleSettings] = {}
    for group, rows in windows.groupby("WindowGroup", sort=True):
        if "CollisionEnergy" in rows.columns:
            collision_energy = tuple(float(value) for value in rows["CollisionEnergy"])
        else:
            collision_energy = tuple(float("nan") for _ in range(len(rows)))
        settings[int(group)] = QuadrupoleSettings(
            window_group=int(group),
            scan_starts=tuple(int(value) for value in rows["ScanNumBegin"]),
            scan_ends=tuple(int(value) for value in rows["ScanNumEnd"]),
            isolation_mz=tuple(float(value) for value in rows["IsolationMz"]),
            isolation_width=tuple(float(value) for value in rows["IsolationWidth"]),
            collision_energy=collision_energy,
        )

    used = {window_groups[frame_id] for frame_id in dia_frame_ids}
    undefined = sorted(used - set(settings))
    if undefined:
        raise SchemaError(f"Window groups without isolation windows: {undefined[:10]}")

    logging.info(
        f"Loaded {len(settings)} diaPASEF window groups covering {len(window_groups)} frames"
    )
    return window_groups, settings
