# tests/conftest.py

"""
Shared fixtures: synthetic TIMS-TOF acquisition directories.

A dataset is described as a list of frame specs, each holding its scans as
lists of (mobility_index, intensity) pairs. The builder writes the frame
blocks with a small test-only encoder and the matching analysis.tdf tables.
"""

import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from timsread.decompression.varint import encode_varint, zigzag_encode

ScanSpec = Sequence[Tuple[int, int]]

DEFAULT_GLOBAL_METADATA = {
    "TimsCompressionType": "2",
    "MzAcqRangeLower": "100.0",
    "MzAcqRangeUpper": "1700.0",
    "DigitizerNumSamples": "400000",
    "OneOverK0AcqRangeLower": "0.6",
    "OneOverK0AcqRangeUpper": "1.6",
    "AcquisitionSoftware": "Bruker timsControl",
    "InstrumentName": "timsTOF Pro",
}


def encode_block(scans: Sequence[ScanSpec]) -> bytes:
    """Encode scans into one compressed frame block."""
    encoded = bytearray()
    for scan in scans:
        encoded += encode_varint(len(scan))
    for scan in scans:
        previous = 0
        for mobility_index, intensity in scan:
            encoded += encode_varint(zigzag_encode(mobility_index - previous))
            encoded += encode_varint(intensity)
            previous = mobility_index
    return bytes(encoded)


def frame_spec(
    frame_id: int,
    scans: Sequence[ScanSpec],
    msms_type: int = 0,
    accumulation_time: Optional[float] = 100.0,
    time: Optional[float] = None,
) -> Dict[str, Any]:
    return {
        "id": frame_id,
        "scans": [list(scan) for scan in scans],
        "msms_type": msms_type,
        "accumulation_time": accumulation_time,
        "time": time if time is not None else 0.1 * frame_id,
    }


def build_dataset(
    directory: Path,
    frames: List[Dict[str, Any]],
    global_metadata: Optional[Dict[str, str]] = None,
    maldi_rows: Optional[List[Dict[str, Any]]] = None,
    extended_columns: bool = True,
    blocks: Optional[Dict[int, bytes]] = None,
    offsets: Optional[Dict[int, int]] = None,
    write_binary: bool = True,
    dia_frame_groups: Optional[Dict[int, int]] = None,
    dia_windows: Optional[List[Dict[str, Any]]] = None,
) -> Path:
    """
    Write a synthetic acquisition directory.

    Args:
        directory: Directory to create (the ".d" folder)
        frames: Frame specs from ``frame_spec``
        global_metadata: GlobalMetadata key/values (None for defaults, {} for
            no table)
        maldi_rows: Rows of MaldiFrameInfo (None for no table)
        extended_columns: Write the optional frame table columns
        blocks: Raw block overrides per frame id
        offsets: TimsId overrides per frame id
        write_binary: Write analysis.tdf_bin
        dia_frame_groups: DiaFrameMsMsInfo frame id -> window group (None for
            no table)
        dia_windows: Rows of DiaFrameMsMsWindows (None for no table)
    """
    directory.mkdir(parents=True, exist_ok=True)
    blocks = blocks or {}
    offsets = offsets or {}

    binary = bytearray()
    rows = []
    for spec in frames:
        block = blocks.get(spec["id"], encode_block(spec["scans"]))
        tims_id = offsets.get(spec["id"], len(binary))
        binary += block
        intensities = [intensity for scan in spec["scans"] for _, intensity in scan]
        rows.append(
            {
                "Id": spec["id"],
                "Time": spec["time"],
                "NumScans": len(spec["scans"]),
                "NumPeaks": len(intensities),
                "TimsId": tims_id,
                "Polarity": "+",
                "ScanMode": 9,
                "MsMsType": spec["msms_type"],
                "AccumulationTime": spec["accumulation_time"],
                "SummedIntensities": sum(intensities),
                "MaxIntensity": max(intensities, default=0),
            }
        )

    if write_binary:
        (directory / "analysis.tdf_bin").write_bytes(bytes(binary))

    columns = ["Id", "Time", "NumScans", "NumPeaks", "TimsId"]
    if extended_columns:
        columns += [
            "Polarity",
            "ScanMode",
            "MsMsType",
            "AccumulationTime",
            "SummedIntensities",
            "MaxIntensity",
        ]

    connection = sqlite3.connect(directory / "analysis.tdf")
    try:
        connection.execute(f"CREATE TABLE Frames ({', '.join(columns)})")
        connection.executemany(
            f"INSERT INTO Frames VALUES ({', '.join('?' for _ in columns)})",
            [tuple(row[name] for name in columns) for row in rows],
        )

        if global_metadata is None:
            global_metadata = DEFAULT_GLOBAL_METADATA
        if global_metadata:
            connection.execute("CREATE TABLE GlobalMetadata (Key TEXT PRIMARY KEY, Value TEXT)")
            connection.executemany(
                "INSERT INTO GlobalMetadata VALUES (?, ?)", list(global_metadata.items())
            )

        if maldi_rows is not None:
            maldi_columns = ["Frame", "XIndexPos", "YIndexPos", "SpotName", "MotorPositionX",
                             "MotorPositionY", "LaserPower", "NumLaserShots"]
            connection.execute(f"CREATE TABLE MaldiFrameInfo ({', '.join(maldi_columns)})")
            connection.executemany(
                f"INSERT INTO MaldiFrameInfo VALUES ({', '.join('?' for _ in maldi_columns)})",
                [tuple(row.get(name) for name in maldi_columns) for row in maldi_rows],
            )

        if dia_frame_groups is not None:
            connection.execute("CREATE TABLE DiaFrameMsMsInfo (Frame, WindowGroup)")
            connection.executemany(
                "INSERT INTO DiaFrameMsMsInfo VALUES (?, ?)", list(dia_frame_groups.items())
            )

        if dia_windows is not None:
            window_columns = ["WindowGroup", "ScanNumBegin", "ScanNumEnd", "IsolationMz",
                              "IsolationWidth", "CollisionEnergy"]
            connection.execute(f"CREATE TABLE DiaFrameMsMsWindows ({', '.join(window_columns)})")
            connection.executemany(
                f"INSERT INTO DiaFrameMsMsWindows VALUES ({', '.join('?' for _ in window_columns)})",
                [tuple(row.get(name) for name in window_columns) for row in dia_windows],
            )
        connection.commit()
    finally:
        connection.close()

    return directory


def maldi_row(frame_id: int, x: int, y: int) -> Dict[str, Any]:
    return {
        "Frame": frame_id,
        "XIndexPos": x,
        "YIndexPos": y,
        "SpotName": f"R00X{x:03d}Y{y:03d}",
        "MotorPositionX": 20.0 * x,
        "MotorPositionY": 20.0 * y,
        "LaserPower": 70.0,
        "NumLaserShots": 200,
    }


def dia_window(group: int, begin: int, end: int, mz: float, width: float = 25.0) -> Dict[str, Any]:
    return {
        "WindowGroup": group,
        "ScanNumBegin": begin,
        "ScanNumEnd": end,
        "IsolationMz": mz,
        "IsolationWidth": width,
        "CollisionEnergy": 20.0 + begin / 10,
    }


# Two window groups of two windows each, listed out of scan order
DIA_WINDOWS = [
    dia_window(1, 50, 99, 500.0),
    dia_window(1, 0, 49, 400.0),
    dia_window(2, 0, 49, 450.0),
    dia_window(2, 50, 99, 550.0),
]


# The [2, 0, 1] scenario: 02 00 01 0a 64 06 32 0e 14
SCENARIO_SCANS = [[(5, 100), (8, 50)], [], [(7, 20)]]
SCENARIO_BYTES = bytes.fromhex("02 00 01 0a 64 06 32 0e 14")


def standard_frames() -> List[Dict[str, Any]]:
    """Five frames mixing MS1 and ddaPASEF MS2, including an empty frame"""
    return [
        frame_spec(1, SCENARIO_SCANS, msms_type=0),
        frame_spec(2, [[(3, 10), (4, 11), (9, 12)], [(1, 5)]], msms_type=8),
        frame_spec(3, [], msms_type=0, accumulation_time=None),
        frame_spec(4, [[], [], [(0, 1), (200, 70000)]], msms_type=8, accumulation_time=50.0),
        frame_spec(5, [[(1, 1)], [(2, 2)], [(3, 3)], [(4, 4)]], msms_type=0),
    ]


@pytest.fixture
def block_encoder():
    """The test-only frame block encoder"""
    return encode_block


@pytest.fixture
def dataset_factory(tmp_path):
    """Factory building synthetic acquisition directories under tmp_path."""
    counter = {"n": 0}

    def _make(frames=None, **kwargs) -> Path:
        counter["n"] += 1
        directory = tmp_path / f"dataset_{counter['n']}.d"
        return build_dataset(
            directory, frames if frames is not None else standard_frames(), **kwargs
        )

    return _make


@pytest.fixture
def standard_dataset(dataset_factory) -> Path:
    """Non-imaging ddaPASEF dataset with five frames"""
    return dataset_factory()


@pytest.fixture
def dia_dataset(dataset_factory) -> Path:
    """diaPASEF dataset: MS1 frames 1 and 4, fragment frames 2, 3 (group 1) and 5 (group 2)"""
    frames = [
        frame_spec(1, SCENARIO_SCANS, msms_type=0),
        frame_spec(2, [[(3, 10)], [(4, 11)]], msms_type=9),
        frame_spec(3, [[(5, 12)], []], msms_type=9),
        frame_spec(4, [[(6, 13)]], msms_type=0),
        frame_spec(5, [[], [(7, 14)]], msms_type=9),
    ]
    return dataset_factory(
        frames, dia_frame_groups={2: 1, 3: 1, 5: 2}, dia_windows=DIA_WINDOWS
    )


@pytest.fixture
def maldi_dataset(dataset_factory) -> Path:
    """Imaging dataset: four frames on a 2 x 2 pixel grid starting at (10, 20)"""
    frames = [
        frame_spec(frame_id, [[(frame_id, 10 * frame_id)], []])
        for frame_id in range(1, 5)
    ]
    rows = [
        maldi_row(1, 10, 20),
        maldi_row(2, 11, 20),
        maldi_row(3, 10, 21),
        maldi_row(4, 11, 21),
    ]
    return dataset_factory(frames, maldi_rows=rows)
