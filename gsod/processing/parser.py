"""
Parsing of GSOD fixed-width ``.op.gz`` station-year files.

Each data line describes one station-day in legacy units. Lines are parsed
against a strict column layout; anything that does not fit raises
``ParseError`` rather than being coerced to a missing value.
"""

from __future__ import annotations

import gzip
import logging
import zlib
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from ..clients.base import BatchExecutorMixin
from ..clients.stations import CORRECTED_ELEVATION, METADATA_COLUMNS, StationRegistry
from ..core.dates import parse_yearmoda
from ..core.errors import ParseError
from .derived import add_humidity


logger = logging.getLogger(__name__)

HEADER_PREFIX = "STN---"
LINE_WIDTH = 138

FAHRENHEIT_OFFSET = 32.0
INCHES_TO_MM = 25.4
KNOTS_TO_MS = 0.514444
MILES_TO_KM = 1.609344

# name: (start, end, missing sentinel)
MEASUREMENTS: Dict[str, Tuple[int, int, float]] = {
    "TEMP": (24, 30, 9999.9),
    "DEWP": (35, 41, 9999.9),
    "SLP": (46, 52, 9999.9),
    "STP": (57, 63, 9999.9),
    "VISIB": (68, 73, 999.9),
    "WDSP": (78, 83, 999.9),
    "MXSPD": (88, 93, 999.9),
    "GUST": (95, 100, 999.9),
    "MAX": (102, 108, 9999.9),
    "MIN": (110, 116, 9999.9),
    "PRCP": (118, 123, 99.99),
    "SNDP": (125, 130, 999.9),
}

COUNTS: Dict[str, Tuple[int, int]] = {
    "TEMP_CNT": (31, 33),
    "DEWP_CNT": (42, 44),
    "SLP_CNT": (53, 55),
    "STP_CNT": (64, 66),
    "VISIB_CNT": (74, 76),
    "WDSP_CNT": (84, 86),
}

# name: (column, allowed values)
FLAGS: Dict[str, Tuple[int, Tuple[str, ...]]] = {
    "MAX_FLAG": (108, ("*",)),
    "MIN_FLAG": (116, ("*",)),
    "PRCP_FLAG": (123, tuple("ABCDEFGHI")),
}

USAF_SLICE = slice(0, 6)
WBAN_SLICE = slice(7, 12)
YEARMODA_SLICE = slice(14, 22)
FRSHTT_SLICE = slice(132, 138)

INDICATORS = ["I_FOG", "I_RAIN_DRIZZLE", "I_SNOW_ICE", "I_HAIL", "I_THUNDER", "I_TORNADO_FUNNEL"]

OUTPUT_COLUMNS = [
    "USAF", "WBAN", "STNID", "STN_NAME", "CTRY", "STATE", "CALL", "LAT", "LON", "ELEV_M", CORRECTED_ELEVATION,
    "BEGIN", "END", "YEARMODA", "YEAR", "MONTH", "DAY", "YDAY",
    "TEMP", "TEMP_CNT", "DEWP", "DEWP_CNT", "SLP", "SLP_CNT", "STP", "STP_CNT",
    "VISIB", "VISIB_CNT", "WDSP", "WDSP_CNT", "MXSPD", "GUST",
    "MAX", "MAX_FLAG", "MIN", "MIN_FLAG", "PRCP", "PRCP_FLAG", "SNDP",
    *INDICATORS,
    "EA", "ES", "RH",
]


def fahrenheit_to_celsius(values):
    return ((values - FAHRENHEIT_OFFSET) * 5.0 / 9.0).round(1)


def read_data_lines(path: Union[str, Path]) -> List[Tuple[int, str]]:
    """
    Decompress ``path`` and return ``(line_number, text)`` for every data line.

    The column header line and blank lines are left out.
    """
    path = Path(path)
    try:
        with gzip.open(path, "rt", encoding="latin-1", newline="") as handle:
            raw_lines = handle.read().splitlines()
    except (OSError, EOFError, zlib.error) as exc:
        raise ParseError(f"cannot decompress archive file: {exc}", path=str(path)) from exc

    lines: List[Tuple[int, str]] = []
    for number, line in enumerate(raw_lines, start=1):
        if not line.strip() or line.startswith(HEADER_PREFIX):
            continue
        lines.append((number, line))
    return lines


def _parse_float(token: str, name: str, path: str, number: int) -> float:
    try:
        return float(token)
    except ValueError:
        raise ParseError(f"{name} value {token.strip()!r} is not numeric", path=path, line_number=number) from None


def _parse_count(token: str, name: str, path: str, number: int) -> int:
    token = token.strip()
    if not token.isdigit():
        raise ParseError(f"{name} value {token!r} is not a count", path=path, line_number=number)
    return int(token)


def parse_lines(lines: Iterable[Tuple[int, str]], path: str = "<memory>") -> pd.DataFrame:
    """Turn raw fixed-width lines into a frame of legacy-unit values."""
    columns: Dict[str, list] = {name: [] for name in ["USAF", "WBAN", "YEARMODA", *MEASUREMENTS, *COUNTS, *FLAGS,
                                                        *INDICATORS]}
    for number, line in lines:
        if len(line.rstrip("\r\n")) < LINE_WIDTH:
            raise ParseError(
                f"expected at least {LINE_WIDTH} columns, found {len(line.rstrip())}", path=path, line_number=number
            )

        usaf = line[USAF_SLICE].strip()
        wban = line[WBAN_SLICE].strip()
        if len(usaf) != 6 or not usaf.isalnum():
            raise ParseError(f"USAF id {usaf!r} is malformed", path=path, line_number=number)
        if len(wban) != 5 or not wban.isdigit():
            raise ParseError(f"WBAN id {wban!r} is malformed", path=path, line_number=number)
        columns["USAF"].append(usaf)
        columns["WBAN"].append(wban)

        try:
            columns["YEARMODA"].append(parse_yearmoda(line[YEARMODA_SLICE]))
        except ValueError as exc:
            token = line[YEARMODA_SLICE].strip()
            raise ParseError(f"YEARMODA value {token!r} is not a date: {exc}", path=path, line_number=number) from None

        for name, (start, end, _sentinel) in MEASUREMENTS.items():
            columns[name].append(_parse_float(line[start:end], name, path, number))
        for name, (start, end) in COUNTS.items():
            columns[name].append(_parse_count(line[start:end], name, path, number))
        for name, (position, allowed) in FLAGS.items():
            flag = line[position]
            if flag == " ":
                columns[name].append(None)
            elif flag in allowed:
                columns[name].append(flag)
            else:
                raise ParseError(f"{name} value {flag!r} is not a known flag", path=path, line_number=number)

        frshtt = line[FRSHTT_SLICE]
        if len(frshtt) != 6 or any(ch not in "01" for ch in frshtt):
            raise ParseError(f"FRSHTT value {frshtt!r} is malformed", path=path, line_number=number)
        for name, ch in zip(INDICATORS, frshtt):
            columns[name].append(int(ch))

    # explicit dtypes so a file with no data lines still carries the full schema
    frame = pd.DataFrame(
        {
            "USAF": pd.Series(columns["USAF"], dtype=str),
            "WBAN": pd.Series(columns["WBAN"], dtype=str),
            "YEARMODA": pd.Series(columns["YEARMODA"], dtype=object),
            **{name: pd.Series(columns[name], dtype="float64") for name in MEASUREMENTS},
            **{name: pd.Series(columns[name], dtype="Int64") for name in COUNTS},
            **{
                name: pd.Categorical(columns[name], categories=list(allowed))
                for name, (_position, allowed) in FLAGS.items()
            },
            **{name: pd.Series(columns[name], dtype="int64") for name in INDICATORS},
        }
    )
    return frame


def normalise(frame: pd.DataFrame) -> pd.DataFrame:
    """Replace missing sentinels, convert to SI units and decompose the date."""
    frame = frame.copy()
    for name, (_start, _end, sentinel) in MEASUREMENTS.items():
        frame[name] = frame[name].mask(frame[name] == sentinel)

    for name in ("TEMP", "DEWP", "MAX", "MIN"):
        frame[name] = fahrenheit_to_celsius(frame[name])
    for name in ("SLP", "STP"):
        frame[name] = frame[name].round(1)
    frame["VISIB"] = (frame["VISIB"] * MILES_TO_KM).round(1)
    for name in ("WDSP", "MXSPD", "GUST"):
        frame[name] = (frame[name] * KNOTS_TO_MS).round(1)
    frame["PRCP"] = (frame["PRCP"] * INCHES_TO_MM).round(2)
    frame["SNDP"] = (frame["SNDP"] * INCHES_TO_MM).round(1)

    frame["STNID"] = frame["USAF"] + "-" + frame["WBAN"]
    dates = pd.to_datetime(frame["YEARMODA"])
    frame["YEARMODA"] = dates
    frame["YEAR"] = dates.dt.year.astype("int64")
    frame["MONTH"] = dates.dt.month.astype("int64")
    frame["DAY"] = dates.dt.day.astype("int64")
    frame["YDAY"] = dates.dt.dayofyear.astype("int64")
    return add_humidity(frame)


def attach_station_metadata(frame: pd.DataFrame, registry: Optional[StationRegistry]) -> pd.DataFrame:
    """
    Left-join station attributes by STNID.

    Stations missing from the registry keep absent metadata; corrected
    elevation stays absent wherever the registry has none.
    """
    if registry is None:
        metadata = pd.DataFrame({name: pd.Series(dtype=str) for name in METADATA_COLUMNS})
        for name in ("LAT", "LON", "ELEV_M", CORRECTED_ELEVATION):
            metadata[name] = pd.Series(dtype="float64")
        for name in ("BEGIN", "END"):
            metadata[name] = pd.Series(dtype="datetime64[ns]")
    else:
        metadata = registry.metadata
    joined = frame.merge(metadata, on="STNID", how="left", validate="many_to_one")
    return joined[OUTPUT_COLUMNS]


def empty_frame() -> pd.DataFrame:
    """A zero-row frame carrying the full output schema."""
    return attach_station_metadata(normalise(parse_lines([])), None)


def parse_archive_file(path: Union[str, Path], registry: Optional[StationRegistry] = None) -> pd.DataFrame:
    """Parse and normalize one station-year file; raises ``ParseError`` on malformed content."""
    path = Path(path)
    raw = parse_lines(read_data_lines(path), path=str(path))
    frame = attach_station_metadata(normalise(raw), registry)
    logger.debug(f"Parsed {len(frame)} records from {path.name}")
    return frame


class ArchiveParser(BatchExecutorMixin):
    """Parses many archive files concurrently against one shared registry."""

    def __init__(
        self,
        registry: Optional[StationRegistry],
        *,
        max_workers: Optional[int] = None,
        isolate_errors: bool = True,
    ) -> None:
        self.registry = registry
        self.max_workers = max_workers
        self.isolate_errors = isolate_errors
        self.failures: List[Tuple[Path, ParseError]] = []

    def _parse_one(self, path: Path) -> pd.DataFrame:
        return parse_archive_file(path, self.registry)

    def parse(self, paths: Sequence[Union[str, Path]]) -> List[pd.DataFrame]:
        """Return one frame per successfully parsed file, in input order."""
        path_list = [Path(p) for p in paths]
        outcomes = self._run_batch(
            ({"path": path} for path in path_list),
            self._parse_one,
            batch_size=max(1, len(path_list)),
            max_workers=self.max_workers,
        )
        frames: List[pd.DataFrame] = []
        for path, outcome in zip(path_list, outcomes):
            if isinstance(outcome, ParseError):
                if not self.isolate_errors:
                    raise outcome
                logger.warning(f"Skipping {path.name}: {outcome}")
                self.failures.append((path, outcome))
                continue
            if isinstance(outcome, Exception):
                raise outcome
            frames.append(outcome)
        return frames


def parse_archive_files(
    paths: Sequence[Union[str, Path]],
    registry: Optional[StationRegistry] = None,
    *,
    max_workers: Optional[int] = None,
    isolate_errors: bool = True,
) -> List[pd.DataFrame]:
    return ArchiveParser(registry, max_workers=max_workers, isolate_errors=isolate_errors).parse(paths)
