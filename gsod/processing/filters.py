"""Completeness and station-selection filters over cached archive files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple, Union

from ..clients.archive import ArchiveFile
from ..clients.stations import StationRegistry
from ..core.dates import days_in_year
from ..core.errors import ParseError, ValidationError
from .parser import read_data_lines


logger = logging.getLogger(__name__)


def count_observation_days(file: Union[ArchiveFile, str, Path]) -> int:
    """Number of present observation lines (header and blank lines excluded)."""
    path = file.path if isinstance(file, ArchiveFile) else file
    return len(read_data_lines(path))


def is_complete(file: ArchiveFile, max_missing: int) -> bool:
    """True unless the file has fewer than ``days_in_year - max_missing`` observations."""
    expected = days_in_year(file.year)
    present = count_observation_days(file)
    return present >= expected - max_missing


def filter_completeness(
    files: Iterable[ArchiveFile],
    max_missing: int,
    *,
    isolate_errors: bool = True,
    failures: Optional[List[Tuple[Path, ParseError]]] = None,
) -> List[ArchiveFile]:
    """
    Keep the files with at most ``max_missing`` absent days.

    An unreadable file is skipped and, when ``failures`` is given, recorded
    there as ``(path, error)``.
    """
    if isinstance(max_missing, bool) or not isinstance(max_missing, int) or max_missing < 1:
        raise ValidationError(f"The 'max_missing' parameter must be a positive integer (>= 1), got {max_missing!r}.")
    logger.info("Checking stations against max_missing value")
    kept: List[ArchiveFile] = []
    for file in files:
        try:
            complete = is_complete(file, max_missing)
        except ParseError as exc:
            if not isolate_errors:
                raise
            logger.warning(f"Skipping {file.name}: {exc}")
            if failures is not None:
                failures.append((file.path, exc))
            continue
        if complete:
            kept.append(file)
        else:
            logger.debug(f"Dropping {file.name}: more than {max_missing} missing days")
    return kept


def select_stations(files: Iterable[ArchiveFile], station_ids: Set[str]) -> List[ArchiveFile]:
    """Keep the files whose station is in ``station_ids``, preserving order."""
    return [file for file in files if file.station_id in station_ids]


def filter_agroclimatology(files: Iterable[ArchiveFile], registry: StationRegistry) -> List[ArchiveFile]:
    """Keep stations between 60 degrees south and 60 degrees north."""
    return select_stations(files, registry.agroclimatology_ids())


def filter_country(files: Iterable[ArchiveFile], registry: StationRegistry, country: str) -> List[ArchiveFile]:
    """Keep stations whose CTRY equals the resolved FIPS designation ``country``."""
    return select_stations(files, registry.country_ids(country))
