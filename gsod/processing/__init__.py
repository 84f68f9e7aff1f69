"""Parsing, derived variables and file filters."""

from .derived import add_humidity, actual_vapour_pressure, relative_humidity, saturation_vapour_pressure
from .filters import filter_agroclimatology, filter_completeness, filter_country
from .parser import OUTPUT_COLUMNS, ArchiveParser, parse_archive_file, parse_archive_files

__all__ = [
    "add_humidity",
    "actual_vapour_pressure",
    "relative_humidity",
    "saturation_vapour_pressure",
    "filter_agroclimatology",
    "filter_completeness",
    "filter_country",
    "OUTPUT_COLUMNS",
    "ArchiveParser",
    "parse_archive_file",
    "parse_archive_files",
]
