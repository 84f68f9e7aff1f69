"""Output format registry."""

from __future__ import annotations

from typing import Dict, Type

from .base import BaseExporter
from .csv_exporter import CsvExporter
from .gpkg_exporter import GeoPackageExporter

EXPORTERS: Dict[str, Type[BaseExporter]] = {
    "csv": CsvExporter,
    "gpkg": GeoPackageExporter,
}


def create_exporter(kind: str) -> BaseExporter:
    """
    Factory function returning the exporter for an output format.

    Args:
        kind: ``"csv"`` or ``"gpkg"`` (case-insensitive).
    """
    try:
        return EXPORTERS[kind.lower()]()
    except KeyError:
        raise ValueError(f"Unknown output format: {kind}") from None
