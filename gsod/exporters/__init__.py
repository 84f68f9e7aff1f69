"""GSOD dataset exporters."""

from .base import BaseExporter
from .csv_exporter import CsvExporter
from .gpkg_exporter import GeoPackageExporter
from .registry import create_exporter

__all__ = [
    "BaseExporter",
    "CsvExporter",
    "GeoPackageExporter",
    "create_exporter",
]
