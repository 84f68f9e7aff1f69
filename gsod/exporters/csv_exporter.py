"""Comma-separated text output."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from .base import BaseExporter


class CsvExporter(BaseExporter):
    """Header row plus one line per station-day; absent values are empty fields."""

    extension = ".csv"

    def write(self, frame: pd.DataFrame, path: Path) -> None:
        frame.to_csv(path, index=False, na_rep="", date_format="%Y-%m-%d")
