"""Single-layer point GeoPackage output."""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import pandas as pd
from shapely.geometry import Point

from .base import BaseExporter

LAYER_NAME = "GSOD"
CRS = "EPSG:4326"


def to_geodataframe(frame: pd.DataFrame) -> gpd.GeoDataFrame:
    """
    Attach WGS84 lon/lat point geometry to the observations.

    Categorical flags become plain strings so they map onto text fields.
    Nullable counts stay ``Int64``; pyogrio writes them as integer fields
    with absent values as NULL.
    """
    data = frame.copy()
    for column in data.columns:
        dtype = data[column].dtype
        if isinstance(dtype, pd.CategoricalDtype):
            data[column] = data[column].astype(object).where(data[column].notna(), None)
    geometry = [
        Point(lon, lat) if pd.notna(lon) and pd.notna(lat) else None
        for lon, lat in zip(data["LON"], data["LAT"])
    ]
    return gpd.GeoDataFrame(data, geometry=geometry, crs=CRS)


class GeoPackageExporter(BaseExporter):
    extension = ".gpkg"

    def write(self, frame: pd.DataFrame, path: Path) -> None:
        to_geodataframe(frame).to_file(path, layer=LAYER_NAME, driver="GPKG", engine="pyogrio")
