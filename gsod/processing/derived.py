"""Vapour pressure and relative humidity from daily mean temperature and dew point."""

from __future__ import annotations

from typing import Union

import numpy as np
import pandas as pd

ArrayLike = Union[float, np.ndarray, pd.Series]


def _as_float(value):
    if isinstance(value, pd.Series):
        return value.astype("float64")
    return np.asarray(value, dtype="float64")


def _unwrap(result):
    if isinstance(result, np.ndarray) and result.ndim == 0:
        return float(result)
    return result


def _magnus(temp_c):
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        return 6.11 * np.power(10.0, (7.5 * temp_c) / (237.7 + temp_c))


def saturation_vapour_pressure(temp: ArrayLike) -> ArrayLike:
    """es (hPa) for mean temperature in degrees C."""
    return _unwrap(_magnus(_as_float(temp)))


def actual_vapour_pressure(dewp: ArrayLike) -> ArrayLike:
    """ea (hPa) for dew point in degrees C."""
    return _unwrap(_magnus(_as_float(dewp)))


def relative_humidity(temp: ArrayLike, dewp: ArrayLike) -> ArrayLike:
    """RH (%) = 100 * ea / es. Not clamped; absent when either input is absent."""
    es = _magnus(_as_float(temp))
    ea = _magnus(_as_float(dewp))
    with np.errstate(divide="ignore", invalid="ignore"):
        return _unwrap(100.0 * ea / es)


def add_humidity(frame: pd.DataFrame, temp_col: str = "TEMP", dewp_col: str = "DEWP") -> pd.DataFrame:
    """
    Add EA, ES and RH columns in place and return the frame.

    All three are absent on rows missing either TEMP or DEWP. ES and EA are
    rounded to one decimal; RH is computed from the unrounded pressures.
    """
    temp = frame[temp_col].astype("float64")
    dewp = frame[dewp_col].astype("float64")
    complete = temp.notna() & dewp.notna()
    es = _magnus(temp.where(complete))
    ea = _magnus(dewp.where(complete))
    with np.errstate(divide="ignore", invalid="ignore"):
        rh = 100.0 * ea / es
    frame["EA"] = ea.round(1)
    frame["ES"] = es.round(1)
    frame["RH"] = rh.round(1)
    return frame
