"""Country name / ISO code resolution against the bundled reference table."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from ..core.errors import ValidationError


logger = logging.getLogger(__name__)

COUNTRY_TABLE_PATH = Path(__file__).resolve().parent.parent / "data" / "country_list.csv"
COUNTRY_COLUMNS = ("FIPS", "COUNTRY_NAME", "ISO2C", "ISO3C")


def load_country_table(path: Optional[Union[str, Path]] = None) -> pd.DataFrame:
    """
    Read a country reference table (FIPS, COUNTRY_NAME, ISO2C, ISO3C).

    ``keep_default_na`` is off so Namibia's ISO code "NA" survives.
    """
    if path is None:
        return _default_country_table().copy()
    return _read_country_table(Path(path))


@lru_cache(maxsize=1)
def _default_country_table() -> pd.DataFrame:
    return _read_country_table(COUNTRY_TABLE_PATH)


def _read_country_table(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise ValidationError(f"Country table not found: {path}")
    table = pd.read_csv(path, dtype=str, keep_default_na=False)
    missing = [name for name in COUNTRY_COLUMNS if name not in table.columns]
    if missing:
        raise ValidationError(f"Country table {path} is missing columns: {', '.join(missing)}")
    for column in COUNTRY_COLUMNS:
        table[column] = table[column].str.strip().str.upper()
    return table


def resolve_country(value: str, table: Optional[pd.DataFrame] = None) -> str:
    """
    Return the FIPS designation (the station list's CTRY code) for ``value``.

    Three letters are matched as ISO3; two letters as ISO2 first and FIPS
    second; anything else as a full country name.

    Raises:
        ValidationError: when nothing in the table matches.
    """
    if table is None:
        table = _default_country_table()
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{value!r} is not a valid country name or ISO code.")
    token = value.strip().upper()

    if len(token) == 3:
        candidates = [("ISO3C", token)]
    elif len(token) == 2:
        candidates = [("ISO2C", token), ("FIPS", token)]
    else:
        candidates = [("COUNTRY_NAME", token)]

    for column, key in candidates:
        matches = table.loc[table[column] == key, "FIPS"]
        if not matches.empty:
            fips = matches.iloc[0]
            logger.debug(f"Resolved country {value!r} to {fips} via {column}")
            return fips

    raise ValidationError(
        f"{value!r} is not a valid country; provide a name or a 2 or 3 letter ISO country code "
        "listed in the country table."
    )
