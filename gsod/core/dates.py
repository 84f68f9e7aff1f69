from __future__ import annotations

import calendar
import datetime as dt
import numbers
from typing import Iterable, List, Optional

from .errors import ValidationError

FIRST_ARCHIVE_YEAR = 1929


def current_year(today: Optional[dt.date] = None) -> int:
    return (today or dt.date.today()).year


def days_in_year(year: int) -> int:
    """Return the number of calendar days in ``year`` (366 for leap years)."""
    return 366 if calendar.isleap(year) else 365


def validate_years(years: Iterable[object], *, today: Optional[dt.date] = None) -> List[int]:
    """
    Check requested years against the archive coverage.

    Returns the unique years in ascending order.

    Raises:
        ValidationError: if no year was given, a value is not an integer, or a
            year falls outside [1929, current year].
    """
    if years is None or isinstance(years, (str, bytes)):
        raise ValidationError("You must provide at least one year of data to download in a numeric format.")
    if isinstance(years, numbers.Integral):
        years = [years]

    latest = current_year(today)
    checked: List[int] = []
    for value in years:
        if isinstance(value, bool) or not isinstance(value, numbers.Integral):
            raise ValidationError(f"{value!r} is not a valid year.")
        year = int(value)
        if year <= 0:
            raise ValidationError(f"{year} is not a valid year.")
        if year < FIRST_ARCHIVE_YEAR:
            raise ValidationError(
                f"The GSOD data files start at {FIRST_ARCHIVE_YEAR}, you have entered a year prior to that ({year})."
            )
        if year > latest:
            raise ValidationError(f"The year cannot be greater than the current year ({year} > {latest}).")
        checked.append(year)

    if not checked:
        raise ValidationError("You must provide at least one year of data to download.")
    return sorted(set(checked))


def parse_yearmoda(token: str) -> dt.date:
    """Parse a ``YYYYMMDD`` token; raises ``ValueError`` on malformed input."""
    token = token.strip()
    if len(token) != 8 or not token.isdigit():
        raise ValueError(f"Invalid YEARMODA value {token!r}")
    return dt.date(int(token[:4]), int(token[4:6]), int(token[6:]))
