"""Station registry: the NCEI ``isd-history.csv`` list joined with corrected elevation."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from io import StringIO
from pathlib import Path
from typing import Iterable, List, Optional, Set, Union

import pandas as pd
import requests
from tenacity import Retrying

from ..core.config import NetworkSettings
from ..core.errors import ParseError, ValidationError
from .retry import call_with_retry, raise_for_status


logger = logging.getLogger(__name__)

STATION_LIST_COLUMNS = {
    "USAF": "USAF",
    "WBAN": "WBAN",
    "STATION NAME": "STN_NAME",
    "CTRY": "CTRY",
    "STATE": "STATE",
    "ICAO": "CALL",
    "LAT": "LAT",
    "LON": "LON",
    "ELEV(M)": "ELEV_M",
    "BEGIN": "BEGIN",
    "END": "END",
}
CORRECTED_ELEVATION = "ELEV_M_SRTM_90m"
AGROCLIMATOLOGY_LATITUDE = 60.0

METADATA_COLUMNS = [
    "STNID",
    "STN_NAME",
    "CTRY",
    "STATE",
    "CALL",
    "LAT",
    "LON",
    "ELEV_M",
    CORRECTED_ELEVATION,
    "BEGIN",
    "END",
]


@dataclass(frozen=True)
class StationRecord:
    stnid: str
    usaf: str
    wban: str
    name: Optional[str]
    country: Optional[str]
    state: Optional[str]
    call: Optional[str]
    lat: float
    lon: float
    elev_m: Optional[float]
    elev_m_srtm_90m: Optional[float]
    begin: Optional[dt.date]
    end: Optional[dt.date]


def _optional(value):
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return value


def _optional_date(value) -> Optional[dt.date]:
    value = _optional(value)
    return value.date() if value is not None else None


def fetch_station_list(
    session: requests.Session,
    settings: NetworkSettings,
    *,
    retrying: Optional[Retrying] = None,
) -> str:
    """Download the raw station list text."""
    url = settings.station_list_url

    def _get() -> str:
        response = session.get(url, timeout=settings.timeout)
        raise_for_status(response, url)
        return response.text

    logger.info(f"Fetching station list from {url}")
    return call_with_retry(_get, settings=settings, url=url, retrying=retrying)


def parse_station_list(text: str) -> pd.DataFrame:
    """Parse ``isd-history.csv`` text into a frame with the registry column names."""
    try:
        raw = pd.read_csv(
            StringIO(text),
            dtype={"USAF": str, "WBAN": str, "STATION NAME": str, "CTRY": str, "STATE": str, "ICAO": str,
                   "BEGIN": str, "END": str},
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as exc:
        raise ParseError(f"Station list could not be parsed: {exc}") from exc

    missing = [name for name in STATION_LIST_COLUMNS if name not in raw.columns]
    if missing:
        raise ParseError(f"Station list is missing columns: {', '.join(missing)}")

    frame = raw[list(STATION_LIST_COLUMNS)].rename(columns=STATION_LIST_COLUMNS)
    frame["USAF"] = frame["USAF"].str.strip().str.zfill(6)
    frame["WBAN"] = frame["WBAN"].str.strip().str.zfill(5)
    frame["STNID"] = frame["USAF"] + "-" + frame["WBAN"]
    for column in ("LAT", "LON", "ELEV_M"):
        frame[column] = pd.to_numeric(frame[column], errors="coerce")
    for column in ("BEGIN", "END"):
        frame[column] = pd.to_datetime(frame[column], format="%Y%m%d", errors="coerce")
    return frame


def clean_station_list(frame: pd.DataFrame) -> pd.DataFrame:
    """Drop stations with missing, out-of-range or (0, 0) coordinates and duplicate ids."""
    lat = frame["LAT"]
    lon = frame["LON"]
    valid = (
        lat.notna()
        & lon.notna()
        & lat.between(-90, 90)
        & lon.between(-180, 180)
        & ~((lat == 0) & (lon == 0))
    )
    cleaned = frame[valid].drop_duplicates(subset="STNID", keep="first")
    dropped = len(frame) - len(cleaned)
    if dropped:
        logger.info(f"Dropped {dropped} stations with invalid coordinates or duplicate ids")
    return cleaned.reset_index(drop=True)


def load_elevation_table(source: Union[None, str, Path, pd.DataFrame]) -> Optional[pd.DataFrame]:
    """Read the precomputed corrected-elevation table (``STNID``, ``ELEV_M_SRTM_90m``)."""
    if source is None:
        return None
    if isinstance(source, pd.DataFrame):
        table = source.copy()
    else:
        path = Path(source).expanduser()
        if not path.exists():
            raise ValidationError(f"Elevation table not found: {path}")
        table = pd.read_csv(path, dtype={"STNID": str})
    missing = [name for name in ("STNID", CORRECTED_ELEVATION) if name not in table.columns]
    if missing:
        raise ValidationError(f"Elevation table is missing columns: {', '.join(missing)}")
    table = table[["STNID", CORRECTED_ELEVATION]].drop_duplicates(subset="STNID", keep="first")
    table[CORRECTED_ELEVATION] = pd.to_numeric(table[CORRECTED_ELEVATION], errors="coerce")
    return table


def join_elevation(frame: pd.DataFrame, table: Optional[pd.DataFrame]) -> pd.DataFrame:
    """
    Left-join corrected elevation onto the station frame.

    The correction only covers latitudes within +/-60 degrees; outside that
    band the value is always absent. Reported elevation is never copied in.
    """
    if table is None:
        joined = frame.copy()
        joined[CORRECTED_ELEVATION] = float("nan")
    else:
        joined = frame.drop(columns=[CORRECTED_ELEVATION], errors="ignore").merge(table, on="STNID", how="left")
    outside = joined["LAT"].abs() > AGROCLIMATOLOGY_LATITUDE
    joined.loc[outside, CORRECTED_ELEVATION] = float("nan")
    return joined


class StationRegistry:
    """Read-only view over the cleaned station list, indexed by STNID."""

    def __init__(self, frame: pd.DataFrame) -> None:
        if CORRECTED_ELEVATION not in frame.columns:
            frame = join_elevation(frame, None)
        self._frame = frame.set_index("STNID", drop=False)

    def __len__(self) -> int:
        return len(self._frame)

    def __contains__(self, stnid: object) -> bool:
        return stnid in self._frame.index

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    @property
    def metadata(self) -> pd.DataFrame:
        """Station attributes joined onto every observation row."""
        return self._frame[METADATA_COLUMNS].reset_index(drop=True)

    def station_ids(self) -> List[str]:
        return list(self._frame.index)

    def get(self, stnid: str) -> Optional[StationRecord]:
        if stnid not in self._frame.index:
            return None
        row = self._frame.loc[stnid]
        return StationRecord(
            stnid=stnid,
            usaf=row["USAF"],
            wban=row["WBAN"],
            name=_optional(row["STN_NAME"]),
            country=_optional(row["CTRY"]),
            state=_optional(row["STATE"]),
            call=_optional(row["CALL"]),
            lat=float(row["LAT"]),
            lon=float(row["LON"]),
            elev_m=_optional(row["ELEV_M"]),
            elev_m_srtm_90m=_optional(row[CORRECTED_ELEVATION]),
            begin=_optional_date(row["BEGIN"]),
            end=_optional_date(row["END"]),
        )

    def lookup(self, stnid: str) -> StationRecord:
        record = self.get(stnid)
        if record is None:
            raise KeyError(stnid)
        return record

    def validate_stations(self, station_ids: Iterable[str], years: Iterable[int]) -> None:
        """
        Check requested stations exist; warn when a year falls outside a station's record.

        Raises:
            ValidationError: naming the first unknown station id.
        """
        years = list(years)
        for stnid in station_ids:
            record = self.get(stnid)
            if record is None:
                raise ValidationError(
                    f"{stnid} is not a valid station ID number, please check your entry. "
                    "Station IDs can be found in the station registry STNID column."
                )
            if not years or record.begin is None or record.end is None:
                continue
            if min(years) < record.begin.year or max(years) > record.end.year:
                logger.warning(
                    f"This station, {stnid}, only provides data for years {record.begin.year} to {record.end.year}."
                )

    def agroclimatology_ids(self) -> Set[str]:
        within = self._frame["LAT"].abs() <= AGROCLIMATOLOGY_LATITUDE
        return set(self._frame.index[within])

    def country_ids(self, country: str) -> Set[str]:
        return set(self._frame.index[self._frame["CTRY"] == country])


def load_station_registry(
    session: requests.Session,
    settings: NetworkSettings,
    *,
    elevation_table: Union[None, str, Path, pd.DataFrame] = None,
    retrying: Optional[Retrying] = None,
) -> StationRegistry:
    """Fetch, clean and elevation-correct the station list; failures are fatal."""
    table = load_elevation_table(elevation_table)

    text = fetch_station_list(session, settings, retrying=retrying)
    frame = clean_station_list(parse_station_list(text))
    registry = StationRegistry(join_elevation(frame, table))
    logger.info(f"Loaded {len(registry)} stations")
    return registry
