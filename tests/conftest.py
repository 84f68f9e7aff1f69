"""Shared fixtures: synthetic GSOD lines, archive files and a fake HTTP session."""

import gzip
import io
import sys
import tarfile
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gsod.clients.stations import StationRegistry, clean_station_list, join_elevation, parse_station_list  # noqa: E402
from gsod.core.config import NetworkSettings  # noqa: E402

HEADER = (
    "STN--- WBAN   YEARMODA    TEMP       DEWP      SLP        STP       VISIB      WDSP     MXSPD   GUST    "
    "MAX     MIN   PRCP   SNDP   FRSHTT"
)

SAMPLE_LINE = (
    "030050 99999  19291001    45.2  4    40.1  4  1007.3  4  9999.9  0    7.5  4   13.7  4   18.1  999.9    "
    "53.1*   42.1*  0.00I 999.9  000000"
)

STATION_LIST = """\
"USAF","WBAN","STATION NAME","CTRY","STATE","ICAO","LAT","LON","ELEV(M)","BEGIN","END"
"030050","99999","LERWICK","UK","","","+60.133","-001.183","+0082.0","19291001","20241231"
"955510","99999","TOOWOOMBA","AS","","YTWB","-27.583","+151.933","+0676.0","19980301","20241231"
"984260","99999","SCIENCE GARDEN","RP","","","+14.650","+121.050","+0046.0","19730101","20241231"
"010010","99999","JAN MAYEN","NO","","ENJA","+70.933","-008.667","+0009.0","19310101","20241231"
"000000","99999","NULL ISLAND","","","","+00.000","+000.000","","20000101","20001231"
"999999","00001","NO COORDS","US","","","","","","20000101","20001231"
"999999","00002","BAD LAT","US","","","+95.000","+010.000","","20000101","20001231"
"955510","99999","TOOWOOMBA DUPLICATE","AS","","","-27.583","+151.933","+0676.0","19980301","20241231"
"""

ELEVATION_CSV = """\
STNID,ELEV_M_SRTM_90m
030050-99999,84.0
955510-99999,670.5
010010-99999,12.0
"""


def make_line(
    stn="955510",
    wban="99999",
    date="20100101",
    temp="9999.9",
    temp_cnt="24",
    dewp="9999.9",
    dewp_cnt="24",
    slp="9999.9",
    slp_cnt="0",
    stp="9999.9",
    stp_cnt="0",
    visib="999.9",
    visib_cnt="0",
    wdsp="999.9",
    wdsp_cnt="0",
    mxspd="999.9",
    gust="999.9",
    max_="9999.9",
    max_flag=" ",
    min_="9999.9",
    min_flag=" ",
    prcp="99.99",
    prcp_flag=" ",
    sndp="999.9",
    frshtt="000000",
):
    """Build one 138-column GSOD data line with values right-aligned in their fields."""
    buf = [" "] * 138

    def put(start, end, value):
        text = str(value).rjust(end - start)
        assert len(text) == end - start, (value, start, end)
        buf[start:end] = list(text)

    put(0, 6, stn)
    put(7, 12, wban)
    put(14, 22, date)
    put(24, 30, temp)
    put(31, 33, temp_cnt)
    put(35, 41, dewp)
    put(42, 44, dewp_cnt)
    put(46, 52, slp)
    put(53, 55, slp_cnt)
    put(57, 63, stp)
    put(64, 66, stp_cnt)
    put(68, 73, visib)
    put(74, 76, visib_cnt)
    put(78, 83, wdsp)
    put(84, 86, wdsp_cnt)
    put(88, 93, mxspd)
    put(95, 100, gust)
    put(102, 108, max_)
    put(108, 109, max_flag)
    put(110, 116, min_)
    put(116, 117, min_flag)
    put(118, 123, prcp)
    put(123, 124, prcp_flag)
    put(125, 130, sndp)
    put(132, 138, frshtt)
    return "".join(buf)


def year_lines(stn, wban, year, days, **fields):
    """``days`` consecutive daily lines starting on 1 January."""
    import datetime as dt

    start = dt.date(year, 1, 1)
    return [
        make_line(stn=stn, wban=wban, date=(start + dt.timedelta(days=i)).strftime("%Y%m%d"), **fields)
        for i in range(days)
    ]


def gzip_bytes(lines, header=True):
    text = "\n".join(([HEADER] if header else []) + list(lines)) + "\n"
    return gzip.compress(text.encode("ascii"))


def write_op_gz(path, lines, header=True):
    path = Path(path)
    path.write_bytes(gzip_bytes(lines, header=header))
    return path


def tar_bytes(members):
    """Build a tar archive from ``{name: bytes}``."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as archive:
        for name, payload in members.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(payload)
            archive.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, status_code=200, content=b"", text=None):
        self.status_code = status_code
        self.content = content
        self.text = text if text is not None else content.decode("latin-1")
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i : i + chunk_size]

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeSession:
    """
    Minimal stand-in for ``requests.Session``.

    ``routes`` maps a URL to bytes, a ``FakeResponse``, an exception instance,
    or a list of those consumed one per call.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.headers = {}
        self.closed = False

    def get(self, url, timeout=None, stream=False, **kwargs):
        self.calls.append(url)
        route = self.routes.get(url)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if route is None:
            return FakeResponse(status_code=404, content=b"not found")
        if isinstance(route, BaseException):
            raise route
        if isinstance(route, FakeResponse):
            return route
        if isinstance(route, str):
            return FakeResponse(content=route.encode("latin-1"), text=route)
        return FakeResponse(content=route)

    def close(self):
        self.closed = True


@pytest.fixture
def settings():
    return NetworkSettings(
        max_attempts=3,
        wait_seconds=0,
        archive_url="https://archive.test/gsod/{year}/",
        station_list_url="https://archive.test/isd-history.csv",
    )


@pytest.fixture
def elevation_table(tmp_path):
    path = tmp_path / "elevation.csv"
    path.write_text(ELEVATION_CSV)
    return path


@pytest.fixture
def registry():
    import pandas as pd
    from io import StringIO

    table = pd.read_csv(StringIO(ELEVATION_CSV), dtype={"STNID": str})
    frame = clean_station_list(parse_station_list(STATION_LIST))
    return StationRegistry(join_elevation(frame, table))
