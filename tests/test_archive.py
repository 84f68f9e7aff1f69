import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
import requests

from conftest import FakeResponse, FakeSession, gzip_bytes, make_line, tar_bytes
from gsod.clients.archive import ArchiveFile, GsodArchiveClient, archive_file_name, bulk_archive_name
from gsod.core.errors import NetworkError, RemoteNotFoundError, ValidationError

LISTING_2010 = """<html><body>
<a href="955510-99999-2010.op.gz">955510-99999-2010.op.gz</a>
<a href="984260-99999-2010.op.gz">984260-99999-2010.op.gz</a>
<a href="gsod_2010.tar">gsod_2010.tar</a>
</body></html>"""


def _payload(stn):
    return gzip_bytes([make_line(stn=stn)])


def _client(session, settings, cache_dir, **kwargs):
    return GsodArchiveClient(session, settings, cache_dir, **kwargs)


def test_archive_names():
    assert archive_file_name("955510-99999", 2010) == "955510-99999-2010.op.gz"
    assert bulk_archive_name(1998) == "gsod_1998.tar"


def test_archive_file_from_path_and_ordering(tmp_path):
    first = ArchiveFile.from_path(tmp_path / "984260-99999-2010.op.gz")
    second = ArchiveFile.from_path(tmp_path / "955510-99999-2011.op.gz")
    third = ArchiveFile.from_path(tmp_path / "955510-99999-2010.op.gz")
    assert first.station_id == "984260-99999"
    assert first.year == 2010
    assert sorted([first, second, third]) == [third, second, first]
    with pytest.raises(ValueError):
        ArchiveFile.from_path(tmp_path / "readme.txt")


def test_list_year_dedupes_names(tmp_path, settings):
    session = FakeSession({settings.year_url(2010): LISTING_2010})
    names = _client(session, settings, tmp_path).list_year(2010)
    assert names == ["955510-99999-2010.op.gz", "984260-99999-2010.op.gz"]


def test_targeted_fetch_skips_missing_stations(tmp_path, settings):
    year_url = settings.year_url(2010)
    session = FakeSession(
        {
            year_url: LISTING_2010,
            year_url + "955510-99999-2010.op.gz": _payload("955510"),
            year_url + "984260-99999-2010.op.gz": _payload("984260"),
        }
    )
    result = _client(session, settings, tmp_path).fetch([2010], ["984260-99999", "955510-99999", "030050-99999"])

    assert [(f.station_id, f.year) for f in result.files] == [("955510-99999", 2010), ("984260-99999", 2010)]
    assert result.skipped == [("030050-99999", 2010)]
    assert result.failed == []
    assert all(f.path.exists() for f in result.files)
    assert year_url + "030050-99999-2010.op.gz" not in session.calls


def test_cached_files_issue_no_network_calls(tmp_path, settings):
    year_url = settings.year_url(2010)
    session = FakeSession(
        {year_url: LISTING_2010, year_url + "955510-99999-2010.op.gz": _payload("955510")}
    )
    client = _client(session, settings, tmp_path)
    first = client.fetch([2010], ["955510-99999"])
    session.calls.clear()

    second = _client(session, settings, tmp_path).fetch([2010], ["955510-99999"])

    assert session.calls == []
    assert second.files == first.files


def test_download_reports_cache_hit(tmp_path, settings):
    dest = tmp_path / "955510-99999-2010.op.gz"
    dest.write_bytes(b"cached")
    session = FakeSession()
    assert _client(session, settings, tmp_path).download("https://archive.test/x", dest) is False
    assert session.calls == []
    assert dest.read_bytes() == b"cached"


def test_one_failed_download_does_not_stop_others(tmp_path, settings):
    year_url = settings.year_url(2010)
    session = FakeSession(
        {
            year_url: LISTING_2010,
            year_url + "955510-99999-2010.op.gz": requests.ConnectionError("reset"),
            year_url + "984260-99999-2010.op.gz": _payload("984260"),
        }
    )
    result = _client(session, settings, tmp_path).fetch([2010], ["955510-99999", "984260-99999"])

    assert [f.station_id for f in result.files] == ["984260-99999"]
    assert [(stnid, year) for stnid, year, _ in result.failed] == [("955510-99999", 2010)]
    assert session.calls.count(year_url + "955510-99999-2010.op.gz") == settings.max_attempts
    assert not any(p.name.endswith(".part") for p in Path(tmp_path).iterdir())


def test_missing_year_directory_is_skipped(tmp_path, settings):
    year_url = settings.year_url(2010)
    session = FakeSession(
        {year_url: LISTING_2010, year_url + "955510-99999-2010.op.gz": _payload("955510")}
    )
    result = _client(session, settings, tmp_path).fetch([2010, 2011], ["955510-99999"])

    assert [(f.station_id, f.year) for f in result.files] == [("955510-99999", 2010)]
    assert result.skipped == [("955510-99999", 2011)]


def test_listing_failure_is_recorded(tmp_path, settings):
    session = FakeSession({settings.year_url(2010): requests.ConnectionError("down")})
    result = _client(session, settings, tmp_path).fetch([2010], ["955510-99999"])

    assert result.files == []
    assert result.failed[0][:2] == ("955510-99999", 2010)
    assert "Too many retries" in result.failed[0][2]


def test_listed_file_gone_on_download_is_skipped(tmp_path, settings):
    session = FakeSession({settings.year_url(2010): LISTING_2010})
    result = _client(session, settings, tmp_path).fetch([2010], ["955510-99999"])
    assert result.skipped == [("955510-99999", 2010)]
    assert result.failed == []


def test_bulk_fetch_expands_archive(tmp_path, settings):
    tar_url = settings.year_url(2010) + bulk_archive_name(2010)
    archive = tar_bytes(
        {
            "./955510-99999-2010.op.gz": _payload("955510"),
            "./030050-99999-2010.op.gz": _payload("030050"),
            "./readme.txt": b"not a station file",
        }
    )
    session = FakeSession({tar_url: archive})
    client = _client(session, settings, tmp_path / "cache")
    result = client.fetch([2010])

    assert [f.station_id for f in result.files] == ["030050-99999", "955510-99999"]
    assert all(f.path.parent == tmp_path / "cache" for f in result.files)
    assert not (tmp_path / "cache" / "readme.txt").exists()

    session.calls.clear()
    again = client.fetch([2010])
    assert session.calls == []
    assert again.files == result.files


def test_bulk_fetch_missing_archive_is_fatal(tmp_path, settings):
    with pytest.raises(RemoteNotFoundError):
        _client(FakeSession(), settings, tmp_path).fetch([2010])


def test_bulk_fetch_corrupt_archive(tmp_path, settings):
    tar_url = settings.year_url(2010) + bulk_archive_name(2010)
    session = FakeSession({tar_url: b"this is not a tar archive" * 40})
    with pytest.raises(NetworkError, match="corrupt"):
        _client(session, settings, tmp_path).fetch([2010])


@pytest.mark.parametrize("years", [[1900], [], None, ["2010"], [3000]])
def test_years_validated_before_any_request(tmp_path, settings, years):
    session = FakeSession()
    with pytest.raises(ValidationError):
        _client(session, settings, tmp_path).fetch(years, ["955510-99999"])
    assert session.calls == []


def test_invalid_station_id_rejected(tmp_path, settings):
    session = FakeSession()
    with pytest.raises(ValidationError):
        _client(session, settings, tmp_path).fetch([2010], ["not-a-station"])
    assert session.calls == []


class _SlowSession(FakeSession):
    def get(self, url, **kwargs):
        time.sleep(0.05)
        return super().get(url, **kwargs)


def test_concurrent_downloads_of_one_file_issue_one_request(tmp_path, settings):
    url = settings.year_url(2010) + "955510-99999-2010.op.gz"
    payload = gzip_bytes([make_line(date=f"201001{day:02d}") for day in range(1, 29)])
    session = _SlowSession({url: payload})
    client = _client(session, settings, tmp_path)
    dest = tmp_path / "955510-99999-2010.op.gz"
    workers = 8
    barrier = threading.Barrier(workers)

    def _download(_):
        barrier.wait()
        return client.download(url, dest)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        outcomes = list(pool.map(_download, range(workers)))

    assert outcomes.count(True) == 1
    assert session.calls == [url]
    assert dest.read_bytes() == payload
    assert not any(p.name.endswith(".part") for p in tmp_path.iterdir())


def test_error_responses_are_closed(tmp_path, settings):
    url = settings.year_url(2010) + "955510-99999-2010.op.gz"
    missing = FakeResponse(status_code=404)
    with pytest.raises(RemoteNotFoundError):
        _client(FakeSession({url: missing}), settings, tmp_path).download(url, tmp_path / "a.op.gz")
    assert missing.closed

    busy = [FakeResponse(status_code=503) for _ in range(settings.max_attempts)]
    with pytest.raises(NetworkError):
        _client(FakeSession({url: list(busy)}), settings, tmp_path).download(url, tmp_path / "b.op.gz")
    assert all(response.closed for response in busy)
    assert not (tmp_path / "b.op.gz").exists()
