"""Retrieval of per-station-year GSOD archive files into the run cache."""

from __future__ import annotations

import logging
import os
import re
import tarfile
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import requests
from tenacity import Retrying

from ..core.config import NetworkSettings, normalise_station_ids
from ..core.dates import validate_years
from ..core.errors import NetworkError, RemoteNotFoundError
from .base import BatchExecutorMixin
from .retry import call_with_retry, raise_for_status


logger = logging.getLogger(__name__)

ARCHIVE_FILE_PATTERN = re.compile(r"([0-9A-Z]{6}-[0-9]{5})-([0-9]{4})\.op\.gz")
CHUNK_SIZE = 1 << 16


def archive_file_name(station_id: str, year: int) -> str:
    return f"{station_id}-{year}.op.gz"


def bulk_archive_name(year: int) -> str:
    return f"gsod_{year}.tar"


@dataclass(frozen=True, order=True)
class ArchiveFile:
    """One station-year file in the local cache."""

    station_id: str
    year: int
    path: Path = field(compare=False)

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ArchiveFile":
        path = Path(path)
        match = ARCHIVE_FILE_PATTERN.fullmatch(path.name)
        if not match:
            raise ValueError(f"Not a GSOD station-year file name: {path.name}")
        return cls(station_id=match.group(1), year=int(match.group(2)), path=path)


@dataclass
class FetchResult:
    files: List[ArchiveFile] = field(default_factory=list)
    # (station_id, year) pairs with no file on the server
    skipped: List[Tuple[str, int]] = field(default_factory=list)
    # (station_id, year, reason) pairs whose retrieval failed after retries
    failed: List[Tuple[str, int, str]] = field(default_factory=list)

    def merge(self, other: "FetchResult") -> None:
        self.files.extend(other.files)
        self.skipped.extend(other.skipped)
        self.failed.extend(other.failed)

    def sort(self) -> "FetchResult":
        self.files.sort()
        self.skipped.sort()
        self.failed.sort()
        return self


class GsodArchiveClient(BatchExecutorMixin):
    """
    Fetches GSOD station-year files from the archive into a cache directory.

    A file already present in the cache is never requested again. Downloads
    go to a unique temporary name and are renamed into place under a
    per-file lock, so concurrent workers never write the same entry.
    """

    def __init__(
        self,
        session: requests.Session,
        settings: NetworkSettings,
        cache_dir: Union[str, Path],
        *,
        retrying: Optional[Retrying] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.session = session
        self.settings = settings
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.retrying = retrying
        self.max_workers = max_workers
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
            return lock

    def _get(self, url: str, **kwargs) -> requests.Response:
        response = self.session.get(url, timeout=self.settings.timeout, **kwargs)
        try:
            raise_for_status(response, url)
        except Exception:
            # release the pooled connection before the retry policy sees the error
            response.close()
            raise
        return response

    def download(self, url: str, dest: Path) -> bool:
        """
        Download ``url`` to ``dest`` unless it is already cached.

        Returns True when a download happened, False for a cache hit.
        """
        if dest.exists():
            logger.debug(f"Found cached file: {dest}")
            return False

        with self._lock_for(dest.name):
            if dest.exists():
                return False

            def _attempt() -> None:
                tmp = dest.with_name(f".{dest.name}.{uuid.uuid4().hex}.part")
                try:
                    with self._get(url, stream=True) as response, open(tmp, "wb") as out_file:
                        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                            if chunk:
                                out_file.write(chunk)
                    os.replace(tmp, dest)
                finally:
                    if tmp.exists():
                        tmp.unlink()

            logger.info(f"Downloading {url}")
            call_with_retry(_attempt, settings=self.settings, url=url, retrying=self.retrying)
        return True

    def list_year(self, year: int) -> List[str]:
        """Return the station-year file names in the remote directory for ``year``."""
        url = self.settings.year_url(year)

        def _listing() -> str:
            return self._get(url).text

        text = call_with_retry(_listing, settings=self.settings, url=url, retrying=self.retrying)
        names: List[str] = []
        seen = set()
        for match in ARCHIVE_FILE_PATTERN.finditer(text):
            name = match.group(0)
            if int(match.group(2)) == year and name not in seen:
                seen.add(name)
                names.append(name)
        logger.debug(f"{len(names)} station files listed for {year}")
        return names

    def _extract(self, tar_path: Path, year: int) -> List[ArchiveFile]:
        files: List[ArchiveFile] = []
        with tarfile.open(tar_path) as archive:
            for member in archive.getmembers():
                name = os.path.basename(member.name)
                match = ARCHIVE_FILE_PATTERN.fullmatch(name)
                if not member.isfile() or not match or int(match.group(2)) != year:
                    continue
                dest = self.cache_dir / name
                with self._lock_for(name):
                    if not dest.exists():
                        source = archive.extractfile(member)
                        tmp = dest.with_name(f".{name}.{uuid.uuid4().hex}.part")
                        try:
                            with source, open(tmp, "wb") as out_file:
                                out_file.write(source.read())
                            os.replace(tmp, dest)
                        finally:
                            if tmp.exists():
                                tmp.unlink()
                files.append(ArchiveFile(station_id=match.group(1), year=year, path=dest))
        return files

    def fetch_bulk(self, years: Iterable[int]) -> FetchResult:
        """Fetch one consolidated archive per year and expand it; failures are fatal."""
        result = FetchResult()
        for year in years:
            name = bulk_archive_name(year)
            tar_path = self.cache_dir / name
            self.download(self.settings.year_url(year) + name, tar_path)
            try:
                files = self._extract(tar_path, year)
            except tarfile.TarError as exc:
                raise NetworkError(f"Archive {name} is corrupt or incomplete: {exc}") from exc
            logger.info(f"Expanded {len(files)} station files for {year}")
            result.files.extend(files)
        return result.sort()

    def _fetch_year(self, year: int, station_ids: Sequence[str]) -> FetchResult:
        result = FetchResult()
        pending: List[str] = []
        for station_id in station_ids:
            path = self.cache_dir / archive_file_name(station_id, year)
            if path.exists():
                result.files.append(ArchiveFile(station_id, year, path))
            else:
                pending.append(station_id)
        if not pending:
            return result

        try:
            available = set(self.list_year(year))
        except RemoteNotFoundError:
            logger.warning(f"No archive directory for {year}; skipping {len(pending)} station(s)")
            result.skipped.extend((station_id, year) for station_id in pending)
            return result
        except NetworkError as exc:
            logger.error(f"Listing for {year} failed: {exc}")
            result.failed.extend((station_id, year, str(exc)) for station_id in pending)
            return result

        year_url = self.settings.year_url(year)
        for station_id in pending:
            name = archive_file_name(station_id, year)
            if name not in available:
                logger.debug(f"No file for station {station_id} in {year}; skipping")
                result.skipped.append((station_id, year))
                continue
            path = self.cache_dir / name
            try:
                self.download(year_url + name, path)
            except RemoteNotFoundError:
                result.skipped.append((station_id, year))
            except NetworkError as exc:
                logger.error(f"Download of {name} failed: {exc}")
                result.failed.append((station_id, year, str(exc)))
            else:
                result.files.append(ArchiveFile(station_id, year, path))
        return result

    def fetch_stations(self, years: Iterable[int], station_ids: Iterable[str]) -> FetchResult:
        """Fetch only the requested stations; one failed station-year does not stop the others."""
        ids = list(station_ids)
        year_list = list(years)
        logger.info(f"Checking {len(ids)} requested station(s) for availability over {len(year_list)} year(s)")
        outcomes = self._run_batch(
            ({"year": year, "station_ids": ids} for year in year_list),
            self._fetch_year,
            batch_size=len(year_list),
            max_workers=self.max_workers,
        )
        result = FetchResult()
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                raise outcome
            result.merge(outcome)
        if result.skipped:
            logger.info(f"{len(result.skipped)} requested station-year file(s) do not exist on the server")
        return result.sort()

    def fetch(self, years: Iterable[int], station_ids: Optional[Iterable[str]] = None) -> FetchResult:
        year_list = validate_years(years)
        ids = normalise_station_ids(list(station_ids) if station_ids is not None else None)
        if ids:
            return self.fetch_stations(year_list, ids)
        return self.fetch_bulk(year_list)
