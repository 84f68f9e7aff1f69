from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from .dates import validate_years
from .errors import ConfigError, ValidationError

DEFAULT_ARCHIVE_URL = "https://www1.ncdc.noaa.gov/pub/data/gsod/{year}/"
DEFAULT_STATION_LIST_URL = "https://www1.ncdc.noaa.gov/pub/data/noaa/isd-history.csv"
DEFAULT_FILENAME = "GSOD"

STATION_ID_PATTERN = re.compile(r"^[0-9A-Z]{6}-[0-9]{5}$")
WAIT_POLICIES = ("fixed", "exponential")


def load_project_config(path: Union[str, Path]) -> dict:
    """Return the parsed configuration dictionary from a JSON file."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        return json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file {config_path} contains invalid JSON.") from exc


@dataclass
class NetworkSettings:
    """Timeout, retry and endpoint settings passed to every remote call."""

    timeout: float = 300.0
    max_attempts: int = 6
    wait: str = "fixed"
    wait_seconds: float = 1.0
    max_wait_seconds: float = 30.0
    archive_url: str = DEFAULT_ARCHIVE_URL
    station_list_url: str = DEFAULT_STATION_LIST_URL

    def validate(self) -> "NetworkSettings":
        if self.timeout <= 0:
            raise ValidationError(f"Network timeout must be positive, got {self.timeout!r}.")
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int) or self.max_attempts < 1:
            raise ValidationError(f"max_attempts must be an integer >= 1, got {self.max_attempts!r}.")
        if self.wait not in WAIT_POLICIES:
            raise ValidationError(f"Unknown retry wait policy {self.wait!r}; expected one of {WAIT_POLICIES}.")
        if self.wait_seconds < 0 or self.max_wait_seconds < 0:
            raise ValidationError("Retry wait times cannot be negative.")
        if "{year}" not in self.archive_url:
            raise ValidationError(f"archive_url must contain a '{{year}}' placeholder: {self.archive_url!r}")
        return self

    def year_url(self, year: int) -> str:
        url = self.archive_url.format(year=year)
        return url if url.endswith("/") else url + "/"


def normalise_station_ids(stations: Optional[Union[str, Sequence[str]]]) -> Tuple[str, ...]:
    """Upper-case, strip and de-duplicate station ids, keeping request order."""
    if stations is None:
        return ()
    if isinstance(stations, str):
        stations = [stations]
    seen = set()
    result: List[str] = []
    for raw in stations:
        if not isinstance(raw, str):
            raise ValidationError(f"{raw!r} is not a valid station ID; use the 'USAF-WBAN' form, e.g. '955510-99999'.")
        token = raw.strip().upper()
        if not STATION_ID_PATTERN.match(token):
            raise ValidationError(
                f"{raw!r} is not a valid station ID; use the 'USAF-WBAN' form, e.g. '955510-99999'."
            )
        if token not in seen:
            seen.add(token)
            result.append(token)
    return tuple(result)


@dataclass
class PipelineConfig:
    """Options recognised by a single ``get_gsod`` invocation."""

    years: Any = None
    stations: Optional[Union[str, Sequence[str]]] = None
    country: Optional[str] = None
    csv: bool = False
    gpkg: bool = False
    dsn: Optional[Union[str, Path]] = None
    filename: Optional[str] = None
    max_missing: Optional[int] = None
    agroclimatology: bool = False
    # path to a STNID,ELEV_M_SRTM_90m CSV, or an already loaded DataFrame
    elevation_table: Any = None
    # parent of the per-run cache directory; defaults to the system temp location
    cache_dir: Optional[Union[str, Path]] = None
    max_workers: Optional[int] = None
    isolate_parse_errors: bool = True
    network: NetworkSettings = field(default_factory=NetworkSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        """Build a config from a plain mapping (e.g. the ``gsod`` block of config.json)."""
        if not isinstance(data, Mapping):
            raise ConfigError("The GSOD configuration must be an object.")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown GSOD configuration keys: {', '.join(unknown)}")
        values = dict(data)
        network = values.pop("network", None)
        if network is None:
            values["network"] = NetworkSettings()
        elif isinstance(network, NetworkSettings):
            values["network"] = network
        elif isinstance(network, Mapping):
            network_known = {f.name for f in fields(NetworkSettings)}
            bad = sorted(set(network) - network_known)
            if bad:
                raise ConfigError(f"Unknown network configuration keys: {', '.join(bad)}")
            values["network"] = NetworkSettings(**network)
        else:
            raise ConfigError("'network' must be an object.")
        return cls(**values)

    @classmethod
    def from_json(cls, path: Union[str, Path], section: str = "gsod") -> "PipelineConfig":
        config = load_project_config(path)
        block = config.get(section) if isinstance(config, Mapping) else None
        if block is None:
            raise ConfigError(f"Config file {path} has no '{section}' section.")
        return cls.from_mapping(block)

    @property
    def writes_output(self) -> bool:
        return bool(self.csv or self.gpkg)

    @property
    def output_base(self) -> Optional[Path]:
        """Output path without extension, or ``None`` when nothing is written."""
        if not self.writes_output:
            return None
        dsn = Path(self.dsn).expanduser() if self.dsn is not None else Path.cwd()
        return dsn / (self.filename or DEFAULT_FILENAME)

    def validate(self) -> "PipelineConfig":
        """Run every pre-flight check that does not need the network."""
        self.years = validate_years(self.years)
        self.stations = normalise_station_ids(self.stations)

        if self.max_missing is not None:
            if isinstance(self.max_missing, bool) or not isinstance(self.max_missing, int) or self.max_missing < 1:
                raise ValidationError(
                    f"The 'max_missing' parameter must be a positive integer (>= 1), got {self.max_missing!r}."
                )

        if self.filename is not None and not self.writes_output:
            raise ValidationError("A filename was given but no file type; set csv and/or gpkg.")
        if self.dsn is not None and not self.writes_output:
            raise ValidationError("An output directory (dsn) was given but no file type; set csv and/or gpkg.")
        if self.filename is not None and not str(self.filename).strip():
            raise ValidationError("The output filename cannot be empty.")
        if self.writes_output:
            base = self.output_base
            if not base.parent.is_dir():
                raise ValidationError(f"Output directory (dsn) does not exist: {base.parent}")

        if self.country is not None and not str(self.country).strip():
            raise ValidationError("The country cannot be an empty string.")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValidationError(f"max_workers must be >= 1, got {self.max_workers!r}.")

        self.network.validate()
        return self
