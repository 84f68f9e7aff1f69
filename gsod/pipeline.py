"""
End-to-end GSOD retrieval: validate, fetch, filter, parse, assemble, export.

``get_gsod`` is the main entry point; ``reformat_gsod`` runs only the
parsing half over files that are already on disk.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .clients.archive import ArchiveFile, FetchResult, GsodArchiveClient
from .clients.countries import resolve_country
from .clients.stations import StationRegistry, load_elevation_table, load_station_registry
from .core.config import PipelineConfig
from .core.errors import ParseError, ValidationError
from .core.runtime import PipelineRuntime
from .exporters import create_exporter
from .processing.filters import filter_agroclimatology, filter_completeness, filter_country
from .processing.parser import OUTPUT_COLUMNS, ArchiveParser, empty_frame


logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """The assembled dataset plus what happened along the way."""

    data: pd.DataFrame
    files: List[ArchiveFile] = field(default_factory=list)
    skipped: List[Tuple[str, int]] = field(default_factory=list)
    failed: List[Tuple[str, int, str]] = field(default_factory=list)
    parse_failures: List[Tuple[Path, ParseError]] = field(default_factory=list)
    outputs: List[Path] = field(default_factory=list)


def assemble(frames: Iterable[pd.DataFrame]) -> pd.DataFrame:
    """Concatenate per-file frames in processing order with the fixed column order."""
    frames = [frame for frame in frames if not frame.empty]
    if not frames:
        return empty_frame()
    return pd.concat(frames, ignore_index=True)[OUTPUT_COLUMNS]


def write_outputs(data: pd.DataFrame, config: PipelineConfig) -> List[Path]:
    outputs: List[Path] = []
    base = config.output_base
    if base is None:
        return outputs
    if config.csv:
        logger.info("Writing CSV file to disk.")
        outputs.append(create_exporter("csv").export(data, base))
    if config.gpkg:
        logger.info("Writing GeoPackage file to disk.")
        outputs.append(create_exporter("gpkg").export(data, base))
    return outputs


def _select_files(
    files: List[ArchiveFile],
    registry: StationRegistry,
    config: PipelineConfig,
    country: Optional[str],
    failures: List[Tuple[Path, ParseError]],
) -> List[ArchiveFile]:
    if config.agroclimatology:
        files = filter_agroclimatology(files, registry)
        logger.info(f"{len(files)} files within the agroclimatology latitude band")
    if country is not None:
        files = filter_country(files, registry, country)
        logger.info(f"{len(files)} files for country {country}")
    if config.max_missing is not None:
        files = filter_completeness(
            files, config.max_missing, isolate_errors=config.isolate_parse_errors, failures=failures
        )
        logger.info(f"{len(files)} files pass the max_missing check")
    return files


def run_pipeline(config: PipelineConfig) -> PipelineResult:
    """
    Run one full retrieval for ``config``.

    Every check that needs no network happens first; station ids are
    checked as soon as the registry is loaded, before any archive request.
    """
    config.validate()
    country = resolve_country(config.country) if config.country is not None else None
    elevation = load_elevation_table(config.elevation_table)

    with PipelineRuntime(config) as runtime:
        registry = load_station_registry(runtime.session, runtime.network, elevation_table=elevation)
        registry.validate_stations(config.stations, config.years)

        client = GsodArchiveClient(
            runtime.session,
            runtime.network,
            runtime.cache_dir,
            max_workers=config.max_workers,
        )
        fetched: FetchResult = client.fetch(config.years, config.stations or None)
        unreadable: List[Tuple[Path, ParseError]] = []
        files = _select_files(fetched.files, registry, config, country, unreadable)

        logger.info(f"Starting data file processing ({len(files)} files)")
        parser = ArchiveParser(
            registry,
            max_workers=config.max_workers,
            isolate_errors=config.isolate_parse_errors,
        )
        data = assemble(parser.parse([file.path for file in files]))

    outputs = write_outputs(data, config)
    return PipelineResult(
        data=data,
        files=files,
        skipped=fetched.skipped,
        failed=fetched.failed,
        parse_failures=unreadable + parser.failures,
        outputs=outputs,
    )


def get_gsod(config: Optional[PipelineConfig] = None, **options) -> pd.DataFrame:
    """
    Download, clean and reformat GSOD data.

    Accepts either a ``PipelineConfig`` or its fields as keyword arguments,
    e.g. ``get_gsod(years=[2010], stations=["955510-99999"])``.

    Returns:
        The merged observations, one row per station-day.
    """
    if config is None:
        config = PipelineConfig(**options)
    elif options:
        raise ValidationError("Pass either a PipelineConfig or keyword options, not both.")
    return run_pipeline(config).data


def reformat_gsod(
    dsn: Optional[Union[str, Path]] = None,
    file_list: Optional[Sequence[Union[str, Path]]] = None,
    *,
    registry: Optional[StationRegistry] = None,
    config: Optional[PipelineConfig] = None,
) -> pd.DataFrame:
    """
    Parse and normalize ``.op.gz`` files already on local disk.

    Args:
        dsn: Directory whose ``*.op.gz`` files are reformatted.
        file_list: Explicit files to reformat (used when ``dsn`` is not given).
        registry: Station registry to join; loaded from the network when omitted.
        config: Supplies network settings, elevation table and parser options.
    """
    config = config or PipelineConfig()
    if dsn is not None:
        directory = Path(dsn).expanduser()
        if not directory.is_dir():
            raise ValidationError(f"File dsn does not exist: {dsn}")
        paths = sorted(directory.glob("*.op.gz"))
    elif file_list is not None:
        paths = [Path(p).expanduser() for p in file_list]
        missing = [str(p) for p in paths if not p.exists()]
        if missing:
            raise ValidationError(f"Files not found: {', '.join(missing)}")
    else:
        raise ValidationError("Provide either a directory (dsn) or a file_list to reformat.")

    if registry is None:
        config.network.validate()
        elevation = load_elevation_table(config.elevation_table)
        with PipelineRuntime(config) as runtime:
            registry = load_station_registry(runtime.session, runtime.network, elevation_table=elevation)

    parser = ArchiveParser(registry, max_workers=config.max_workers, isolate_errors=config.isolate_parse_errors)
    return assemble(parser.parse(paths))
