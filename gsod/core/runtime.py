from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import requests

from ..clients.request_utils import build_request_headers
from .config import NetworkSettings, PipelineConfig


logger = logging.getLogger(__name__)


@dataclass
class PipelineRuntime:
    """
    Holds the resources owned by one pipeline run.

    Used as a context manager: entering opens the HTTP session and a fresh
    cache directory (under ``config.cache_dir`` when set), leaving closes the
    session and removes that directory.
    """

    config: PipelineConfig
    session: Optional[requests.Session] = field(init=False, default=None)
    cache_dir: Optional[Path] = field(init=False, default=None)
    _tempdir: Optional[tempfile.TemporaryDirectory] = field(init=False, default=None, repr=False)

    @property
    def network(self) -> NetworkSettings:
        return self.config.network

    def __enter__(self) -> "PipelineRuntime":
        self.session = requests.Session()
        self.session.headers.update(build_request_headers())
        parent = None
        if self.config.cache_dir is not None:
            parent = Path(self.config.cache_dir).expanduser()
            parent.mkdir(parents=True, exist_ok=True)
        # one directory per run; nothing fetched by an earlier run is reused
        self._tempdir = tempfile.TemporaryDirectory(prefix="gsod-", dir=parent)
        self.cache_dir = Path(self._tempdir.name)
        logger.info(f"Using cache directory: {self.cache_dir}")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None
        if self._tempdir is not None:
            self._tempdir.cleanup()
            logger.debug(f"Removed cache directory {self.cache_dir}")
            self._tempdir = None
