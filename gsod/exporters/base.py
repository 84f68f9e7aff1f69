"""Base exporter class for GSOD output files."""

from __future__ import annotations

import logging
import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

import pandas as pd


logger = logging.getLogger(__name__)


class BaseExporter(ABC):
    """
    Abstract base class for dataset serializers.

    Handles the logic shared by every output format:
    - Appending the format's file extension to the base name
    - Writing to a temporary sibling and renaming it over the target, so an
      existing file is replaced and a failed write leaves nothing behind
    """

    extension: str = ""

    def target_path(self, base: Union[str, Path]) -> Path:
        base = Path(base).expanduser()
        return base.with_name(base.name + self.extension)

    def export(self, frame: pd.DataFrame, base: Union[str, Path]) -> Path:
        """
        Write ``frame`` to ``<base><extension>``.

        Returns:
            The path written. ``OSError`` from the disk propagates.
        """
        target = self.target_path(base)
        tmp = target.with_name(f".{target.stem}.{uuid.uuid4().hex}{self.extension}")
        try:
            self.write(frame, tmp)
            os.replace(tmp, target)
        finally:
            if tmp.exists():
                tmp.unlink()
        logger.info(f"Wrote {len(frame)} records to {target}")
        return target

    @abstractmethod
    def write(self, frame: pd.DataFrame, path: Path) -> None:
        """
        Serialize ``frame`` to ``path``.

        Must be implemented by subclass.
        """
        pass
