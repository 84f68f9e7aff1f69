"""Retrieve and reformat NCEI Global Surface Summary of the Day (GSOD) data."""

from .core import NetworkSettings, PipelineConfig
from .core.errors import ConfigError, GsodError, NetworkError, ParseError, ValidationError
from .pipeline import PipelineResult, get_gsod, reformat_gsod, run_pipeline

__all__ = [
    "NetworkSettings",
    "PipelineConfig",
    "GsodError",
    "ValidationError",
    "ConfigError",
    "NetworkError",
    "ParseError",
    "PipelineResult",
    "get_gsod",
    "reformat_gsod",
    "run_pipeline",
]

__version__ = "1.0.0"
