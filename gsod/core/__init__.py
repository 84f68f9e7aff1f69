"""Core utilities for the GSOD pipeline."""

from .config import NetworkSettings, PipelineConfig, load_project_config
from .dates import days_in_year, validate_years
from .errors import ConfigError, GsodError, NetworkError, ParseError, ValidationError
from .runtime import PipelineRuntime

__all__ = [
    "NetworkSettings",
    "PipelineConfig",
    "load_project_config",
    "days_in_year",
    "validate_years",
    "GsodError",
    "ValidationError",
    "ConfigError",
    "NetworkError",
    "ParseError",
    "PipelineRuntime",
]
