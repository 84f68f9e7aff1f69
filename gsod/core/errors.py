from __future__ import annotations

from typing import Optional


class GsodError(RuntimeError):
    """Base class for every error raised by the GSOD pipeline."""


class ValidationError(GsodError):
    """Raised when user input (years, stations, country, output options) is invalid."""


class ConfigError(ValidationError):
    """Raised when the project configuration cannot be loaded or parsed."""


class NetworkError(GsodError):
    """Raised when a remote call still fails after the retry budget is spent."""

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class ParseError(GsodError):
    """Raised when an archive file or station list does not match the expected layout."""

    def __init__(self, message: str, *, path: Optional[str] = None, line_number: Optional[int] = None) -> None:
        location = ""
        if path is not None:
            location = f"{path}"
            if line_number is not None:
                location += f":{line_number}"
            location += ": "
        super().__init__(f"{location}{message}")
        self.path = path
        self.line_number = line_number


class RemoteNotFoundError(NetworkError):
    """Raised for a remote resource that does not exist (HTTP 404); never retried."""
