"""Bounded retry wrapper used for every network call."""

from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

import requests
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from ..core.config import NetworkSettings
from ..core.errors import NetworkError, RemoteNotFoundError
from .request_utils import response_excerpt


logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


def is_transient(exc: BaseException) -> bool:
    """Connection problems, timeouts and retryable HTTP statuses are worth another attempt."""
    return isinstance(exc, requests.RequestException)


def build_retrying(settings: NetworkSettings, *, sleep: Optional[Callable[[float], None]] = None) -> Retrying:
    """Return a tenacity ``Retrying`` configured from the network settings."""
    if settings.wait == "exponential":
        wait = wait_exponential(multiplier=settings.wait_seconds, max=settings.max_wait_seconds)
    else:
        wait = wait_fixed(settings.wait_seconds)
    kwargs = {
        "stop": stop_after_attempt(settings.max_attempts),
        "wait": wait,
        "retry": retry_if_exception(is_transient),
        "before_sleep": before_sleep_log(logger, logging.WARNING),
        "reraise": False,
    }
    if sleep is not None:
        kwargs["sleep"] = sleep
    return Retrying(**kwargs)


def call_with_retry(
    fn: Callable[..., T],
    *args,
    settings: NetworkSettings,
    url: Optional[str] = None,
    retrying: Optional[Retrying] = None,
    **kwargs,
) -> T:
    """
    Call ``fn`` under the retry policy.

    Transient failures are retried up to ``settings.max_attempts`` times; once
    exhausted a ``NetworkError`` naming the URL is raised. Non-transient
    errors (including ``RemoteNotFoundError``) propagate on the first attempt.
    """
    policy = retrying.copy() if retrying is not None else build_retrying(settings)
    try:
        return policy(fn, *args, **kwargs)
    except RetryError as exc:
        last = exc.last_attempt.exception()
        attempts = exc.last_attempt.attempt_number
        raise NetworkError(
            f"Too many retries ({attempts}) for {url or getattr(fn, '__name__', 'request')}; "
            f"the server may be under load: {last}",
            url=url,
        ) from last


def raise_for_status(response: requests.Response, url: str) -> None:
    """Map an HTTP error status onto the pipeline's error types."""
    status = response.status_code
    if status < 400:
        return
    if status == 404:
        raise RemoteNotFoundError(f"Not found (404): {url}", url=url)
    if status in RETRYABLE_STATUS:
        raise requests.HTTPError(f"HTTP {status} from {url}", response=response)
    raise NetworkError(f"HTTP {status} from {url}: {response_excerpt(response.text)}", url=url)
