from __future__ import annotations

from typing import Mapping, MutableMapping, Optional

USER_AGENT = "gsod-pipeline/1.0 (+https://www.ncei.noaa.gov/)"

DEFAULT_HEADERS = {
    "Accept": "*/*",
    "Accept-Encoding": "gzip, deflate",
}


def build_request_headers(base: Optional[Mapping[str, str]] = None) -> MutableMapping[str, str]:
    """
    Return the headers sent with every archive request.

    Args:
        base: Optional mapping of headers to seed the final set (values here win over defaults).
    """
    headers: MutableMapping[str, str] = dict(base or {})
    headers["User-Agent"] = headers.get("User-Agent") or USER_AGENT
    for key, value in DEFAULT_HEADERS.items():
        headers.setdefault(key, value)
    return headers


def response_excerpt(text: Optional[str], limit: int = 200) -> str:
    """Short excerpt of a response body for error messages."""
    if not text:
        return ""
    return text[:limit] + ("..." if len(text) > limit else "")
