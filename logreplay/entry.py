"""
Entry model - one recorded HTTP access, validated and immutable.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping

import httpx

from logreplay.errors import MalformedEntry


HTTP_METHODS = frozenset(
    ["GET", "HEAD", "POST", "PUT", "DELETE", "CONNECT", "OPTIONS", "TRACE", "PATCH"]
)

# Format written by the access logger, e.g. "2020-06-22 04:24:00.678451 UTC"
LOG_TIME_FORMATS = ("%Y-%m-%d %H:%M:%S.%f UTC", "%Y-%m-%d %H:%M:%S UTC")


def parse_accessed_at(value: str) -> datetime:
    """
    Parse a recorded timestamp into an aware UTC datetime.

    Accepts the access log format ("2020-06-22 04:24:00.678451 UTC") and
    ISO-8601 strings carrying an explicit offset ("...+09:00", "...Z").
    Timestamps without a zone are rejected.

    Raises:
        MalformedEntry: if the value is not a string or matches no format
    """
    if not isinstance(value, str):
        raise MalformedEntry(f"accessed_at must be a string, got {type(value).__name__}")

    text = value.strip()
    for fmt in LOG_TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        raise MalformedEntry(f"Date and time format is not correct: {value!r}") from None
    if parsed.tzinfo is None:
        raise MalformedEntry(f"accessed_at has no timezone: {value!r}")
    return parsed.astimezone(timezone.utc)


def normalize_method(value: str) -> str:
    if not isinstance(value, str) or value.strip().upper() not in HTTP_METHODS:
        raise MalformedEntry(f"Method is not correct: {value!r}")
    return value.strip().upper()


def validate_url(value: str) -> str:
    if not isinstance(value, str):
        raise MalformedEntry(f"url must be a string, got {type(value).__name__}")
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL as e:
        raise MalformedEntry(f"url format is not correct: {value!r} ({e})") from None
    if url.scheme not in ("http", "https") or not url.host:
        raise MalformedEntry(f"url must be an absolute http(s) URL: {value!r}")
    return value


def _freeze_headers(headers: Any) -> Mapping[str, str]:
    if headers is None:
        return MappingProxyType({})
    if not isinstance(headers, Mapping):
        raise MalformedEntry(f"http_header must be an object, got {type(headers).__name__}")
    frozen: Dict[str, str] = {}
    for name, val in headers.items():
        if not isinstance(name, str) or not isinstance(val, str):
            raise MalformedEntry(f"http_header values must be strings: {name!r}")
        frozen[name] = val
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class AccessEntry:
    """A single recorded request. Never mutated once built."""

    accessed_at: datetime
    url: str
    method: str
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    body: str = ""

    @classmethod
    def from_raw(cls, accessed_at, url, method, headers=None, body="") -> "AccessEntry":
        """
        Validate raw recorded fields and build an entry.

        Args:
            accessed_at: timestamp string, UTC
            url: absolute URL as recorded
            method: HTTP verb, any case
            headers: mapping of header name to value
            body: request payload, may be empty

        Returns:
            AccessEntry

        Raises:
            MalformedEntry: if any field fails validation
        """
        if body is None:
            body = ""
        if not isinstance(body, str):
            raise MalformedEntry(f"http_body must be a string, got {type(body).__name__}")
        return cls(
            accessed_at=parse_accessed_at(accessed_at),
            url=validate_url(url),
            method=normalize_method(method),
            headers=_freeze_headers(headers),
            body=body,
        )

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "AccessEntry":
        """Build an entry from one log object (accessed_at, url, http_method, http_header, http_body)."""
        if not isinstance(obj, dict):
            raise MalformedEntry(f"log entry must be an object, got {type(obj).__name__}")
        for key in ("accessed_at", "url", "http_method"):
            if key not in obj:
                raise MalformedEntry(f"missing field: {key}")
        return cls.from_raw(
            accessed_at=obj["accessed_at"],
            url=obj["url"],
            method=obj["http_method"],
            headers=obj.get("http_header"),
            body=obj.get("http_body", ""),
        )

    @property
    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8")
