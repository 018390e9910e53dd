"""
Dispatcher - sends one recorded request to the target and classifies what happened.

A received response of any status is a success; timeouts and transport
failures come back as Failed outcomes. Nothing here retries.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import httpx

from logreplay.clock import Clock, SystemClock
from logreplay.entry import AccessEntry
from logreplay.errors import ReplayError
from logreplay.outcome import Failed, FailureKind, ReplayOutcome, Succeeded

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class TargetConfig:
    """
    Where and how to send replayed requests.

    base_url: when set, each entry's path and query are re-based onto this
        scheme/host (and path prefix). When None the recorded URL is used as is.
    timeout: seconds before an attempt is abandoned.
    verify_tls: verify server certificates.
    """

    base_url: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    verify_tls: bool = True

    def __post_init__(self):
        if self.base_url is not None:
            parts = urlsplit(self.base_url)
            if parts.scheme not in ("http", "https") or not parts.netloc:
                raise ValueError(f"target must be an absolute http(s) URL: {self.base_url!r}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


def resolve_url(url: str, target: TargetConfig) -> str:
    """Return the URL an entry should be sent to under `target`."""
    if not target.base_url:
        return url
    base = urlsplit(target.base_url)
    recorded = urlsplit(url)
    path = base.path.rstrip("/") + (recorded.path or "/")
    return urlunsplit((base.scheme, base.netloc, path, recorded.query, ""))


def _target_host(target: TargetConfig) -> str:
    # netloc without any userinfo
    return urlsplit(target.base_url).netloc.rpartition("@")[2]


def resolve_headers(entry: AccessEntry, target: TargetConfig) -> List[Tuple[str, str]]:
    headers = list(entry.headers.items())
    if not target.base_url:
        return headers
    host = _target_host(target)
    return [(name, host if name.lower() == "host" else value) for name, value in headers]


def _header_bytes(text: str) -> bytes:
    # recorded values may carry non-ASCII text; send them as latin-1 when possible
    try:
        return text.encode("latin-1")
    except UnicodeEncodeError:
        return text.encode("utf-8")


class Dispatcher:
    """
    Sends entries through one shared httpx.AsyncClient.

    Use as an async context manager; a client passed in is not closed on exit.
    """

    def __init__(
        self,
        target: TargetConfig,
        client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.target = target
        self.clock = clock or SystemClock()
        self._client = client
        self._owns_client = client is None
        self._transport = transport

    async def __aenter__(self) -> "Dispatcher":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.target.timeout,
                verify=self.target.verify_tls,
                follow_redirects=False,
                transport=self._transport,
            )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_request(self, entry: AccessEntry) -> httpx.Request:
        headers = [
            (_header_bytes(name), _header_bytes(value))
            for name, value in resolve_headers(entry, self.target)
        ]
        return self._client.build_request(
            entry.method,
            resolve_url(entry.url, self.target),
            headers=headers,
            content=entry.body_bytes if entry.body else None,
        )

    async def dispatch(self, entry: AccessEntry, index: int = 0) -> ReplayOutcome:
        """
        Send one entry and record the outcome.

        Args:
            entry: the recorded request
            index: the entry's position in the loaded log

        Returns:
            ReplayOutcome with Succeeded(status) or Failed(kind)
        """
        if self._client is None:
            raise ReplayError("Dispatcher must be entered with 'async with' before use")

        dispatched_at = self.clock.now()
        try:
            request = self.build_request(entry)
        except (httpx.InvalidURL, UnicodeEncodeError) as e:
            logger.warning("Cannot build request for entry %d: %s", index, e)
            status = Failed(FailureKind.TRANSPORT_ERROR, f"invalid request: {e}")
            return ReplayOutcome(index, status, dispatched_at, None, attempts=1)
        start = self.clock.monotonic()
        try:
            response = await asyncio.wait_for(self._client.send(request), self.target.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            latency = self.clock.monotonic() - start
            logger.warning("Timed out after %.1fs: %s %s", latency, request.method, request.url)
            status = Failed(FailureKind.TIMEOUT, str(e) or "timed out")
            return ReplayOutcome(index, status, dispatched_at, latency, attempts=1)
        except httpx.RequestError as e:
            latency = self.clock.monotonic() - start
            logger.warning("Transport error: %s %s: %s", request.method, request.url, e)
            status = Failed(FailureKind.TRANSPORT_ERROR, str(e) or type(e).__name__)
            return ReplayOutcome(index, status, dispatched_at, latency, attempts=1)

        latency = self.clock.monotonic() - start
        logger.debug("%s %s -> %d (%.1fms)", request.method, request.url, response.status_code, latency * 1000)
        return ReplayOutcome(index, Succeeded(response.status_code), dispatched_at, latency, attempts=1)


async def dispatch(
    entry: AccessEntry,
    target: TargetConfig,
    client: Optional[httpx.AsyncClient] = None,
    index: int = 0,
) -> ReplayOutcome:
    """Send a single entry without keeping a Dispatcher around."""
    async with Dispatcher(target, client=client) as dispatcher:
        return await dispatcher.dispatch(entry, index)
