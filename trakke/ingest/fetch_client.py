"""
Rate-limited async HTTP client shared by every source adapter.

Per upstream host it enforces:

  - a minimum delay between consecutive calls (default 3 s)
  - a rolling budget of N calls per window (default 8 per 60 s)
  - on HTTP 429, exactly one retry after a fixed cooldown (default 60 s)
  - a timeout on every call (25 s for queries, 5 s for probes)

Only ``SourceError`` subclasses leave this module.  Slots are reserved
synchronously before the first await, so concurrent tasks on one event
loop never double-book a slot.

Usage
-----
    async with RateLimitedFetchClient(settings) as client:
        resp = await client.fetch("GET", url, params=params, source="entur")
        ok = await client.probe(capabilities_url)
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, Optional
from urllib.parse import urlsplit

import httpx

from ..config import Settings
from ..errors import RateLimited, SourceError, SourceUnavailable

log = logging.getLogger(__name__)


@dataclass
class _UpstreamState:
    """Scheduled start times of the most recent calls to one host."""
    starts: Deque[float] = field(default_factory=deque)
    last_start: Optional[float] = None


class RateLimitedFetchClient:
    """Async HTTP wrapper with per-upstream pacing and a single 429 retry."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings or Settings()
        self._clock = clock
        self._sleep = sleep
        self._upstreams: Dict[str, _UpstreamState] = {}
        self._client = httpx.AsyncClient(
            transport=transport,
            headers={"User-Agent": self._settings.user_agent},
            follow_redirects=True,
        )
        self.calls_made = 0

    async def __aenter__(self) -> "RateLimitedFetchClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Pacing ────────────────────────────────────────────────────────

    def _reserve(self, upstream: str) -> float:
        """Claim the next free slot for *upstream*; return seconds to wait."""
        s = self._settings
        now = self._clock()
        state = self._upstreams.setdefault(upstream, _UpstreamState())
        start = now
        if state.last_start is not None:
            start = max(start, state.last_start + s.min_call_delay_s)
        if s.call_budget > 0 and len(state.starts) >= s.call_budget:
            start = max(start, state.starts[0] + s.budget_window_s)
        state.starts.append(start)
        while len(state.starts) > max(s.call_budget, 1):
            state.starts.popleft()
        state.last_start = start
        return start - now

    async def _wait_for_slot(self, upstream: str) -> None:
        wait = self._reserve(upstream)
        if wait > 0:
            log.debug("Pacing %s: waiting %.1fs", upstream, wait)
            await self._sleep(wait)

    # ── Public API ────────────────────────────────────────────────────

    async def fetch(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict] = None,
        data: Optional[str] = None,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
        source: Optional[str] = None,
    ) -> httpx.Response:
        """Issue one paced request and return the 2xx/3xx response.

        Raises SourceUnavailable on network errors, timeouts, non-2xx
        statuses and a second consecutive 429.
        """
        upstream = urlsplit(url).netloc or url
        source = source or upstream
        timeout = self._settings.query_timeout_s if timeout is None else timeout

        for attempt in (1, 2):
            await self._wait_for_slot(upstream)
            self.calls_made += 1
            try:
                resp = await self._client.request(
                    method, url, params=params, content=data,
                    headers=headers, timeout=timeout,
                )
            except httpx.TimeoutException as exc:
                raise SourceUnavailable(source, f"timed out after {timeout:.0f}s") from exc
            except httpx.HTTPError as exc:
                raise SourceUnavailable(source, f"network error: {exc.__class__.__name__}") from exc

            if resp.status_code == 429:
                if attempt == 1:
                    log.warning("%s rate limited (HTTP 429), retrying in %.0fs",
                                source, self._settings.rate_limit_cooldown_s)
                    await self._sleep(self._settings.rate_limit_cooldown_s)
                    continue
                raise SourceUnavailable(source, "rate limited", status=429) from RateLimited(
                    source, "HTTP 429 after retry", status=429)
            if resp.status_code >= 400:
                raise SourceUnavailable(source, f"HTTP {resp.status_code}",
                                        status=resp.status_code)
            return resp

        # unreachable: the loop either returns or raises
        raise SourceUnavailable(source, "request not attempted")

    async def probe(self, url: str, params: Optional[dict] = None,
                    source: Optional[str] = None) -> bool:
        """True if *url* answers 2xx within the probe timeout."""
        try:
            await self.fetch("GET", url, params=params, source=source,
                             timeout=self._settings.probe_timeout_s)
        except SourceError as exc:
            log.info("Probe failed: %s", exc)
            return False
        return True
