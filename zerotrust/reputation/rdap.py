"""RDAP helpers for domain registration lookups.

Used by the NRD detector to find when a domain was first registered.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional, Protocol
from urllib.parse import urlparse

import httpx

from ..constants import USER_AGENT

logger = logging.getLogger(__name__)

RDAP_ACCEPT = "application/rdap+json, application/json"
# Throttling answers; the next endpoint is tried instead of failing.
RETRYABLE_STATUSES = (429, 503)


class RdapError(Exception):
    """RDAP lookup failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RegistrationDataSource(Protocol):
    """
    Lookup-by-domain source of RDAP-shaped records.

    Sources that set ``bounds_requests`` time out each request themselves;
    callers then skip their own overall deadline, which would otherwise also
    count time spent queued behind a rate limit.
    """

    async def lookup(self, domain: str) -> dict[str, Any]: ...


def extract_registration_date(data: object) -> Optional[str]:
    """Return the eventDate of the first 'registration' event, if any."""
    if not isinstance(data, dict):
        return None
    events = data.get("events")
    if not isinstance(events, list):
        return None
    for event in events:
        if not isinstance(event, dict):
            continue
        if event.get("eventAction") == "registration":
            value = event.get("eventDate")
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def extract_domain_status(data: object) -> list[str]:
    """Return RDAP status values (e.g. 'client transfer prohibited')."""
    if not isinstance(data, dict):
        return []
    status = data.get("status")
    if not isinstance(status, list):
        return []
    return [s.strip() for s in status if isinstance(s, str) and s.strip()]


class HostThrottle:
    """
    Per-host request pacing for RDAP servers.

    Starts at ``floor_qpm`` and creeps toward ``ceiling_qpm`` while requests
    keep succeeding; a 429/503 or timeout halves the rate at once.
    """

    STEP_AFTER_SUCCESSES = 30
    STEP_INTERVAL = 60.0

    def __init__(self, floor_qpm: int, ceiling_qpm: int, clock: Callable[[], float] = time.monotonic):
        self.floor_qpm = max(1, floor_qpm)
        self.ceiling_qpm = max(self.floor_qpm, ceiling_qpm)
        self.qpm = self.floor_qpm
        self.clock = clock
        self._ready_at = 0.0
        self._streak = 0
        self._stepped_at = clock()
        self._lock = asyncio.Lock()

    @property
    def spacing(self) -> float:
        return 60.0 / self.qpm

    async def wait_turn(self) -> None:
        """Reserve the next send slot, then sleep until it comes up."""
        async with self._lock:
            now = self.clock()
            slot = max(now, self._ready_at)
            self._ready_at = slot + self.spacing
        if slot > now:
            await asyncio.sleep(slot - now)

    async def succeeded(self) -> None:
        async with self._lock:
            self._streak += 1
            now = self.clock()
            if self.qpm >= self.ceiling_qpm or self._streak < self.STEP_AFTER_SUCCESSES:
                return
            if now - self._stepped_at < self.STEP_INTERVAL:
                return
            self.qpm += 1
            self._streak = 0
            self._stepped_at = now

    async def throttled(self) -> None:
        async with self._lock:
            self.qpm = max(self.floor_qpm, self.qpm // 2)
            self._streak = 0
            self._stepped_at = self.clock()
            self._ready_at = max(self._ready_at, self._stepped_at + self.spacing)


# Registry RDAP bases tried after rdap.org, before the IANA fallback.
REGISTRY_RDAP_BASES: dict[str, str] = {
    "com": "https://rdap.verisign.com/com/v1",
    "net": "https://rdap.verisign.com/net/v1",
    "org": "https://rdap.publicinterestregistry.org/rdap",
}


def rdap_endpoints_for(domain: str) -> list[str]:
    """Ordered RDAP URLs to query for ``domain``."""
    name = (domain or "").strip().lower()
    _, _, tld = name.rpartition(".")
    bases = ["https://rdap.org"]
    if tld in REGISTRY_RDAP_BASES:
        bases.append(REGISTRY_RDAP_BASES[tld])
    bases.append("https://rdap.iana.org")
    return [f"{base}/domain/{name}" for base in bases]


class RdapClient:
    """
    RDAP registration-data source backed by httpx.

    Each client owns its per-host throttles. Endpoints are tried in
    order; throttling (429/503) and timeouts move on to the next one, any
    other failure raises RdapError immediately. ``timeout`` bounds each
    request; time spent waiting for a throttle slot is not counted.
    """

    bounds_requests = True

    def __init__(
        self,
        timeout: float = 5.0,
        *,
        min_qpm: int = 0,
        max_qpm: int = 120,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.min_qpm = min_qpm
        self.max_qpm = max_qpm
        self._transport = transport
        self._throttles: dict[str, HostThrottle] = {}

    def _throttle_for(self, url: str) -> Optional[HostThrottle]:
        if self.min_qpm <= 0:
            return None
        host = urlparse(url).netloc.lower() or "rdap"
        if host not in self._throttles:
            self._throttles[host] = HostThrottle(self.min_qpm, self.max_qpm)
        return self._throttles[host]

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> dict[str, Any]:
        throttle = self._throttle_for(url)
        if throttle:
            await throttle.wait_turn()
        try:
            resp = await client.get(url)
        except httpx.TimeoutException:
            if throttle:
                await throttle.throttled()
            raise

        if resp.status_code in RETRYABLE_STATUSES and throttle:
            await throttle.throttled()
        if resp.status_code != 200:
            raise RdapError(f"RDAP {url} returned HTTP {resp.status_code}", status_code=resp.status_code)
        if throttle:
            await throttle.succeeded()

        try:
            data = resp.json()
        except ValueError:
            raise RdapError(f"RDAP {url} returned a non-JSON body", status_code=resp.status_code) from None
        if not isinstance(data, dict):
            raise RdapError(f"RDAP {url} returned a non-object body", status_code=resp.status_code)
        return data

    async def lookup(self, domain: str) -> dict[str, Any]:
        """Fetch the RDAP record for a domain."""
        normalized = (domain or "").strip().lower()
        if not normalized:
            raise RdapError("No domain provided for RDAP lookup")

        last_error: Exception = RdapError("RDAP lookup failed (all endpoints)")
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT, "Accept": RDAP_ACCEPT},
            transport=self._transport,
        ) as client:
            for url in rdap_endpoints_for(normalized):
                try:
                    return await self._fetch(client, url)
                except httpx.TimeoutException as e:
                    logger.debug(f"RDAP timeout for {normalized} at {url}")
                    last_error = e
                except RdapError as e:
                    if e.status_code not in RETRYABLE_STATUSES:
                        raise
                    logger.debug(f"RDAP throttled for {normalized} at {url} ({e.status_code})")
                    last_error = e
        raise last_error
