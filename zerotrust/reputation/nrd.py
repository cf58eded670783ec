"""Newly registered domain (NRD) detection.

A domain is "new" when its RDAP registration event is no older than the
configured threshold. The offline suspicious-name heuristics are computed on
every check so callers still get a signal when registration data is missing.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

import httpx

from ..cache import CacheStore, MemoryCache, RequestCoalescer
from ..constants import DEFAULT_CACHE_EXPIRY_SECONDS, SECONDS_PER_DAY
from ..utils.domains import canonicalize_domain, registered_domain
from .ddns import check_ddns
from .models import Confidence, DetectionMethod, NRDResult, SuspiciousDomainScores
from .rdap import RdapClient, RegistrationDataSource, extract_domain_status, extract_registration_date
from .suspicious import SUSPICIOUS_TLDS, calculate_suspicious_score, is_high_risk_domain

logger = logging.getLogger(__name__)


@dataclass
class NRDConfig:
    threshold_days: int = 30
    enable_rdap: bool = True
    rdap_timeout: float = 5.0
    # Per-host adaptive RDAP rate limit; a min of 0 disables limiting.
    rdap_min_qpm: int = 0
    rdap_max_qpm: int = 120
    suspicious_threshold: int = 60
    cache_expiry: float = DEFAULT_CACHE_EXPIRY_SECONDS
    # Failed lookups are retried once this much time has passed.
    error_cache_expiry: float = 300.0
    suspicious_tlds: frozenset[str] = SUSPICIOUS_TLDS
    ddns_providers: Optional[Mapping[str, str]] = None


def parse_rdap_date(value: str) -> Optional[datetime]:
    """Parse an RDAP eventDate (ISO 8601, usually with a Z suffix)."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def calculate_domain_age(registration_date: str, now: float) -> Optional[int]:
    """Whole days between registration and now, or None if unparseable."""
    parsed = parse_rdap_date(registration_date)
    if parsed is None:
        return None
    return math.floor((now - parsed.timestamp()) / SECONDS_PER_DAY)


class NRDDetector:
    """Age-based domain reputation detector with a lazily expiring cache."""

    def __init__(
        self,
        config: Optional[NRDConfig] = None,
        rdap: Optional[RegistrationDataSource] = None,
        cache: Optional[CacheStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or NRDConfig()
        self.rdap = rdap or RdapClient(
            timeout=self.config.rdap_timeout,
            min_qpm=self.config.rdap_min_qpm,
            max_qpm=self.config.rdap_max_qpm,
        )
        self.cache = cache if cache is not None else MemoryCache()
        self.clock = clock
        self._inflight = RequestCoalescer()

    def check_domain_sync(self, domain: str) -> SuspiciousDomainScores:
        """Offline heuristics only; never touches the network."""
        return calculate_suspicious_score(
            canonicalize_domain(domain),
            suspicious_tlds=self.config.suspicious_tlds,
            ddns_providers=self.config.ddns_providers,
        )

    def is_high_risk(self, scores: SuspiciousDomainScores) -> bool:
        return is_high_risk_domain(scores, self.config.suspicious_threshold)

    def _expiry_for(self, result: NRDResult) -> float:
        if result.method == DetectionMethod.ERROR:
            return self.config.error_cache_expiry
        return self.config.cache_expiry

    async def _fetch_record(self, target: str) -> dict:
        lookup = self.rdap.lookup(target)
        if getattr(self.rdap, "bounds_requests", False):
            return await lookup
        return await asyncio.wait_for(lookup, timeout=self.config.rdap_timeout)

    def _get_cached(self, domain: str) -> Optional[NRDResult]:
        cached = self.cache.get(domain)
        if cached is None:
            return None
        if cached.checked_at + self._expiry_for(cached) > self.clock():
            return cached
        logger.debug(f"NRD cache entry expired for {domain}")
        self.cache.delete(domain)
        return None

    async def check_domain(self, domain: str) -> NRDResult:
        """Check whether a domain is newly registered. Never raises."""
        normalized = canonicalize_domain(domain)
        cached = self._get_cached(normalized)
        if cached is not None:
            logger.debug(f"NRD cache hit for {normalized}")
            return replace(cached, method=DetectionMethod.CACHE)
        return await self._inflight.run(normalized, lambda: self._lookup(normalized))

    async def _lookup(self, domain: str) -> NRDResult:
        scores = self.check_domain_sync(domain)
        ddns = check_ddns(domain, self.config.ddns_providers)
        base = dict(domain=domain, suspicious_scores=scores, ddns=ddns)

        if not domain or not self.config.enable_rdap:
            result = NRDResult(
                is_nrd=False,
                confidence=Confidence.UNKNOWN,
                method=DetectionMethod.HEURISTIC,
                checked_at=self.clock(),
                **base,
            )
            self.cache.set(domain, result)
            return result

        target = registered_domain(domain) or domain
        try:
            data = await self._fetch_record(target)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.debug(f"RDAP lookup timed out for {target}")
            result = NRDResult(
                is_nrd=False,
                confidence=Confidence.UNKNOWN,
                method=DetectionMethod.ERROR,
                checked_at=self.clock(),
                error="RDAP lookup timed out",
                **base,
            )
        except Exception as e:
            logger.debug(f"RDAP lookup failed for {target}: {e}")
            result = NRDResult(
                is_nrd=False,
                confidence=Confidence.UNKNOWN,
                method=DetectionMethod.ERROR,
                checked_at=self.clock(),
                error=str(e) or type(e).__name__,
                **base,
            )
        else:
            now = self.clock()
            registration_date = extract_registration_date(data)
            age = calculate_domain_age(registration_date, now) if registration_date else None
            if age is None:
                result = NRDResult(
                    is_nrd=False,
                    confidence=Confidence.UNKNOWN,
                    method=DetectionMethod.NETWORK,
                    checked_at=now,
                    registration_date=registration_date,
                    domain_status=extract_domain_status(data),
                    **base,
                )
            else:
                is_nrd = age <= self.config.threshold_days
                result = NRDResult(
                    is_nrd=is_nrd,
                    confidence=Confidence.HIGH,
                    method=DetectionMethod.NETWORK,
                    checked_at=now,
                    domain_age=age,
                    registration_date=registration_date,
                    domain_status=extract_domain_status(data),
                    **base,
                )
                if is_nrd:
                    logger.info(f"Newly registered domain: {domain} ({age} days old)")

        self.cache.set(domain, result)
        return result

    def clear_cache(self) -> None:
        self.cache.clear()
