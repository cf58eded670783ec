"""Threat intelligence aggregation.

Runs the local pattern matcher, the blocklist and any configured external
feeds for a domain, merges their verdicts under one confidence model and
caches the merged result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Optional, Sequence

from ..cache import CacheStore, MemoryCache, RequestCoalescer
from ..constants import DEFAULT_CACHE_EXPIRY_SECONDS
from ..utils.domains import canonicalize_domain
from .blocklist import SAFE_DOMAINS, Blocklist
from .models import (
    IndicatorType,
    ThreatCacheEntry,
    ThreatCheckResult,
    ThreatSeverity,
    ThreatSummary,
    neutral_result,
)
from .urlhaus import ThreatFeed, URLhausFeed

logger = logging.getLogger(__name__)


@dataclass
class ThreatIntelConfig:
    enabled: bool = True
    cache_expiry: float = DEFAULT_CACHE_EXPIRY_SECONDS
    # Added per corroborating source beyond the first.
    confidence_bonus: int = 5
    batch_size: int = 10
    feed_timeout: float = 10.0
    enable_urlhaus: bool = True
    enable_blocklists: bool = True
    blocklist_urls: list[str] = field(default_factory=list)
    safe_domains: frozenset[str] = SAFE_DOMAINS


def merge_results(
    indicator: str,
    results: Iterable[Optional[ThreatCheckResult]],
    checked_at: float,
    confidence_bonus: int = 5,
) -> ThreatCheckResult:
    """
    Merge per-source verdicts.

    None entries are "no opinion". Non-threat results do not contribute.
    The merged severity is the most severe input and confidence is the best
    single confidence plus a bonus for each extra distinct source, capped
    at 100.
    """
    threats = [r for r in results if r is not None and r.is_threat]
    if not threats:
        return neutral_result(indicator, checked_at)

    categories = frozenset().union(*(r.categories for r in threats))
    sources = frozenset().union(*(r.sources for r in threats))
    severity = max((r.severity for r in threats), default=ThreatSeverity.UNKNOWN)
    best = max(r.confidence for r in threats)
    bonus = max(0, confidence_bonus) * max(0, len(sources) - 1)
    details: dict = {}
    for r in threats:
        details.update(r.details)

    return ThreatCheckResult(
        indicator=indicator,
        is_threat=True,
        severity=severity,
        confidence=min(100, best + bonus),
        checked_at=checked_at,
        categories=categories,
        sources=sources,
        details=details,
    )


class ThreatIntelAggregator:
    """Multi-source threat lookups with a lazily expiring merged-result cache."""

    def __init__(
        self,
        config: Optional[ThreatIntelConfig] = None,
        blocklist: Optional[Blocklist] = None,
        feeds: Optional[Sequence[ThreatFeed]] = None,
        cache: Optional[CacheStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or ThreatIntelConfig()
        self.clock = clock
        self.blocklist = blocklist or Blocklist(safe_domains=self.config.safe_domains, clock=clock)
        if feeds is None:
            feeds = [URLhausFeed(timeout=self.config.feed_timeout, clock=clock)] if self.config.enable_urlhaus else []
        self.feeds = list(feeds)
        self.cache = cache if cache is not None else MemoryCache()
        self._inflight = RequestCoalescer()

    async def initialize(self) -> int:
        """Download configured blocklists; returns the blocklist size."""
        if not (self.config.enabled and self.config.enable_blocklists and self.config.blocklist_urls):
            return self.blocklist.size()
        size = await self.blocklist.update_from_urls(self.config.blocklist_urls)
        logger.info(f"Threat intel initialized with {size} blocklisted domains")
        return size

    def _get_cached(self, key: str) -> Optional[ThreatCheckResult]:
        entry = self.cache.get(key)
        if entry is None:
            return None
        if entry.expires_at > self.clock():
            return replace(entry.result, cached=True)
        self.cache.delete(key)
        return None

    async def _query_feed(
        self, feed: ThreatFeed, indicator: str, method: str = "check_host"
    ) -> Optional[ThreatCheckResult]:
        try:
            return await asyncio.wait_for(getattr(feed, method)(indicator), timeout=self.config.feed_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Threat feed {getattr(feed, 'name', feed)} timed out for {indicator}")
        except Exception as e:
            logger.warning(f"Threat feed {getattr(feed, 'name', feed)} failed for {indicator}: {e}")
        return None

    def _store(self, key: str, merged: ThreatCheckResult) -> ThreatCheckResult:
        self.cache.set(key, ThreatCacheEntry(result=merged, expires_at=merged.checked_at + self.config.cache_expiry))
        if merged.is_threat:
            logger.info(
                f"Threat intel: {merged.indicator} severity={merged.severity} "
                f"confidence={merged.confidence} sources={sorted(s.value for s in merged.sources)}"
            )
        return merged

    async def _lookup(self, domain: str, key: str) -> ThreatCheckResult:
        results: list[Optional[ThreatCheckResult]] = [
            self.blocklist.check_malicious_patterns(domain),
            self.blocklist.check_blocklist(domain),
        ]
        if self.feeds:
            results.extend(await asyncio.gather(*(self._query_feed(f, domain) for f in self.feeds)))

        merged = merge_results(domain, results, self.clock(), self.config.confidence_bonus)
        return self._store(key, merged)

    async def _lookup_url(self, url: str, host: str, key: str) -> ThreatCheckResult:
        results: list[Optional[ThreatCheckResult]] = [
            self.blocklist.check_malicious_patterns(host),
            self.blocklist.check_blocklist(host),
        ]
        url_feeds = [f for f in self.feeds if callable(getattr(f, "check_url", None))]
        if url_feeds:
            results.extend(await asyncio.gather(*(self._query_feed(f, url, "check_url") for f in url_feeds)))

        merged = merge_results(url, results, self.clock(), self.config.confidence_bonus)
        return self._store(key, replace(merged, indicator_type=IndicatorType.URL))

    async def check_domain(self, domain: str) -> ThreatCheckResult:
        """Check one domain across all sources. Never raises."""
        normalized = canonicalize_domain(domain)
        if not self.config.enabled or not normalized:
            return neutral_result(normalized, self.clock())

        key = f"domain:{normalized}"
        cached = self._get_cached(key)
        if cached is not None:
            logger.debug(f"Threat intel cache hit for {normalized}")
            return cached
        return await self._inflight.run(key, lambda: self._lookup(normalized, key))

    async def check_url(self, url: str) -> ThreatCheckResult:
        """
        Check a full URL. Never raises.

        The pattern matcher and blocklist judge its host; feeds that support
        URL lookups judge the URL itself. Verdicts merge as for domains.
        """
        target = (url or "").strip()
        host = canonicalize_domain(target)
        if not self.config.enabled or not host:
            return replace(neutral_result(target, self.clock()), indicator_type=IndicatorType.URL)

        key = f"url:{target}"
        cached = self._get_cached(key)
        if cached is not None:
            logger.debug(f"Threat intel cache hit for {target}")
            return cached
        return await self._inflight.run(key, lambda: self._lookup_url(target, host, key))

    async def check_domains(self, domains: Iterable[str]) -> dict[str, ThreatCheckResult]:
        """Check many domains, at most batch_size in flight at a time."""
        unique = list(dict.fromkeys(domains))
        window = max(1, self.config.batch_size)
        results: dict[str, ThreatCheckResult] = {}
        for start in range(0, len(unique), window):
            batch = unique[start:start + window]
            checked = await asyncio.gather(*(self.check_domain(d) for d in batch))
            results.update(zip(batch, checked))
        return results

    async def get_threat_summary(self, domains: Iterable[str]) -> ThreatSummary:
        results = await self.check_domains(domains)
        summary = ThreatSummary(total=len(results))
        for result in results.values():
            if not result.is_threat:
                continue
            summary.threats += 1
            if result.severity == ThreatSeverity.CRITICAL:
                summary.critical += 1
            elif result.severity == ThreatSeverity.HIGH:
                summary.high += 1
            elif result.severity == ThreatSeverity.MEDIUM:
                summary.medium += 1
            elif result.severity == ThreatSeverity.LOW:
                summary.low += 1
            for category in result.categories:
                summary.categories[category.value] = summary.categories.get(category.value, 0) + 1
        return summary

    def clear_cache(self) -> None:
        self.cache.clear()
