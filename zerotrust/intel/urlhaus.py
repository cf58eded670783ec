"""abuse.ch URLhaus host and URL lookups.

Free, no API key required, no strict rate limits.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol

import aiohttp

from ..constants import USER_AGENT
from .models import IndicatorType, ThreatCategory, ThreatCheckResult, ThreatSeverity, ThreatSource

logger = logging.getLogger(__name__)

URLHAUS_HOST_API = "https://urlhaus-api.abuse.ch/v1/host/"
URLHAUS_URL_API = "https://urlhaus-api.abuse.ch/v1/url/"

THREAT_TYPE_CATEGORIES: dict[str, ThreatCategory] = {
    "malware_download": ThreatCategory.MALWARE,
    "elf": ThreatCategory.MALWARE,
    "exe": ThreatCategory.MALWARE,
    "doc": ThreatCategory.MALWARE,
    "js": ThreatCategory.MALWARE,
    "hta": ThreatCategory.MALWARE,
    "phishing": ThreatCategory.PHISHING,
    "miner": ThreatCategory.CRYPTOMINER,
}


class ThreatFeed(Protocol):
    """Lookup-by-host threat source. Returns None for 'no opinion'."""

    name: str

    async def check_host(self, host: str) -> Optional[ThreatCheckResult]: ...


class UrlThreatFeed(Protocol):
    """Feed that can also judge a full URL."""

    name: str

    async def check_url(self, url: str) -> Optional[ThreatCheckResult]: ...


def map_threat_category(threat: Optional[str]) -> ThreatCategory:
    return THREAT_TYPE_CATEGORIES.get((threat or "").lower(), ThreatCategory.UNKNOWN)


def parse_urlhaus_host_response(
    host: str, data: object, checked_at: float
) -> Optional[ThreatCheckResult]:
    """Convert a URLhaus /host/ response into a result; None if unusable."""
    if not isinstance(data, dict):
        return None
    urls = data.get("urls") if isinstance(data.get("urls"), list) else []
    try:
        url_count = int(data.get("url_count") or len(urls))
    except (TypeError, ValueError):
        url_count = len(urls)

    if data.get("query_status") != "ok" or url_count == 0:
        return ThreatCheckResult(
            indicator=host,
            is_threat=False,
            severity=ThreatSeverity.INFO,
            confidence=0,
            checked_at=checked_at,
            sources=frozenset({ThreatSource.URLHAUS}),
            details={"query_status": data.get("query_status")},
        )

    categories = set()
    online = 0
    for entry in urls:
        if not isinstance(entry, dict):
            continue
        categories.add(map_threat_category(entry.get("threat")))
        if entry.get("url_status") == "online":
            online += 1
    if not categories:
        categories.add(ThreatCategory.UNKNOWN)

    if online > 5:
        severity = ThreatSeverity.CRITICAL
    elif online > 0:
        severity = ThreatSeverity.HIGH
    else:
        severity = ThreatSeverity.MEDIUM

    return ThreatCheckResult(
        indicator=host,
        is_threat=True,
        severity=severity,
        confidence=85 if online > 0 else 60,
        checked_at=checked_at,
        categories=frozenset(categories),
        sources=frozenset({ThreatSource.URLHAUS}),
        details={"url_count": url_count, "online_urls": online},
    )


def map_url_severity(url_status: Optional[str], threat: Optional[str]) -> ThreatSeverity:
    if url_status == "online":
        return ThreatSeverity.CRITICAL if "ransomware" in (threat or "") else ThreatSeverity.HIGH
    if url_status == "offline":
        return ThreatSeverity.MEDIUM
    return ThreatSeverity.LOW


def parse_urlhaus_url_response(url: str, data: object, checked_at: float) -> Optional[ThreatCheckResult]:
    """Convert a URLhaus /url/ response into a result; None if unusable."""
    if not isinstance(data, dict):
        return None
    if data.get("query_status") != "ok":
        return ThreatCheckResult(
            indicator=url,
            is_threat=False,
            severity=ThreatSeverity.INFO,
            confidence=0,
            checked_at=checked_at,
            indicator_type=IndicatorType.URL,
            sources=frozenset({ThreatSource.URLHAUS}),
            details={"query_status": data.get("query_status")},
        )

    # Some responses nest the entry under url_info.
    info = data.get("url_info") if isinstance(data.get("url_info"), dict) else data
    threat = info.get("threat") or ""
    url_status = info.get("url_status") or ""
    return ThreatCheckResult(
        indicator=url,
        is_threat=True,
        severity=map_url_severity(url_status, threat),
        confidence=90 if url_status == "online" else 70,
        checked_at=checked_at,
        indicator_type=IndicatorType.URL,
        categories=frozenset({map_threat_category(threat)}),
        sources=frozenset({ThreatSource.URLHAUS}),
        details={"url_status": url_status, "threat": threat},
    )


class URLhausFeed:
    """Queries abuse.ch URLhaus for known malware/phishing hosts and URLs."""

    name = "urlhaus"

    def __init__(
        self,
        api_url: str = URLHAUS_HOST_API,
        url_api_url: str = URLHAUS_URL_API,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        self.api_url = api_url
        self.url_api_url = url_api_url
        self.timeout = timeout
        self.clock = clock

    async def _post(self, endpoint: str, form: dict[str, str]) -> Optional[object]:
        indicator = next(iter(form.values()))
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    endpoint,
                    data=form,
                    headers={"User-Agent": USER_AGENT},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    if resp.status != 200:
                        logger.debug(f"URLhaus HTTP {resp.status} for {indicator}")
                        return None
                    return await resp.json()
        except asyncio.TimeoutError:
            logger.debug(f"URLhaus timeout for {indicator}")
            return None
        except Exception as e:
            logger.debug(f"URLhaus error for {indicator}: {e}")
            return None

    async def check_host(self, host: str) -> Optional[ThreatCheckResult]:
        data = await self._post(self.api_url, {"host": host})
        if data is None:
            return None
        result = parse_urlhaus_host_response(host, data, self.clock())
        if result and result.is_threat:
            logger.debug(f"URLhaus: {host} = {str(result.severity)} ({result.details.get('url_count')} URLs)")
        return result

    async def check_url(self, url: str) -> Optional[ThreatCheckResult]:
        data = await self._post(self.url_api_url, {"url": url})
        if data is None:
            return None
        result = parse_urlhaus_url_response(url, data, self.clock())
        if result and result.is_threat:
            logger.debug(f"URLhaus: {url} = {str(result.severity)} ({result.details.get('url_status')})")
        return result
