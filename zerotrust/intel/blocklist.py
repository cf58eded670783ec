"""Local domain blocklists and known-malicious name patterns."""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, Iterable, Optional

import aiohttp

from ..constants import USER_AGENT
from ..utils.domains import matches_domain_or_subdomain, parent_domains
from .models import ThreatCategory, ThreatCheckResult, ThreatSeverity, ThreatSource

logger = logging.getLogger(__name__)

MALICIOUS_PATTERNS: list[re.Pattern] = [
    # Cryptocurrency giveaway scams
    re.compile(r"^(?:airdrop|claim|reward|bonus|giveaway)[-.].*\.(com|io|xyz|net)$", re.IGNORECASE),
    # Fake login pages for big brands
    re.compile(r"(?:login|signin|secure|verify|update)[-.](?:google|microsoft|apple|amazon|paypal|bank)", re.IGNORECASE),
    # Account-action phishing hosts
    re.compile(r"^(?:www\.)?(?:secure|login|verify|account|update)[-_].*\.(com|net|org)$", re.IGNORECASE),
]

# Never treated as malicious, even if a downloaded list says otherwise.
SAFE_DOMAINS: frozenset[str] = frozenset(
    {
        "google.com",
        "googleapis.com",
        "gstatic.com",
        "microsoft.com",
        "windows.com",
        "apple.com",
        "icloud.com",
        "amazon.com",
        "aws.amazon.com",
        "cloudflare.com",
        "github.com",
        "githubusercontent.com",
        "anthropic.com",
        "openai.com",
    }
)

_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9.-]*\.[a-z]{2,}$")


def parse_blocklist_text(text: str) -> list[str]:
    """
    Parse a plain-text blocklist.

    Accepts one domain per line or hosts-file lines ("0.0.0.0 domain").
    Comments (# or //) and malformed entries are skipped.
    """
    domains: list[str] = []
    for line in (text or "").splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#") or trimmed.startswith("//"):
            continue
        parts = trimmed.split()
        candidate = (parts[1] if len(parts) > 1 else parts[0]).lower().rstrip(".")
        if _DOMAIN_RE.match(candidate):
            domains.append(candidate)
    return domains


class Blocklist:
    """In-memory domain blocklist plus the built-in pattern matcher."""

    def __init__(
        self,
        safe_domains: Optional[Iterable[str]] = None,
        clock: Callable[[], float] = time.time,
        timeout: float = 30.0,
    ):
        self.safe_domains = frozenset(d.lower() for d in (safe_domains or SAFE_DOMAINS))
        self.clock = clock
        self.timeout = timeout
        self._domains: set[str] = set()
        self.last_updated: Optional[float] = None

    def is_safe(self, domain: str) -> bool:
        return matches_domain_or_subdomain(domain, self.safe_domains) is not None

    def add_domains(self, domains: Iterable[str]) -> int:
        """Add domains, skipping safe ones; returns how many were new."""
        added = 0
        for domain in domains:
            d = (domain or "").strip().lower().rstrip(".")
            if not d or self.is_safe(d) or d in self._domains:
                continue
            self._domains.add(d)
            added += 1
        return added

    def load_text(self, text: str) -> int:
        return self.add_domains(parse_blocklist_text(text))

    async def _fetch_text(self, session: aiohttp.ClientSession, url: str) -> str:
        try:
            async with session.get(
                url,
                headers={"Accept": "text/plain", "User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status != 200:
                    logger.warning(f"Blocklist download failed for {url}: HTTP {resp.status}")
                    return ""
                return await resp.text()
        except Exception as e:
            logger.warning(f"Blocklist download failed for {url}: {e}")
            return ""

    async def update_from_urls(self, urls: Iterable[str]) -> int:
        """Download text blocklists and merge them in; returns the new size."""
        urls = [u for u in urls if u]
        if not urls:
            return self.size()
        async with aiohttp.ClientSession() as session:
            for url in urls:
                text = await self._fetch_text(session, url)
                if text:
                    added = self.load_text(text)
                    logger.info(f"Blocklist {url}: {added} new entries")
        self.last_updated = self.clock()
        return self.size()

    def size(self) -> int:
        return len(self._domains)

    def __contains__(self, domain: str) -> bool:
        return (domain or "").lower() in self._domains

    def check_malicious_patterns(self, domain: str) -> Optional[ThreatCheckResult]:
        """Match known-malicious name shapes; safe domains are never flagged."""
        d = (domain or "").strip().lower()
        if not d or self.is_safe(d):
            return None
        for pattern in MALICIOUS_PATTERNS:
            if pattern.search(d):
                return ThreatCheckResult(
                    indicator=d,
                    is_threat=True,
                    severity=ThreatSeverity.MEDIUM,
                    confidence=60,
                    checked_at=self.clock(),
                    categories=frozenset({ThreatCategory.PHISHING}),
                    sources=frozenset({ThreatSource.INTERNAL}),
                    details={"pattern": pattern.pattern},
                )
        return None

    def check_blocklist(self, domain: str) -> Optional[ThreatCheckResult]:
        """Direct or parent-domain blocklist membership."""
        d = (domain or "").strip().lower()
        if not d or not self._domains:
            return None
        # The bare TLD is never a meaningful parent.
        for candidate in parent_domains(d)[:-1] or [d]:
            if candidate in self._domains:
                direct = candidate == d
                return ThreatCheckResult(
                    indicator=d,
                    is_threat=True,
                    severity=ThreatSeverity.HIGH,
                    confidence=80 if direct else 75,
                    checked_at=self.clock(),
                    categories=frozenset({ThreatCategory.MALWARE}),
                    sources=frozenset({ThreatSource.BLOCKLIST}),
                    details={"matched": candidate},
                )
        return None
