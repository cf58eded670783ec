"""Pattern-based threat analysis of domain names.

Purely lexical: scores a hostname against phishing wording, brand
impersonation markers, machine-generated infrastructure shapes and
high-risk TLDs. No network access.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from ..utils.domains import canonicalize_domain, extract_tld
from .models import PatternMatch, RiskLevel, ThreatAnalysis

logger = logging.getLogger(__name__)

HIGH_RISK_TLDS: frozenset[str] = frozenset(
    {
        "tk",
        "ml",
        "ga",
        "cf",
        "gq",
        "xyz",
        "top",
        "work",
        "click",
        "link",
        "info",
        "online",
        "site",
        "club",
        "icu",
        "buzz",
        "rest",
        "surf",
        "monster",
        "uno",
    }
)
HIGH_RISK_TLD_SCORE = 20


@dataclass(frozen=True)
class ThreatPattern:
    pattern: re.Pattern
    score: int
    description: str


def _p(regex: str, score: int, description: str) -> ThreatPattern:
    return ThreatPattern(re.compile(regex, re.IGNORECASE), score, description)


PHISHING_PATTERNS: list[ThreatPattern] = [
    _p(r"(?:secure|verify|confirm|update|validate)[_-]?(?:account|login|signin)", 40, "Login verification pattern"),
    _p(r"(?:account|login|signin)[_-]?(?:secure|verify|confirm|update)", 40, "Account security pattern"),
    _p(r"(?:urgent|immediate|suspended|locked|limited)", 25, "Urgency indicator"),
    _p(r"(?:support|helpdesk|customer)[_-]?(?:center|service|team)", 20, "Fake support pattern"),
    _p(r"\d{4,}$", 15, "Numeric suffix pattern"),
    _p(r"-{2,}", 20, "Multiple hyphens"),
    _p(r"^[^.]{30,}\.", 25, "Very long subdomain"),
]

# Generic markers only; brand lists live in the typosquat detector.
IMPERSONATION_INDICATORS: list[ThreatPattern] = [
    _p(r"(?:^|[.-])(?:official|real|genuine|authentic|original)[.-]", 35, "Authenticity claim in domain"),
    _p(r"(?:^|[.-])(?:my|your|our|the)[.-]?(?:account|portal|login)", 25, "Possessive account pattern"),
    _p(r"(?:^|[.-])(?:ssl|https|secure|safe|protected)[.-]", 30, "Security claim in domain"),
    _p(r"(?:^|[.-])(?:jp|us|uk|eu|asia)[.-]?(?:login|portal|account)", 20, "Region-specific portal pattern"),
]

INFRASTRUCTURE_PATTERNS: list[ThreatPattern] = [
    _p(r"^[a-z0-9]{16,}\.", 30, "Random alphanumeric subdomain"),
    _p(r"\d{1,3}[.-]\d{1,3}[.-]\d{1,3}", 25, "IP-like pattern in domain"),
    _p(r"[a-z0-9+/]{20,}={0,2}", 20, "Base64-like pattern"),
    _p(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}", 35, "UUID in domain"),
]


@dataclass
class ThreatAnalyzerConfig:
    enabled: bool = True
    min_score_to_report: int = 30
    check_phishing_patterns: bool = True
    check_impersonation: bool = True
    check_infrastructure: bool = True
    check_tld: bool = True


def risk_level_for(score: int) -> RiskLevel:
    if score >= 80:
        return RiskLevel.CRITICAL
    if score >= 60:
        return RiskLevel.HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    if score >= 20:
        return RiskLevel.LOW
    return RiskLevel.NONE


class ThreatAnalyzer:
    """Scores domains against lexical threat patterns."""

    def __init__(
        self,
        config: Optional[ThreatAnalyzerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or ThreatAnalyzerConfig()
        self.clock = clock

    def _pattern_groups(self) -> list[tuple[str, list[ThreatPattern]]]:
        groups = []
        if self.config.check_phishing_patterns:
            groups.append(("phishing", PHISHING_PATTERNS))
        if self.config.check_impersonation:
            groups.append(("impersonation", IMPERSONATION_INDICATORS))
        if self.config.check_infrastructure:
            groups.append(("infrastructure", INFRASTRUCTURE_PATTERNS))
        return groups

    def analyze(self, domain: str) -> ThreatAnalysis:
        host = canonicalize_domain(domain)
        matches: list[PatternMatch] = []

        if self.config.enabled and host:
            tld = extract_tld(host)
            if self.config.check_tld and tld in HIGH_RISK_TLDS:
                matches.append(PatternMatch("tld", f"High-risk TLD .{tld}", HIGH_RISK_TLD_SCORE, tld))

            for kind, patterns in self._pattern_groups():
                for pattern in patterns:
                    hit = pattern.pattern.search(host)
                    if hit:
                        matches.append(PatternMatch(kind, pattern.description, pattern.score, hit.group(0)))

        score = min(sum(m.score for m in matches), 100)
        if score >= self.config.min_score_to_report:
            logger.debug(f"Threat patterns for {host}: score={score} matches={len(matches)}")
        return ThreatAnalysis(
            domain=host,
            threat_score=score,
            risk_level=risk_level_for(score),
            checked_at=self.clock(),
            matches=matches,
        )

    def has_threats(self, domain: str) -> bool:
        return self.analyze(domain).threat_score >= self.config.min_score_to_report

    def analyze_multiple(self, domains: Iterable[str]) -> list[ThreatAnalysis]:
        return [self.analyze(d) for d in domains]
