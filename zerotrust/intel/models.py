"""Threat intelligence result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional


class ThreatSeverity(IntEnum):
    """Threat severity with ranking for comparison (higher is worse)."""

    UNKNOWN = 0
    INFO = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    CRITICAL = 5

    @classmethod
    def from_string(cls, value: str | None) -> "ThreatSeverity":
        if not value:
            return cls.UNKNOWN
        try:
            return cls[value.strip().upper()]
        except KeyError:
            return cls.UNKNOWN

    def __str__(self) -> str:
        return self.name.lower()


class ThreatCategory(str, Enum):
    MALWARE = "malware"
    PHISHING = "phishing"
    SCAM = "scam"
    CRYPTOMINER = "cryptominer"
    SPAM = "spam"
    C2 = "c2"
    BOTNET = "botnet"
    UNKNOWN = "unknown"


class ThreatSource(str, Enum):
    INTERNAL = "internal"  # Built-in pattern matcher
    BLOCKLIST = "blocklist"  # Downloaded/local blocklists
    URLHAUS = "urlhaus"  # abuse.ch URLhaus
    CUSTOM = "custom"


class IndicatorType(str, Enum):
    DOMAIN = "domain"
    URL = "url"
    IP = "ip"
    HASH = "hash"
    EMAIL = "email"


@dataclass(frozen=True)
class ThreatCheckResult:
    """Verdict for one indicator from one source, or merged across sources."""

    indicator: str
    is_threat: bool
    severity: ThreatSeverity
    confidence: int
    checked_at: float
    indicator_type: IndicatorType = IndicatorType.DOMAIN
    categories: frozenset[ThreatCategory] = field(default_factory=frozenset)
    sources: frozenset[ThreatSource] = field(default_factory=frozenset)
    cached: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "indicator": self.indicator,
            "indicator_type": self.indicator_type.value,
            "is_threat": self.is_threat,
            "severity": str(self.severity),
            "categories": sorted(c.value for c in self.categories),
            "sources": sorted(s.value for s in self.sources),
            "confidence": self.confidence,
            "checked_at": self.checked_at,
            "cached": self.cached,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class ThreatCacheEntry:
    result: ThreatCheckResult
    expires_at: float


@dataclass
class ThreatSummary:
    """Counts over a batch of threat checks."""

    total: int = 0
    threats: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    categories: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "threats": self.threats,
            "critical": self.critical,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
            "categories": dict(self.categories),
        }


def neutral_result(indicator: str, checked_at: float, source: Optional[ThreatSource] = None) -> ThreatCheckResult:
    """A 'no threat known' result."""
    return ThreatCheckResult(
        indicator=indicator,
        is_threat=False,
        severity=ThreatSeverity.INFO,
        confidence=0,
        checked_at=checked_at,
        sources=frozenset({source}) if source else frozenset(),
    )
