"""Result types produced by the domain reputation detectors."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional


class Confidence(str, Enum):
    """Confidence of an age-based verdict."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


class TyposquatConfidence(str, Enum):
    """Confidence of a typosquat verdict; NONE means no match at all."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class DetectionMethod(str, Enum):
    """How a reputation result was produced."""

    NETWORK = "network"  # Fresh registration-data lookup
    CACHE = "cache"  # Served from a non-expired cache entry
    HEURISTIC = "heuristic"  # Offline heuristics only
    ERROR = "error"  # Lookup failed or timed out


class RiskLevel(str, Enum):
    """Risk bucket for pattern-based threat analysis."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


@dataclass(frozen=True)
class DDNSInfo:
    """Dynamic DNS provider match."""

    is_ddns: bool = False
    provider: Optional[str] = None
    matched_domain: Optional[str] = None


@dataclass(frozen=True)
class SuspiciousDomainScores:
    """Offline heuristic sub-scores for a domain."""

    entropy: float = 0.0
    has_suspicious_tld: bool = False
    has_excessive_hyphens: bool = False
    has_excessive_numbers: bool = False
    is_random_looking: bool = False
    is_ddns: bool = False
    ddns_provider: Optional[str] = None
    total_score: int = 0


@dataclass(frozen=True)
class NRDResult:
    """Verdict of the newly-registered-domain detector."""

    domain: str
    is_nrd: bool
    confidence: Confidence
    method: DetectionMethod
    checked_at: float
    domain_age: Optional[int] = None
    registration_date: Optional[str] = None
    domain_status: list[str] = field(default_factory=list)
    suspicious_scores: SuspiciousDomainScores = field(default_factory=SuspiciousDomainScores)
    ddns: DDNSInfo = field(default_factory=DDNSInfo)
    error: Optional[str] = None

    @property
    def verdict(self) -> bool:
        return self.is_nrd

    def to_dict(self) -> dict:
        data = asdict(self)
        data["confidence"] = self.confidence.value
        data["method"] = self.method.value
        return data


@dataclass(frozen=True)
class HomoglyphMatch:
    """A single lookalike character found in a domain."""

    original: str
    looks_like: str
    position: int
    type: str  # latin_digit | cyrillic | greek | japanese


@dataclass(frozen=True)
class TyposquatBreakdown:
    latin_homoglyphs: int = 0
    cyrillic_homoglyphs: int = 0
    japanese_homoglyphs: int = 0
    mixed_script: int = 0
    punycode: int = 0
    brand_similarity: int = 0


@dataclass(frozen=True)
class TyposquatHeuristics:
    """Offline typosquat heuristics for one domain."""

    homoglyphs: list[HomoglyphMatch] = field(default_factory=list)
    has_mixed_script: bool = False
    detected_scripts: list[str] = field(default_factory=list)
    is_punycode: bool = False
    decoded_domain: Optional[str] = None
    target_domain: Optional[str] = None
    similarity: float = 0.0
    total_score: int = 0
    breakdown: TyposquatBreakdown = field(default_factory=TyposquatBreakdown)


@dataclass(frozen=True)
class TyposquatResult:
    """Verdict of the typosquat detector."""

    domain: str
    is_typosquat: bool
    confidence: TyposquatConfidence
    method: DetectionMethod
    checked_at: float
    heuristics: TyposquatHeuristics = field(default_factory=TyposquatHeuristics)
    normalized_domain: str = ""

    @property
    def verdict(self) -> bool:
        return self.is_typosquat

    def to_dict(self) -> dict:
        data = asdict(self)
        data["confidence"] = self.confidence.value
        data["method"] = self.method.value
        return data


@dataclass(frozen=True)
class PatternMatch:
    """One threat-analyzer pattern hit."""

    type: str  # tld | phishing | impersonation | infrastructure
    description: str
    score: int
    matched: str = ""


@dataclass(frozen=True)
class ThreatAnalysis:
    """Pattern-based threat analysis of a domain."""

    domain: str
    threat_score: int
    risk_level: RiskLevel
    checked_at: float
    matches: list[PatternMatch] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["risk_level"] = self.risk_level.value
        return data
