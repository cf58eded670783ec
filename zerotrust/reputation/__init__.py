"""Domain reputation detectors."""

from .models import (
    Confidence,
    DetectionMethod,
    NRDResult,
    RiskLevel,
    SuspiciousDomainScores,
    ThreatAnalysis,
    TyposquatConfidence,
    TyposquatResult,
)
from .nrd import NRDConfig, NRDDetector
from .rdap import RdapClient, RdapError
from .threat_analyzer import ThreatAnalyzer, ThreatAnalyzerConfig
from .typosquat import TyposquatConfig, TyposquatDetector

__all__ = [
    "Confidence",
    "DetectionMethod",
    "NRDConfig",
    "NRDDetector",
    "NRDResult",
    "RdapClient",
    "RdapError",
    "RiskLevel",
    "SuspiciousDomainScores",
    "ThreatAnalysis",
    "ThreatAnalyzer",
    "ThreatAnalyzerConfig",
    "TyposquatConfidence",
    "TyposquatConfig",
    "TyposquatDetector",
    "TyposquatResult",
]
