"""Threat intelligence sources and aggregation."""

from .aggregator import ThreatIntelAggregator, ThreatIntelConfig, merge_results
from .blocklist import Blocklist
from .models import ThreatCategory, ThreatCheckResult, ThreatSeverity, ThreatSource, ThreatSummary
from .urlhaus import ThreatFeed, URLhausFeed

__all__ = [
    "Blocklist",
    "ThreatCategory",
    "ThreatCheckResult",
    "ThreatFeed",
    "ThreatIntelAggregator",
    "ThreatIntelConfig",
    "ThreatSeverity",
    "ThreatSource",
    "ThreatSummary",
    "URLhausFeed",
    "merge_results",
]
