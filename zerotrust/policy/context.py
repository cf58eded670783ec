"""Projection of detector results into a policy evaluation context.

The context is a flat map. Detector-derived fields are filled here; page
and network signals (hasLogin, cookieCount, ...) come from external
producers and are passed through unchanged.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from ..intel.models import ThreatCheckResult
from ..reputation.models import NRDResult, ThreatAnalysis, TyposquatResult

# Signals produced outside the core, read by name by policy rules.
EXTERNAL_SIGNAL_FIELDS: frozenset[str] = frozenset(
    {
        "hasLogin",
        "hasPrivacyPolicy",
        "hasTermsOfService",
        "cookieCount",
        "isAIProvider",
        "hasSensitiveData",
        "sensitiveDataTypes",
        "shadowITCategory",
        "shadowITApproved",
        "cspViolationCount",
        "url",
    }
)


def build_policy_context(
    domain: str,
    *,
    nrd: Optional[NRDResult] = None,
    typosquat: Optional[TyposquatResult] = None,
    threat: Optional[ThreatCheckResult] = None,
    analysis: Optional[ThreatAnalysis] = None,
    signals: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """Build the evidence map for one domain."""
    context: dict[str, Any] = dict(signals or {})
    context["domain"] = domain

    if nrd is not None:
        context["isNRD"] = nrd.is_nrd
        context["nrdConfidence"] = nrd.confidence.value
        if nrd.domain_age is not None:
            context["domainAge"] = nrd.domain_age
        context["isDDNS"] = nrd.ddns.is_ddns
        if nrd.ddns.provider:
            context["ddnsProvider"] = nrd.ddns.provider
        context["suspiciousScore"] = nrd.suspicious_scores.total_score

    if typosquat is not None:
        context["isTyposquat"] = typosquat.is_typosquat
        context["typosquatConfidence"] = typosquat.confidence.value
        context["typosquatScore"] = typosquat.heuristics.total_score
        if typosquat.heuristics.target_domain:
            context["typosquatTarget"] = typosquat.heuristics.target_domain

    if threat is not None:
        context["isThreat"] = threat.is_threat
        context["threatSeverity"] = str(threat.severity)
        context["threatConfidence"] = threat.confidence
        context["threatCategories"] = sorted(c.value for c in threat.categories)

    if analysis is not None:
        context["threatScore"] = analysis.threat_score
        context["riskLevel"] = analysis.risk_level.value

    return context
