"""Assessment pipeline: detectors -> policy context -> policy engine -> alerts."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from .alerts.manager import AlertManager
from .alerts.models import SecurityAlert
from .alerts.policy_manager import PolicyCheckResult, PolicyManager
from .config import Config
from .intel.aggregator import ThreatIntelAggregator
from .intel.blocklist import Blocklist
from .intel.models import ThreatCheckResult
from .policy.context import build_policy_context
from .policy.engine import PolicyEngine
from .policy.models import PolicyViolation
from .reputation.models import NRDResult, ThreatAnalysis, TyposquatResult
from .reputation.nrd import NRDDetector
from .reputation.threat_analyzer import ThreatAnalyzer
from .reputation.typosquat import TyposquatDetector
from .utils.domains import canonicalize_domain

logger = logging.getLogger(__name__)


@dataclass
class DomainAssessment:
    """Everything the pipeline learned about one domain."""

    domain: str
    nrd: NRDResult
    typosquat: TyposquatResult
    threat: ThreatCheckResult
    analysis: ThreatAnalysis
    high_risk_name: bool = False
    violations: list[PolicyViolation] = field(default_factory=list)
    alerts: list[SecurityAlert] = field(default_factory=list)
    access: PolicyCheckResult = field(default_factory=lambda: PolicyCheckResult(allowed=True))

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "nrd": self.nrd.to_dict(),
            "typosquat": self.typosquat.to_dict(),
            "threat": self.threat.to_dict(),
            "analysis": self.analysis.to_dict(),
            "high_risk_name": self.high_risk_name,
            "violations": [v.to_dict() for v in self.violations],
            "alerts": [a.to_dict() for a in self.alerts],
            "access": self.access.to_dict(),
        }


class SecurityPipeline:
    """Runs every detector for a domain and turns the evidence into violations and alerts."""

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        nrd: Optional[NRDDetector] = None,
        typosquat: Optional[TyposquatDetector] = None,
        analyzer: Optional[ThreatAnalyzer] = None,
        aggregator: Optional[ThreatIntelAggregator] = None,
        policy_engine: Optional[PolicyEngine] = None,
        alert_manager: Optional[AlertManager] = None,
    ):
        self.config = config or Config()
        self.nrd = nrd or NRDDetector(self.config.nrd_config())
        self.typosquat = typosquat or TyposquatDetector(self.config.typosquat_config())
        self.analyzer = analyzer or ThreatAnalyzer(self.config.analyzer_config())
        if aggregator is None:
            intel_config = self.config.threat_intel_config()
            blocklist = Blocklist(safe_domains=intel_config.safe_domains)
            blocklist.add_domains(self.config.blocklist)
            aggregator = ThreatIntelAggregator(intel_config, blocklist=blocklist)
        self.aggregator = aggregator
        self.policy_engine = policy_engine or PolicyEngine(policies=self.config.policies)
        self.alert_manager = alert_manager or AlertManager(
            self.config.alert_config(), policy_manager=PolicyManager(self.config.access_policies)
        )
        self._semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_checks))

    async def initialize(self) -> None:
        """Download remote blocklists."""
        await self.aggregator.initialize()

    async def assess_domain(
        self,
        domain: str,
        signals: Optional[Mapping[str, Any]] = None,
    ) -> DomainAssessment:
        """Assess one domain. Detector failures surface in the results, not as exceptions."""
        normalized = canonicalize_domain(domain)
        nrd, typosquat, threat = await asyncio.gather(
            self.nrd.check_domain(normalized),
            self.typosquat.check_domain(normalized),
            self.aggregator.check_domain(normalized),
        )
        analysis = self.analyzer.analyze(normalized)
        high_risk_name = self.nrd.is_high_risk(nrd.suspicious_scores)

        context = build_policy_context(
            normalized,
            nrd=nrd,
            typosquat=typosquat,
            threat=threat,
            analysis=analysis,
            signals=signals,
        )
        context["isSuspiciousName"] = high_risk_name
        violations = self.policy_engine.evaluate(context)

        alerts: list[SecurityAlert] = []
        if nrd.is_nrd:
            alert = await self.alert_manager.alert_nrd(
                domain=normalized,
                domain_age=nrd.domain_age,
                registration_date=nrd.registration_date,
                confidence=nrd.confidence.value,
            )
            if alert:
                alerts.append(alert)
        if typosquat.is_typosquat:
            alert = await self.alert_manager.alert_typosquat(
                domain=normalized,
                homoglyph_count=len(typosquat.heuristics.homoglyphs),
                confidence=typosquat.confidence.value,
                target_domain=typosquat.heuristics.target_domain,
            )
            if alert:
                alerts.append(alert)
        for violation in violations:
            alert = await self.alert_manager.alert_rule_violation(violation)
            if alert:
                alerts.append(alert)

        domain_access, domain_alerts = await self.alert_manager.enforce_domain(normalized)
        tool_access, tool_alerts = await self.alert_manager.enforce_tool(normalized)
        access = PolicyCheckResult(
            allowed=domain_access.allowed and tool_access.allowed,
            decisions=domain_access.decisions + tool_access.decisions,
        )
        alerts.extend(domain_alerts + tool_alerts)

        logger.info(
            f"Assessed {normalized}: nrd={nrd.is_nrd} typosquat={typosquat.is_typosquat} "
            f"threat={threat.is_threat} score={analysis.threat_score} "
            f"violations={len(violations)} alerts={len(alerts)} allowed={access.allowed}"
        )
        return DomainAssessment(
            domain=normalized,
            nrd=nrd,
            typosquat=typosquat,
            threat=threat,
            analysis=analysis,
            high_risk_name=high_risk_name,
            violations=violations,
            alerts=alerts,
            access=access,
        )

    async def _assess_bounded(self, domain: str, signals: Optional[Mapping[str, Any]]) -> DomainAssessment:
        async with self._semaphore:
            return await self.assess_domain(domain, signals)

    async def assess_domains(
        self,
        domains: Iterable[str],
        signals: Optional[Mapping[str, Any]] = None,
    ) -> list[DomainAssessment]:
        """Assess many domains with at most max_concurrent_checks in flight."""
        return list(await asyncio.gather(*(self._assess_bounded(d, signals) for d in domains)))
