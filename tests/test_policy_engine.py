"""Tests for policy evaluation, the violation log and context building."""

import pytest

from zerotrust.constants import Severity
from zerotrust.intel.models import ThreatCategory, ThreatCheckResult, ThreatSeverity
from zerotrust.policy.context import build_policy_context
from zerotrust.policy.engine import PolicyEngine, evaluate_condition, evaluate_rule, resolve_field
from zerotrust.policy.models import (
    ConditionLogic,
    ConditionOperator,
    PolicyCategory,
    PolicyCondition,
    PolicyRule,
)
from zerotrust.reputation.models import (
    Confidence,
    DDNSInfo,
    DetectionMethod,
    NRDResult,
    RiskLevel,
    SuspiciousDomainScores,
    ThreatAnalysis,
    TyposquatConfidence,
    TyposquatHeuristics,
    TyposquatResult,
)


def _cond(field, op, value):
    return PolicyCondition(field, ConditionOperator(op), value)


def _rule(rule_id="r-1", *conditions, logic=ConditionLogic.AND, severity=Severity.HIGH, enabled=True,
          category=PolicyCategory.ACCESS_CONTROL):
    return PolicyRule(
        id=rule_id,
        name=f"Rule {rule_id}",
        description="test rule",
        category=category,
        severity=severity,
        conditions=tuple(conditions),
        condition_logic=logic,
        enabled=enabled,
    )


@pytest.mark.parametrize(
    "field,op,value,context,expected",
    [
        ("isNRD", "equals", True, {"isNRD": True}, True),
        ("isNRD", "equals", True, {"isNRD": 1}, False),
        ("count", "equals", 3, {"count": 3.0}, True),
        ("name", "not_equals", "a", {"name": "b"}, True),
        ("name", "not_equals", "a", {}, False),
        ("url", "contains", "login", {"url": "https://x/login"}, True),
        ("types", "contains", "credentials", {"types": ["pii", "credentials"]}, True),
        ("types", "not_contains", "credentials", {"types": ["pii"]}, True),
        ("count", "contains", "1", {"count": 10}, False),
        ("domain", "starts_with", "secure-", {"domain": "secure-login.xyz"}, True),
        ("domain", "ends_with", ".xyz", {"domain": "secure-login.xyz"}, True),
        ("domain", "matches_regex", r"^secure-.*\.xyz$", {"domain": "secure-login.xyz"}, True),
        ("domain", "matches_regex", "[", {"domain": "secure-login.xyz"}, False),
        ("threatScore", "greater_than", 59, {"threatScore": 90}, True),
        ("threatScore", "greater_than", "59", {"threatScore": 90}, True),
        ("threatScore", "greater_than", 59, {"threatScore": "90"}, False),
        ("threatScore", "less_than", 10, {"threatScore": 5}, True),
        ("flag", "greater_than", 0, {"flag": True}, False),
        ("tld", "in_list", ["xyz", "top"], {"tld": "xyz"}, True),
        ("tld", "not_in_list", ["xyz", "top"], {"tld": "com"}, True),
        ("tld", "in_list", "xyz", {"tld": "xyz"}, False),
    ],
)
def test_evaluate_condition(field, op, value, context, expected):
    assert evaluate_condition(_cond(field, op, value), context) is expected


def test_resolve_field_supports_dot_paths():
    context = {"page": {"form": {"action": "/login"}}, "a.b": 1}
    assert resolve_field(context, "page.form.action") == "/login"
    assert resolve_field(context, "a.b") == 1
    assert evaluate_condition(_cond("page.missing", "equals", None), context) is False


def test_resolve_field_ignores_methods_and_private_attributes():
    class Page:
        title = "Sign in"

        def __init__(self):
            self._token = "secret"

        def render(self):
            return "<html>"

    context = {"page": Page()}
    assert resolve_field(context, "page.title") == "Sign in"
    assert evaluate_condition(_cond("page.render", "not_equals", "x"), context) is False
    assert evaluate_condition(_cond("page._token", "equals", "secret"), context) is False
    assert evaluate_condition(_cond("page.__class__", "not_equals", None), context) is False


def test_and_or_logic_and_disabled_rules():
    context = {"isDDNS": True, "hasLogin": False}
    conditions = (_cond("isDDNS", "equals", True), _cond("hasLogin", "equals", True))

    assert evaluate_rule(_rule("and", *conditions), context) is False
    assert evaluate_rule(_rule("or", *conditions, logic=ConditionLogic.OR), context) is True
    assert evaluate_rule(_rule("off", *conditions, logic=ConditionLogic.OR, enabled=False), context) is False
    assert evaluate_rule(_rule("empty"), context) is True
    assert evaluate_rule(_rule("empty-or", logic=ConditionLogic.OR), context) is False
    assert evaluate_rule(_rule("empty-off", enabled=False), context) is False


def test_default_policies_fire_on_nrd_and_typosquat(clock):
    engine = PolicyEngine(clock=clock)
    violations = engine.evaluate({"domain": "g00gle.com", "isNRD": True, "isTyposquat": True})

    assert sorted(v.rule_id for v in violations) == ["dp-001", "dp-002"]
    assert all(v.domain == "g00gle.com" for v in violations)
    assert all(v.timestamp == clock() for v in violations)
    assert {v.severity for v in violations} == {Severity.HIGH, Severity.CRITICAL}


def test_clean_context_produces_no_violations():
    engine = PolicyEngine()
    assert engine.evaluate({"domain": "google.com", "isNRD": False, "isTyposquat": False}) == []
    assert engine.get_violations() == []


def test_get_violations_filters_newest_first(clock):
    engine = PolicyEngine(include_defaults=False, clock=clock)
    engine.add_policy(_rule("high", _cond("x", "equals", 1), severity=Severity.HIGH))
    engine.add_policy(_rule("low", _cond("y", "equals", 1), severity=Severity.LOW,
                            category=PolicyCategory.PRIVACY))

    engine.evaluate({"domain": "one.example", "x": 1})
    clock.advance(1)
    engine.evaluate({"domain": "two.example", "x": 1, "y": 1})

    newest = engine.get_violations()
    assert [v.domain for v in newest] == ["two.example", "two.example", "one.example"]
    assert [v.rule_id for v in engine.get_violations(severities=["high"])] == ["high", "high"]
    assert [v.rule_id for v in engine.get_violations(category=PolicyCategory.PRIVACY)] == ["low"]
    assert len(engine.get_violations(limit=1)) == 1
    assert len(engine.get_violations(limit=0)) == 3


def test_acknowledge_and_stats(clock):
    engine = PolicyEngine(clock=clock)
    first, second = engine.evaluate({"domain": "g00gle.com", "isNRD": True, "isTyposquat": True})

    assert engine.get_violation_stats() == {
        "critical": 1,
        "high": 1,
        "medium": 0,
        "low": 0,
        "info": 0,
        "total": 2,
    }
    assert engine.acknowledge_violation(first.id) is True
    assert engine.acknowledge_violation("viol-missing") is False
    assert engine.get_violation_stats()["total"] == 1
    assert [v.id for v in engine.get_violations(acknowledged=False)] == [second.id]

    assert engine.acknowledge_all() == 1
    assert engine.get_violation_stats()["total"] == 0

    engine.clear_violations()
    assert engine.get_violations() == []


def test_listener_errors_do_not_stop_other_listeners():
    engine = PolicyEngine()
    seen = []

    def broken(violation):
        raise RuntimeError("listener failure")

    engine.subscribe(broken)
    unsubscribe = engine.subscribe(seen.append)

    engine.evaluate({"domain": "new.example", "isNRD": True})
    assert [v.rule_id for v in seen] == ["dp-001"]

    unsubscribe()
    engine.evaluate({"domain": "new.example", "isNRD": True})
    assert len(seen) == 1
    assert len(engine.get_violations()) == 2


def test_policy_management():
    engine = PolicyEngine()
    total = len(engine.get_policies())

    assert engine.set_policy_enabled("dp-001", False) is True
    assert engine.get_policy("dp-001").enabled is False
    assert engine.evaluate({"domain": "new.example", "isNRD": True}) == []

    assert engine.set_policy_enabled("missing", True) is False
    assert engine.remove_policy("dp-001") is True
    assert engine.remove_policy("dp-001") is False
    assert len(engine.get_policies()) == total - 1

    custom = _rule("dp-002", _cond("isTyposquat", "equals", "yes"))
    engine.add_policy(custom)
    assert engine.get_policy("dp-002") is custom
    assert len(engine.get_policies()) == total - 1


def test_independent_engines_do_not_share_state():
    first = PolicyEngine()
    second = PolicyEngine()
    first.evaluate({"domain": "new.example", "isNRD": True})
    first.remove_policy("dp-002")

    assert second.get_violations() == []
    assert second.get_policy("dp-002") is not None


def test_build_policy_context_projects_detector_results():
    nrd = NRDResult(
        domain="home.duckdns.org",
        is_nrd=True,
        confidence=Confidence.HIGH,
        method=DetectionMethod.NETWORK,
        checked_at=0.0,
        domain_age=4,
        suspicious_scores=SuspiciousDomainScores(is_ddns=True, ddns_provider="DuckDNS", total_score=20),
        ddns=DDNSInfo(is_ddns=True, provider="DuckDNS", matched_domain="duckdns.org"),
    )
    typo = TyposquatResult(
        domain="home.duckdns.org",
        is_typosquat=False,
        confidence=TyposquatConfidence.NONE,
        method=DetectionMethod.HEURISTIC,
        checked_at=0.0,
        heuristics=TyposquatHeuristics(total_score=10),
    )
    threat = ThreatCheckResult(
        indicator="home.duckdns.org",
        is_threat=True,
        severity=ThreatSeverity.HIGH,
        confidence=80,
        checked_at=0.0,
        categories=frozenset({ThreatCategory.MALWARE}),
    )
    analysis = ThreatAnalysis(domain="home.duckdns.org", threat_score=25, risk_level=RiskLevel.LOW, checked_at=0.0)

    context = build_policy_context(
        "home.duckdns.org",
        nrd=nrd,
        typosquat=typo,
        threat=threat,
        analysis=analysis,
        signals={"hasLogin": True, "domain": "ignored.example"},
    )

    assert context == {
        "domain": "home.duckdns.org",
        "hasLogin": True,
        "isNRD": True,
        "nrdConfidence": "high",
        "domainAge": 4,
        "isDDNS": True,
        "ddnsProvider": "DuckDNS",
        "suspiciousScore": 20,
        "isTyposquat": False,
        "typosquatConfidence": "none",
        "typosquatScore": 10,
        "isThreat": True,
        "threatSeverity": "high",
        "threatConfidence": 80,
        "threatCategories": ["malware"],
        "threatScore": 25,
        "riskLevel": "low",
    }


def test_build_policy_context_without_results():
    assert build_policy_context("example.com") == {"domain": "example.com"}
