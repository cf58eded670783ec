"""Built-in security policies."""

from __future__ import annotations

from ..constants import Severity
from .models import ConditionLogic, ConditionOperator, PolicyCategory, PolicyCondition, PolicyRule


def _eq(field: str, value) -> PolicyCondition:
    return PolicyCondition(field, ConditionOperator.EQUALS, value)


DEFAULT_POLICIES: tuple[PolicyRule, ...] = (
    # Data protection
    PolicyRule(
        id="dp-001",
        name="Access to newly registered domain",
        description="Detects access to a domain registered within the last 30 days",
        category=PolicyCategory.DATA_PROTECTION,
        severity=Severity.HIGH,
        conditions=(_eq("isNRD", True),),
        remediation="Confirm this domain belongs to a legitimate service. It may be a phishing site.",
        tags=frozenset({"nrd", "phishing"}),
    ),
    PolicyRule(
        id="dp-002",
        name="Typosquat domain detected",
        description="Detects a domain that may be impersonating a legitimate site",
        category=PolicyCategory.DATA_PROTECTION,
        severity=Severity.CRITICAL,
        conditions=(_eq("isTyposquat", True),),
        remediation="Re-check the URL and make sure you are on the genuine site.",
        tags=frozenset({"typosquat", "phishing"}),
    ),
    # AI governance
    PolicyRule(
        id="ai-001",
        name="Unapproved AI service in use",
        description="Detects access to an AI service that has not been approved",
        category=PolicyCategory.AI_GOVERNANCE,
        severity=Severity.HIGH,
        conditions=(_eq("isAIProvider", True), _eq("shadowITApproved", False)),
        remediation="Request approval from IT or switch to an approved AI service.",
        tags=frozenset({"ai", "shadow-it"}),
    ),
    PolicyRule(
        id="ai-002",
        name="Sensitive data sent to AI service",
        description="Detects credentials or PII being submitted to an AI service",
        category=PolicyCategory.AI_GOVERNANCE,
        severity=Severity.CRITICAL,
        conditions=(_eq("isAIProvider", True), _eq("hasSensitiveData", True)),
        remediation="Do not send confidential information to AI services. Consider masking the data.",
        tags=frozenset({"ai", "data-leak", "pii"}),
    ),
    # Privacy
    PolicyRule(
        id="priv-001",
        name="Login on site without privacy policy",
        description="Detects a login form on a site with no discoverable privacy policy",
        category=PolicyCategory.PRIVACY,
        severity=Severity.MEDIUM,
        conditions=(_eq("hasLogin", True), _eq("hasPrivacyPolicy", False)),
        remediation="Review the site's privacy policy before entering personal information.",
        tags=frozenset({"privacy", "login"}),
    ),
    # Shadow IT
    PolicyRule(
        id="sit-001",
        name="Unapproved cloud storage",
        description="Detects use of a cloud storage service that has not been approved",
        category=PolicyCategory.SHADOW_IT,
        severity=Severity.HIGH,
        conditions=(_eq("shadowITCategory", "storage"), _eq("shadowITApproved", False)),
        remediation="Use an approved cloud storage service.",
        tags=frozenset({"shadow-it", "storage"}),
    ),
    PolicyRule(
        id="sit-002",
        name="Unapproved collaboration tool",
        description="Detects use of a collaboration tool that has not been approved",
        category=PolicyCategory.SHADOW_IT,
        severity=Severity.MEDIUM,
        conditions=(_eq("shadowITCategory", "collaboration"), _eq("shadowITApproved", False)),
        remediation="Use an approved collaboration tool.",
        tags=frozenset({"shadow-it", "collaboration"}),
    ),
    # Network security
    PolicyRule(
        id="net-001",
        name="Excessive CSP violations",
        description="Detects a site with a large number of Content Security Policy violations",
        category=PolicyCategory.NETWORK_SECURITY,
        severity=Severity.MEDIUM,
        conditions=(PolicyCondition("cspViolationCount", ConditionOperator.GREATER_THAN, 10),),
        condition_logic=ConditionLogic.AND,
        remediation="Review the trustworthiness of third-party scripts on this site.",
        tags=frozenset({"csp", "third-party"}),
    ),
)
