"""Alert types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional

from ..constants import DEFAULT_ALERT_SEVERITY_FILTER, Severity


class AlertCategory(str, Enum):
    NRD = "nrd"
    TYPOSQUAT = "typosquat"
    DATA_LEAK = "data_leak"
    DATA_EXFILTRATION = "data_exfiltration"
    CREDENTIAL_THEFT = "credential_theft"
    SUPPLY_CHAIN = "supply_chain"
    COMPLIANCE = "compliance"
    POLICY_VIOLATION = "policy_violation"
    TRACKING_BEACON = "tracking_beacon"
    CLIPBOARD_HIJACK = "clipboard_hijack"
    COOKIE_ACCESS = "cookie_access"
    XSS_INJECTION = "xss_injection"
    DOM_SCRAPING = "dom_scraping"
    SUSPICIOUS_DOWNLOAD = "suspicious_download"
    CSP_VIOLATION = "csp_violation"
    AI_SENSITIVE = "ai_sensitive"
    SHADOW_AI = "shadow_ai"
    EXTENSION = "extension"
    LOGIN = "login"
    POLICY = "policy"


class AlertStatus(str, Enum):
    """Alert lifecycle. Any status may follow any other."""

    NEW = "new"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


CLOSED_STATUSES = frozenset({AlertStatus.RESOLVED, AlertStatus.DISMISSED})


class ActionType(str, Enum):
    BLOCK = "block"
    INVESTIGATE = "investigate"
    DISMISS = "dismiss"
    REPORT = "report"
    CUSTOM = "custom"


@dataclass(frozen=True)
class AlertAction:
    id: str
    label: str
    type: ActionType
    url: Optional[str] = None


class ConditionType(str, Enum):
    ALWAYS = "always"
    THRESHOLD = "threshold"
    PATTERN = "pattern"


@dataclass(frozen=True)
class AlertCondition:
    type: ConditionType = ConditionType.ALWAYS
    threshold: Optional[float] = None
    pattern: Optional[str] = None
    field: Optional[str] = None


@dataclass(frozen=True)
class AlertRule:
    """Default actions (and nominal severity) for an alert category."""

    id: str
    name: str
    category: AlertCategory
    severity: Severity
    actions: tuple[AlertAction, ...]
    enabled: bool = True
    condition: AlertCondition = field(default_factory=AlertCondition)


@dataclass
class AlertConfig:
    enabled: bool = True
    show_notifications: bool = True
    rules: list[AlertRule] = field(default_factory=list)
    severity_filter: frozenset[Severity] = DEFAULT_ALERT_SEVERITY_FILTER
    # Repeat alerts for the same (category, domain) are dropped inside this window; 0 disables.
    cooldown_seconds: float = 0


# Per-category details


@dataclass(frozen=True)
class AlertDetails:
    type: ClassVar[str] = "generic"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, **asdict(self)}


@dataclass(frozen=True)
class NRDAlertDetails(AlertDetails):
    type: ClassVar[str] = "nrd"
    domain_age: Optional[int]
    registration_date: Optional[str]
    confidence: str


@dataclass(frozen=True)
class TyposquatAlertDetails(AlertDetails):
    type: ClassVar[str] = "typosquat"
    homoglyph_count: int
    confidence: str
    target_domain: Optional[str] = None


@dataclass(frozen=True)
class AISensitiveAlertDetails(AlertDetails):
    type: ClassVar[str] = "ai_sensitive"
    provider: str
    data_types: tuple[str, ...]
    model: Optional[str] = None


@dataclass(frozen=True)
class ShadowAIAlertDetails(AlertDetails):
    type: ClassVar[str] = "shadow_ai"
    provider: str
    provider_display_name: str
    category: str  # major | enterprise | open_source | regional | specialized
    risk_level: str
    confidence: str
    model: Optional[str] = None


@dataclass(frozen=True)
class ExtensionAlertDetails(AlertDetails):
    type: ClassVar[str] = "extension"
    extension_id: str
    extension_name: str
    risk_score: int
    flags: tuple[str, ...]
    request_count: int
    target_domains: tuple[str, ...]


@dataclass(frozen=True)
class DataExfiltrationAlertDetails(AlertDetails):
    type: ClassVar[str] = "data_exfiltration"
    source_domain: str
    target_domain: str
    body_size: int
    size_kb: int
    method: str
    initiator: str


@dataclass(frozen=True)
class CredentialTheftAlertDetails(AlertDetails):
    type: ClassVar[str] = "credential_theft"
    source_domain: str
    target_domain: str
    form_action: str
    is_secure: bool
    is_cross_origin: bool
    field_type: str
    risks: tuple[str, ...]


@dataclass(frozen=True)
class SupplyChainAlertDetails(AlertDetails):
    type: ClassVar[str] = "supply_chain"
    page_domain: str
    resource_url: str
    resource_domain: str
    resource_type: str
    has_integrity: bool
    has_crossorigin: bool
    is_cdn: bool
    risks: tuple[str, ...]


@dataclass(frozen=True)
class ComplianceAlertDetails(AlertDetails):
    type: ClassVar[str] = "compliance"
    page_domain: str
    has_privacy_policy: bool
    has_terms_of_service: bool
    has_cookie_policy: bool
    has_cookie_banner: bool
    is_cookie_banner_gdpr_compliant: bool
    has_login_form: bool
    violations: tuple[str, ...]


@dataclass(frozen=True)
class PolicyViolationAlertDetails(AlertDetails):
    type: ClassVar[str] = "policy_violation"
    rule_id: str
    rule_name: str
    rule_type: str  # domain | tool | ai | data_transfer
    action: str  # allow | block | warn
    matched_pattern: str
    target: str


@dataclass(frozen=True)
class RuleViolationAlertDetails(AlertDetails):
    type: ClassVar[str] = "policy_rule"
    violation_id: str
    rule_id: str
    rule_name: str
    policy_category: str
    remediation: str


@dataclass(frozen=True)
class TrackingBeaconAlertDetails(AlertDetails):
    type: ClassVar[str] = "tracking_beacon"
    source_domain: str
    target_domain: str
    url: str
    body_size: int
    initiator: str


@dataclass(frozen=True)
class ClipboardHijackAlertDetails(AlertDetails):
    type: ClassVar[str] = "clipboard_hijack"
    domain: str
    crypto_type: str
    text_preview: str


@dataclass(frozen=True)
class CookieAccessAlertDetails(AlertDetails):
    type: ClassVar[str] = "cookie_access"
    domain: str
    read_count: int


@dataclass(frozen=True)
class XSSInjectionAlertDetails(AlertDetails):
    type: ClassVar[str] = "xss_injection"
    domain: str
    injection_type: str
    payload_preview: str


@dataclass(frozen=True)
class DOMScrapingAlertDetails(AlertDetails):
    type: ClassVar[str] = "dom_scraping"
    domain: str
    selector: str
    call_count: int


@dataclass(frozen=True)
class SuspiciousDownloadAlertDetails(AlertDetails):
    type: ClassVar[str] = "suspicious_download"
    domain: str
    download_type: str
    filename: str
    extension: str
    size: int
    mime_type: str


@dataclass(frozen=True)
class CreateAlertInput:
    """Builder output; the manager assigns identity, status and actions."""

    category: AlertCategory
    severity: Severity
    title: str
    description: str
    domain: str
    details: AlertDetails
    actions: Optional[tuple[AlertAction, ...]] = None


@dataclass(frozen=True)
class SecurityAlert:
    id: str
    category: AlertCategory
    severity: Severity
    status: AlertStatus
    title: str
    description: str
    domain: str
    timestamp: float
    details: AlertDetails
    actions: tuple[AlertAction, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category.value,
            "severity": str(self.severity),
            "status": self.status.value,
            "title": self.title,
            "description": self.description,
            "domain": self.domain,
            "timestamp": self.timestamp,
            "details": self.details.to_dict(),
            "actions": [
                {"id": a.id, "label": a.label, "type": a.type.value, **({"url": a.url} if a.url else {})}
                for a in self.actions
            ],
            "metadata": dict(self.metadata),
        }


# Defaults

INVESTIGATE_ACTION = AlertAction(id="investigate", label="Investigate", type=ActionType.INVESTIGATE)
DISMISS_ACTION = AlertAction(id="dismiss", label="Dismiss", type=ActionType.DISMISS)
BLOCK_ACTION = AlertAction(id="block", label="Block domain", type=ActionType.BLOCK)
REPORT_ACTION = AlertAction(id="report", label="Report", type=ActionType.REPORT)

DEFAULT_ACTIONS: tuple[AlertAction, ...] = (INVESTIGATE_ACTION, DISMISS_ACTION)

DEFAULT_ALERT_RULES: tuple[AlertRule, ...] = (
    AlertRule(
        id="nrd-high",
        name="Newly registered domain",
        category=AlertCategory.NRD,
        severity=Severity.HIGH,
        actions=(INVESTIGATE_ACTION, DISMISS_ACTION),
    ),
    AlertRule(
        id="typosquat-high",
        name="Typosquat domain",
        category=AlertCategory.TYPOSQUAT,
        severity=Severity.CRITICAL,
        actions=(BLOCK_ACTION, REPORT_ACTION),
    ),
    AlertRule(
        id="data-leak-credentials",
        name="Credentials sent to AI service",
        category=AlertCategory.AI_SENSITIVE,
        severity=Severity.CRITICAL,
        actions=(INVESTIGATE_ACTION,),
        condition=AlertCondition(type=ConditionType.PATTERN, pattern="credentials", field="data_types"),
    ),
    AlertRule(
        id="login-suspicious",
        name="Login on suspicious site",
        category=AlertCategory.LOGIN,
        severity=Severity.HIGH,
        actions=(INVESTIGATE_ACTION, DISMISS_ACTION),
    ),
)
