"""
Alert builders.

Each builder maps detector or monitor output to a CreateAlertInput. They
are pure functions: no manager state, no I/O. A builder returns None when
the input does not warrant an alert (typosquat confidence "none", a policy
action of "allow", a page with no compliance gaps).
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ..constants import Severity
from ..policy.models import PolicyViolation
from .models import (
    AISensitiveAlertDetails,
    AlertCategory,
    ClipboardHijackAlertDetails,
    ComplianceAlertDetails,
    CookieAccessAlertDetails,
    CreateAlertInput,
    CredentialTheftAlertDetails,
    DataExfiltrationAlertDetails,
    DOMScrapingAlertDetails,
    ExtensionAlertDetails,
    NRDAlertDetails,
    PolicyViolationAlertDetails,
    RuleViolationAlertDetails,
    ShadowAIAlertDetails,
    SupplyChainAlertDetails,
    SuspiciousDownloadAlertDetails,
    TrackingBeaconAlertDetails,
    TyposquatAlertDetails,
    XSSInjectionAlertDetails,
)

DANGEROUS_DOWNLOAD_EXTENSIONS = frozenset({".exe", ".msi", ".bat", ".ps1"})

EXFILTRATION_CRITICAL_KB = 500


# Severity helpers


def resolve_severity(rules: Iterable[tuple[bool, Severity]], default: Severity) -> Severity:
    """Return the severity of the first rule whose condition holds."""
    for condition, severity in rules:
        if condition:
            return severity
    return default


def severity_from_confidence(
    confidence: str,
    high_severity: Severity = Severity.HIGH,
    default: Severity = Severity.MEDIUM,
) -> Severity:
    return high_severity if confidence == "high" else default


def build_risk_description(pairs: Iterable[tuple[bool, str]], sep: str = ", ") -> str:
    """Join the labels whose flag is set."""
    return sep.join(label for flag, label in pairs if flag)


# Domain reputation


def build_nrd_alert(
    *,
    domain: str,
    domain_age: Optional[int],
    registration_date: Optional[str],
    confidence: str,
) -> CreateAlertInput:
    severity = severity_from_confidence(confidence)
    age_text = f"{domain_age} days old" if domain_age is not None else "age unknown"
    return CreateAlertInput(
        category=AlertCategory.NRD,
        severity=severity,
        title=f"Newly registered domain: {domain}",
        description=f"Domain is {age_text}",
        domain=domain,
        details=NRDAlertDetails(
            domain_age=domain_age,
            registration_date=registration_date,
            confidence=confidence,
        ),
    )


def build_typosquat_alert(
    *,
    domain: str,
    homoglyph_count: int,
    confidence: str,
    target_domain: Optional[str] = None,
) -> Optional[CreateAlertInput]:
    if confidence == "none":
        return None
    severity = severity_from_confidence(confidence, Severity.CRITICAL, Severity.HIGH)
    description = f"{homoglyph_count} lookalike character(s) detected"
    if target_domain:
        description += f"; imitates {target_domain}"
    return CreateAlertInput(
        category=AlertCategory.TYPOSQUAT,
        severity=severity,
        title=f"Possible typosquat: {domain}",
        description=description,
        domain=domain,
        details=TyposquatAlertDetails(
            homoglyph_count=homoglyph_count,
            confidence=confidence,
            target_domain=target_domain,
        ),
    )


# AI and extensions


def build_ai_sensitive_data_alert(
    *,
    domain: str,
    provider: str,
    data_types: Sequence[str],
    model: Optional[str] = None,
) -> CreateAlertInput:
    severity = Severity.CRITICAL if "credentials" in data_types else Severity.HIGH
    return CreateAlertInput(
        category=AlertCategory.AI_SENSITIVE,
        severity=severity,
        title=f"Sensitive data sent to AI service: {provider}",
        description=f"Detected data types: {', '.join(data_types)}",
        domain=domain,
        details=AISensitiveAlertDetails(provider=provider, data_types=tuple(data_types), model=model),
    )


def build_shadow_ai_alert(
    *,
    domain: str,
    provider: str,
    provider_display_name: str,
    category: str,
    risk_level: str,
    confidence: str,
    model: Optional[str] = None,
) -> CreateAlertInput:
    is_unknown = provider == "unknown"
    severity = resolve_severity(
        [(is_unknown, Severity.HIGH), (risk_level == "high", Severity.HIGH)],
        Severity.MEDIUM,
    )
    if is_unknown:
        title = f"Unknown AI service detected: {domain}"
        description = "Traffic to an unrecognized AI service"
    else:
        title = f"Shadow AI detected: {provider_display_name}"
        description = f"{provider_display_name} ({category}) is not an approved AI service"
    return CreateAlertInput(
        category=AlertCategory.SHADOW_AI,
        severity=severity,
        title=title,
        description=description,
        domain=domain,
        details=ShadowAIAlertDetails(
            provider=provider,
            provider_display_name=provider_display_name,
            category=category,
            risk_level=risk_level,
            confidence=confidence,
            model=model,
        ),
    )


def build_extension_risk_alert(
    *,
    extension_id: str,
    extension_name: str,
    risk_level: str,
    risk_score: int,
    flags: Sequence[str] = (),
    request_count: int = 0,
    target_domains: Sequence[str] = (),
) -> CreateAlertInput:
    description = ", ".join(flags[:2]) if flags else f"Risk score: {risk_score}"
    # Unknown levels fall back to low.
    severity = max(Severity.from_string(risk_level), Severity.LOW)
    return CreateAlertInput(
        category=AlertCategory.EXTENSION,
        severity=severity,
        title=f"Risky extension: {extension_name}",
        description=description,
        domain=f"chrome-extension://{extension_id}",
        details=ExtensionAlertDetails(
            extension_id=extension_id,
            extension_name=extension_name,
            risk_score=risk_score,
            flags=tuple(flags),
            request_count=request_count,
            target_domains=tuple(target_domains),
        ),
    )


# Network behaviour


def build_data_exfiltration_alert(
    *,
    source_domain: str,
    target_domain: str,
    body_size: int,
    method: str,
    initiator: str,
) -> CreateAlertInput:
    size_kb = round(body_size / 1024)
    severity = Severity.CRITICAL if size_kb > EXFILTRATION_CRITICAL_KB else Severity.HIGH
    return CreateAlertInput(
        category=AlertCategory.DATA_EXFILTRATION,
        severity=severity,
        title=f"Large data transfer to {target_domain}",
        description=f"{size_kb}KB sent via {method} from {source_domain}",
        domain=target_domain,
        details=DataExfiltrationAlertDetails(
            source_domain=source_domain,
            target_domain=target_domain,
            body_size=body_size,
            size_kb=size_kb,
            method=method,
            initiator=initiator,
        ),
    )


def build_credential_theft_alert(
    *,
    source_domain: str,
    target_domain: str,
    form_action: str,
    is_secure: bool,
    is_cross_origin: bool,
    field_type: str,
    risks: Sequence[str],
) -> CreateAlertInput:
    severity = resolve_severity([("insecure_protocol" in risks, Severity.CRITICAL)], Severity.HIGH)
    description = build_risk_description(
        [
            ("insecure_protocol" in risks, "non-HTTPS"),
            ("cross_origin" in risks, "cross-origin"),
        ]
    )
    return CreateAlertInput(
        category=AlertCategory.CREDENTIAL_THEFT,
        severity=severity,
        title=f"Credential submission risk: {target_domain}",
        description=f"{field_type} field submitted ({description or 'unverified destination'})",
        domain=source_domain,
        details=CredentialTheftAlertDetails(
            source_domain=source_domain,
            target_domain=target_domain,
            form_action=form_action,
            is_secure=is_secure,
            is_cross_origin=is_cross_origin,
            field_type=field_type,
            risks=tuple(risks),
        ),
    )


def build_supply_chain_alert(
    *,
    page_domain: str,
    resource_url: str,
    resource_domain: str,
    resource_type: str,
    has_integrity: bool,
    has_crossorigin: bool,
    is_cdn: bool,
    risks: Sequence[str] = (),
) -> CreateAlertInput:
    severity = Severity.HIGH if is_cdn and not has_integrity else Severity.MEDIUM
    description = build_risk_description(
        [
            (not has_integrity, "no SRI"),
            (is_cdn, "CDN"),
            (not has_crossorigin, "no crossorigin"),
        ]
    )
    return CreateAlertInput(
        category=AlertCategory.SUPPLY_CHAIN,
        severity=severity,
        title=f"Supply chain risk: {resource_domain}",
        description=f"{resource_type}: {description}",
        domain=resource_domain,
        details=SupplyChainAlertDetails(
            page_domain=page_domain,
            resource_url=resource_url,
            resource_domain=resource_domain,
            resource_type=resource_type,
            has_integrity=has_integrity,
            has_crossorigin=has_crossorigin,
            is_cdn=is_cdn,
            risks=tuple(risks),
        ),
    )


def build_tracking_beacon_alert(
    *,
    source_domain: str,
    target_domain: str,
    url: str,
    body_size: int,
    initiator: str,
) -> CreateAlertInput:
    return CreateAlertInput(
        category=AlertCategory.TRACKING_BEACON,
        severity=Severity.MEDIUM,
        title=f"Tracking beacon: {target_domain}",
        description=f"Beacon sent from {source_domain}",
        domain=target_domain,
        details=TrackingBeaconAlertDetails(
            source_domain=source_domain,
            target_domain=target_domain,
            url=url,
            body_size=body_size,
            initiator=initiator,
        ),
    )


# Page compliance


def build_compliance_alert(
    *,
    page_domain: str,
    has_privacy_policy: bool,
    has_terms_of_service: bool,
    has_cookie_policy: bool,
    has_cookie_banner: bool,
    is_cookie_banner_gdpr_compliant: bool,
    has_login_form: bool,
) -> Optional[CreateAlertInput]:
    violations: list[str] = []
    if has_login_form and not has_privacy_policy:
        violations.append("missing_privacy_policy_on_login")
    if has_login_form and not has_terms_of_service:
        violations.append("missing_tos_on_login")
    if not has_cookie_policy:
        violations.append("missing_cookie_policy")
    if not has_cookie_banner:
        violations.append("missing_cookie_banner")
    elif not is_cookie_banner_gdpr_compliant:
        violations.append("non_compliant_cookie_banner")

    if not violations:
        return None

    login_related = any(v.endswith("_on_login") for v in violations)
    return CreateAlertInput(
        category=AlertCategory.COMPLIANCE,
        severity=Severity.HIGH if login_related else Severity.MEDIUM,
        title=f"Compliance issues: {page_domain}",
        description=f"{len(violations)} issue(s): {', '.join(violations)}",
        domain=page_domain,
        details=ComplianceAlertDetails(
            page_domain=page_domain,
            has_privacy_policy=has_privacy_policy,
            has_terms_of_service=has_terms_of_service,
            has_cookie_policy=has_cookie_policy,
            has_cookie_banner=has_cookie_banner,
            is_cookie_banner_gdpr_compliant=is_cookie_banner_gdpr_compliant,
            has_login_form=has_login_form,
            violations=tuple(violations),
        ),
    )


def build_policy_violation_alert(
    *,
    domain: str,
    rule_id: str,
    rule_name: str,
    rule_type: str,
    action: str,
    matched_pattern: str,
    target: str,
) -> Optional[CreateAlertInput]:
    if action == "allow":
        return None
    severity = Severity.HIGH if action == "block" else Severity.MEDIUM
    verb = "Blocked" if action == "block" else "Warning"
    return CreateAlertInput(
        category=AlertCategory.POLICY_VIOLATION,
        severity=severity,
        title=f"{verb}: {rule_name}",
        description=f"{rule_type} rule matched {matched_pattern!r} on {target}",
        domain=domain,
        details=PolicyViolationAlertDetails(
            rule_id=rule_id,
            rule_name=rule_name,
            rule_type=rule_type,
            action=action,
            matched_pattern=matched_pattern,
            target=target,
        ),
    )


def build_rule_violation_alert(violation: PolicyViolation) -> CreateAlertInput:
    """Alert for a PolicyEngine violation; keeps the rule's severity."""
    return CreateAlertInput(
        category=AlertCategory.POLICY,
        severity=violation.severity,
        title=f"Policy violation: {violation.rule_name}",
        description=violation.description or violation.rule_name,
        domain=violation.domain,
        details=RuleViolationAlertDetails(
            violation_id=violation.id,
            rule_id=violation.rule_id,
            rule_name=violation.rule_name,
            policy_category=violation.category.value,
            remediation=violation.remediation,
        ),
    )


# Page script behaviour


def build_clipboard_hijack_alert(*, domain: str, crypto_type: str, text_preview: str) -> CreateAlertInput:
    return CreateAlertInput(
        category=AlertCategory.CLIPBOARD_HIJACK,
        severity=Severity.CRITICAL,
        title=f"Clipboard hijack: {domain}",
        description=f"Clipboard replaced with a {crypto_type} address",
        domain=domain,
        details=ClipboardHijackAlertDetails(domain=domain, crypto_type=crypto_type, text_preview=text_preview),
    )


def build_cookie_access_alert(*, domain: str, read_count: int) -> CreateAlertInput:
    return CreateAlertInput(
        category=AlertCategory.COOKIE_ACCESS,
        severity=Severity.MEDIUM,
        title=f"Cookie access: {domain}",
        description=f"Script read cookies {read_count} time(s)",
        domain=domain,
        details=CookieAccessAlertDetails(domain=domain, read_count=read_count),
    )


def build_xss_injection_alert(*, domain: str, injection_type: str, payload_preview: str) -> CreateAlertInput:
    return CreateAlertInput(
        category=AlertCategory.XSS_INJECTION,
        severity=Severity.CRITICAL,
        title=f"XSS injection: {domain}",
        description=f"{injection_type} injection detected",
        domain=domain,
        details=XSSInjectionAlertDetails(
            domain=domain,
            injection_type=injection_type,
            payload_preview=payload_preview,
        ),
    )


def build_dom_scraping_alert(*, domain: str, selector: str, call_count: int) -> CreateAlertInput:
    return CreateAlertInput(
        category=AlertCategory.DOM_SCRAPING,
        severity=Severity.MEDIUM,
        title=f"DOM scraping: {domain}",
        description=f"{call_count} calls to querySelectorAll({selector!r})",
        domain=domain,
        details=DOMScrapingAlertDetails(domain=domain, selector=selector, call_count=call_count),
    )


def build_suspicious_download_alert(
    *,
    domain: str,
    download_type: str,
    filename: str,
    extension: str,
    size: int,
    mime_type: str,
) -> CreateAlertInput:
    ext = extension.lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    severity = Severity.CRITICAL if ext in DANGEROUS_DOWNLOAD_EXTENSIONS else Severity.HIGH
    return CreateAlertInput(
        category=AlertCategory.SUSPICIOUS_DOWNLOAD,
        severity=severity,
        title=f"Suspicious download: {filename or download_type}",
        description=f"{download_type} download from {domain}",
        domain=domain,
        details=SuspiciousDownloadAlertDetails(
            domain=domain,
            download_type=download_type,
            filename=filename,
            extension=extension,
            size=size,
            mime_type=mime_type,
        ),
    )
