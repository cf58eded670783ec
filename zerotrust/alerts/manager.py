"""Alert manager: admission, default actions, lifecycle and subscribers."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import replace
from typing import Any, Callable, Iterable, Optional

from ..constants import Severity
from ..policy.models import PolicyViolation
from . import builders
from .cooldown import CooldownManager
from .models import (
    CLOSED_STATUSES,
    DEFAULT_ACTIONS,
    DEFAULT_ALERT_RULES,
    AlertAction,
    AlertConfig,
    AlertRule,
    AlertStatus,
    ConditionType,
    CreateAlertInput,
    SecurityAlert,
)
from .policy_manager import PolicyCheckResult, PolicyManager
from .store import AlertStore, InMemoryAlertStore

logger = logging.getLogger(__name__)

AlertListener = Callable[[SecurityAlert], None]


def rule_matches(rule: AlertRule, alert_input: CreateAlertInput) -> bool:
    """Category match plus the rule's optional threshold/pattern condition."""
    if not rule.enabled or rule.category != alert_input.category:
        return False
    condition = rule.condition
    if condition.type == ConditionType.ALWAYS:
        return True
    value: Any = getattr(alert_input.details, condition.field, None) if condition.field else None
    if condition.type == ConditionType.THRESHOLD:
        if condition.threshold is None or isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return value >= condition.threshold
    if condition.type == ConditionType.PATTERN:
        if value is None or not condition.pattern:
            return False
        if isinstance(value, (list, tuple, set, frozenset)):
            return any(condition.pattern in str(item) for item in value)
        return condition.pattern in str(value)
    return False


class AlertManager:
    """
    Owns alert identity and status transitions.

    Builders produce CreateAlertInput; create_alert applies the severity
    filter and cooldown, assigns id/status/actions, writes through the
    injected AlertStore and notifies subscribers.
    """

    def __init__(
        self,
        config: Optional[AlertConfig] = None,
        store: Optional[AlertStore] = None,
        cooldown: Optional[CooldownManager] = None,
        policy_manager: Optional[PolicyManager] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or AlertConfig()
        self.store: AlertStore = store or InMemoryAlertStore()
        self.clock = clock
        self.cooldown = cooldown or CooldownManager(cooldown_seconds=self.config.cooldown_seconds, clock=clock)
        self.policy_manager = policy_manager or PolicyManager(clock=clock)
        self._listeners: list[AlertListener] = []

    # Admission

    def min_severity(self) -> Optional[Severity]:
        """Least severe entry of the filter; None admits everything."""
        if not self.config.severity_filter:
            return None
        return min(Severity.from_string(s) for s in self.config.severity_filter)

    def should_alert(self, severity: Severity) -> bool:
        minimum = self.min_severity()
        return minimum is None or severity >= minimum

    def resolve_actions(self, alert_input: CreateAlertInput) -> tuple[AlertAction, ...]:
        """
        Explicit actions win; otherwise the first matching rule supplies them.

        Default rules are checked before configured ones. A configured rule
        with a default rule's id replaces that default in place.
        """
        if alert_input.actions:
            return tuple(alert_input.actions)
        rules = {rule.id: rule for rule in DEFAULT_ALERT_RULES}
        rules.update((rule.id, rule) for rule in self.config.rules)
        for rule in rules.values():
            if rule_matches(rule, alert_input):
                return tuple(rule.actions)
        return DEFAULT_ACTIONS

    async def create_alert(self, alert_input: Optional[CreateAlertInput]) -> Optional[SecurityAlert]:
        """Create and store an alert; None when filtered, suppressed or unstorable."""
        if alert_input is None or not self.config.enabled:
            return None
        if not self.should_alert(alert_input.severity):
            logger.debug(f"Alert filtered by severity ({alert_input.severity}): {alert_input.title}")
            return None

        category = alert_input.category.value
        if self.cooldown.is_on_cooldown(category, alert_input.domain):
            logger.debug(f"Alert suppressed by cooldown: {category} {alert_input.domain}")
            return None

        alert = SecurityAlert(
            id=f"alert-{uuid.uuid4().hex[:16]}",
            category=alert_input.category,
            severity=alert_input.severity,
            status=AlertStatus.NEW,
            title=alert_input.title,
            description=alert_input.description,
            domain=alert_input.domain,
            timestamp=self.clock(),
            details=alert_input.details,
            actions=self.resolve_actions(alert_input),
        )

        try:
            await self.store.add_alert(alert)
        except Exception as e:
            logger.error(f"Failed to store alert {alert.id}: {e}")
            return None

        self.cooldown.set_cooldown(category, alert_input.domain)
        logger.info(f"Alert [{alert.severity}] {alert.title}")
        self._notify(alert)
        return alert

    def _notify(self, alert: SecurityAlert) -> None:
        for listener in list(self._listeners):
            try:
                listener(alert)
            except Exception:
                logger.exception(f"Alert listener failed for {alert.id}")

    # Category helpers

    async def alert_nrd(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_nrd_alert(**params))

    async def alert_typosquat(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_typosquat_alert(**params))

    async def alert_ai_sensitive_data(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_ai_sensitive_data_alert(**params))

    async def alert_shadow_ai(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_shadow_ai_alert(**params))

    async def alert_extension_risk(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_extension_risk_alert(**params))

    async def alert_data_exfiltration(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_data_exfiltration_alert(**params))

    async def alert_credential_theft(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_credential_theft_alert(**params))

    async def alert_supply_chain(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_supply_chain_alert(**params))

    async def alert_compliance(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_compliance_alert(**params))

    async def alert_policy_violation(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_policy_violation_alert(**params))

    async def alert_tracking_beacon(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_tracking_beacon_alert(**params))

    async def alert_clipboard_hijack(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_clipboard_hijack_alert(**params))

    async def alert_cookie_access(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_cookie_access_alert(**params))

    async def alert_xss_injection(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_xss_injection_alert(**params))

    async def alert_dom_scraping(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_dom_scraping_alert(**params))

    async def alert_suspicious_download(self, **params) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_suspicious_download_alert(**params))

    async def alert_rule_violation(self, violation: PolicyViolation) -> Optional[SecurityAlert]:
        return await self.create_alert(builders.build_rule_violation_alert(violation))

    # Access policy enforcement

    async def _alert_decisions(self, domain: str, result: PolicyCheckResult) -> list[SecurityAlert]:
        alerts: list[SecurityAlert] = []
        for decision in result.decisions:
            alert = await self.alert_policy_violation(
                domain=domain,
                rule_id=decision.rule_id,
                rule_name=decision.rule_name,
                rule_type=decision.rule_type.value,
                action=decision.action.value,
                matched_pattern=decision.matched_pattern,
                target=decision.target,
            )
            if alert:
                alerts.append(alert)
        return alerts

    async def enforce_domain(self, domain: str) -> tuple[PolicyCheckResult, list[SecurityAlert]]:
        """Check domain rules and raise a policy_violation alert per matching rule."""
        result = self.policy_manager.check_domain(domain)
        return result, await self._alert_decisions(domain, result)

    async def enforce_tool(self, domain: str) -> tuple[PolicyCheckResult, list[SecurityAlert]]:
        result = self.policy_manager.check_tool(domain)
        return result, await self._alert_decisions(domain, result)

    async def enforce_ai_service(
        self,
        domain: str,
        provider: Optional[str] = None,
        data_types: Iterable[str] = (),
    ) -> tuple[PolicyCheckResult, list[SecurityAlert]]:
        result = self.policy_manager.check_ai_service(domain, provider=provider, data_types=data_types)
        return result, await self._alert_decisions(domain, result)

    async def enforce_data_transfer(
        self, destination: str, size_kb: float
    ) -> tuple[PolicyCheckResult, list[SecurityAlert]]:
        result = self.policy_manager.check_data_transfer(destination, size_kb)
        return result, await self._alert_decisions(destination, result)

    # Lifecycle

    async def update_alert_status(self, alert_id: str, status: AlertStatus) -> Optional[SecurityAlert]:
        """Set an alert's status. Unknown ids are a no-op (returns None)."""
        alert = await self.store.get_alert(alert_id)
        if alert is None:
            return None
        updated = replace(alert, status=AlertStatus(status))
        await self.store.update_alert(updated)
        return updated

    async def get_alerts(
        self,
        limit: Optional[int] = None,
        statuses: Optional[Iterable[AlertStatus]] = None,
    ) -> list[SecurityAlert]:
        return await self.store.get_alerts(limit=limit, statuses=statuses)

    async def get_alert_count(self, statuses: Optional[Iterable[AlertStatus]] = None) -> int:
        return await self.store.get_alert_count(statuses=statuses)

    async def acknowledge_all(self) -> int:
        """Move every new alert to acknowledged; returns how many changed."""
        count = 0
        for alert in await self.store.get_alerts(statuses=[AlertStatus.NEW]):
            await self.update_alert_status(alert.id, AlertStatus.ACKNOWLEDGED)
            count += 1
        return count

    async def clear_resolved(self) -> int:
        """Delete resolved and dismissed alerts; returns how many were removed."""
        count = 0
        for alert in await self.store.get_alerts(statuses=CLOSED_STATUSES):
            if await self.store.delete_alert(alert.id):
                count += 1
        return count

    def subscribe(self, listener: AlertListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
