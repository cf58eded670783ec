"""Condition-based policy evaluation."""

from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from dataclasses import replace
from functools import lru_cache
from typing import Any, Callable, Iterable, Mapping, Optional

from ..constants import Severity
from .defaults import DEFAULT_POLICIES
from .models import (
    ConditionLogic,
    ConditionOperator,
    PolicyCategory,
    PolicyCondition,
    PolicyRule,
    PolicyViolation,
)

logger = logging.getLogger(__name__)

ViolationListener = Callable[[PolicyViolation], None]

_MISSING = object()


def resolve_field(context: Mapping[str, Any], path: str) -> Any:
    """
    Look up a dot-path in nested mappings/objects; _MISSING if absent.

    Objects only expose public, non-callable attributes.
    """
    if path in context:
        return context[path]
    current: Any = context
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return _MISSING
            current = current[part]
        elif not part.startswith("_") and hasattr(current, part):
            value = getattr(current, part)
            if callable(value):
                return _MISSING
            current = value
        else:
            return _MISSING
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equals(left: Any, right: Any) -> bool:
    """Equality without bool/int coercion; numbers compare by value."""
    if _is_number(left) and _is_number(right):
        return left == right
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if type(left) is not type(right) and not (isinstance(left, str) and isinstance(right, str)):
        return False
    return left == right


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern)
    except re.error as e:
        logger.warning(f"Invalid policy regex {pattern!r}: {e}")
        return None


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def evaluate_condition(condition: PolicyCondition, context: Mapping[str, Any]) -> bool:
    """Evaluate one condition. Missing fields and type mismatches never match."""
    field_value = resolve_field(context, condition.field)
    if field_value is _MISSING:
        return False

    op = condition.operator
    value = condition.value

    if op == ConditionOperator.EQUALS:
        return _strict_equals(field_value, value)
    if op == ConditionOperator.NOT_EQUALS:
        return not _strict_equals(field_value, value)

    if op in (ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS):
        if isinstance(field_value, str):
            found = str(value) in field_value
        elif isinstance(field_value, (list, tuple, set, frozenset)):
            found = any(_strict_equals(item, value) for item in field_value)
        else:
            return False
        return found if op == ConditionOperator.CONTAINS else not found

    if op in (ConditionOperator.STARTS_WITH, ConditionOperator.ENDS_WITH, ConditionOperator.MATCHES_REGEX):
        if not isinstance(field_value, str):
            return False
        if op == ConditionOperator.STARTS_WITH:
            return field_value.startswith(str(value))
        if op == ConditionOperator.ENDS_WITH:
            return field_value.endswith(str(value))
        pattern = _compile(str(value))
        return bool(pattern and pattern.search(field_value))

    if op in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        if not _is_number(field_value):
            return False
        threshold = _to_float(value)
        if threshold is None:
            return False
        return field_value > threshold if op == ConditionOperator.GREATER_THAN else field_value < threshold

    if op in (ConditionOperator.IN_LIST, ConditionOperator.NOT_IN_LIST):
        if not isinstance(value, (list, tuple)):
            return False
        found = any(_strict_equals(field_value, item) for item in value)
        return found if op == ConditionOperator.IN_LIST else not found

    return False


def evaluate_rule(rule: PolicyRule, context: Mapping[str, Any]) -> bool:
    """AND over no conditions matches; OR over no conditions does not."""
    if not rule.enabled:
        return False
    results = (evaluate_condition(c, context) for c in rule.conditions)
    if rule.condition_logic == ConditionLogic.OR:
        return any(results)
    return all(results)


class PolicyEngine:
    """
    Evaluates rules against per-domain contexts and keeps the violation log.

    Every instance owns its rules, violations and listeners, so independent
    engines (e.g. one per tenant) never share state.
    """

    def __init__(
        self,
        policies: Optional[Iterable[PolicyRule]] = None,
        include_defaults: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.clock = clock
        self._policies: dict[str, PolicyRule] = {}
        self._violations: list[PolicyViolation] = []
        self._listeners: list[ViolationListener] = []
        self._lock = threading.RLock()
        for rule in [*(DEFAULT_POLICIES if include_defaults else ()), *(policies or ())]:
            self._policies[rule.id] = rule

    def evaluate(self, context: Mapping[str, Any]) -> list[PolicyViolation]:
        """Evaluate every enabled rule; one violation per firing rule."""
        domain = str(context.get("domain", "") or "")
        new_violations: list[PolicyViolation] = []

        with self._lock:
            for rule in list(self._policies.values()):
                try:
                    fired = evaluate_rule(rule, context)
                except Exception:
                    logger.exception(f"Policy {rule.id} failed to evaluate")
                    fired = False
                if not fired:
                    continue
                violation = PolicyViolation(
                    id=f"viol-{uuid.uuid4().hex[:16]}",
                    rule_id=rule.id,
                    rule_name=rule.name,
                    severity=rule.severity,
                    category=rule.category,
                    domain=domain,
                    description=rule.description,
                    remediation=rule.remediation,
                    timestamp=self.clock(),
                    context=dict(context),
                )
                self._violations.append(violation)
                new_violations.append(violation)
            listeners = list(self._listeners)

        for violation in new_violations:
            logger.info(f"Policy violation {violation.rule_id} ({violation.severity}) on {domain}")
            for listener in listeners:
                try:
                    listener(violation)
                except Exception:
                    logger.exception(f"Violation listener failed for {violation.id}")
        return new_violations

    def get_violations(
        self,
        severities: Optional[Iterable[Severity]] = None,
        acknowledged: Optional[bool] = None,
        category: Optional[PolicyCategory] = None,
        limit: Optional[int] = None,
    ) -> list[PolicyViolation]:
        """Newest-first violations, filtered by severity, acknowledged, category, then limit.

        A limit of 0 or None returns every match.
        """
        with self._lock:
            result = list(reversed(self._violations))
        if severities is not None:
            wanted = {Severity.from_string(s) for s in severities}
            result = [v for v in result if v.severity in wanted]
        if acknowledged is not None:
            result = [v for v in result if v.acknowledged == acknowledged]
        if category is not None:
            result = [v for v in result if v.category == category]
        if limit:
            result = result[: max(0, limit)]
        return result

    def acknowledge_violation(self, violation_id: str) -> bool:
        with self._lock:
            for violation in self._violations:
                if violation.id == violation_id:
                    violation.acknowledged = True
                    return True
        return False

    def acknowledge_all(self) -> int:
        with self._lock:
            count = 0
            for violation in self._violations:
                if not violation.acknowledged:
                    violation.acknowledged = True
                    count += 1
            return count

    def clear_violations(self) -> None:
        with self._lock:
            self._violations.clear()

    def get_violation_stats(self) -> dict[str, int]:
        """Unacknowledged violation counts per severity plus a total."""
        stats = {str(s): 0 for s in sorted(Severity, reverse=True)}
        with self._lock:
            for violation in self._violations:
                if violation.acknowledged:
                    continue
                stats[str(violation.severity)] += 1
        stats["total"] = sum(stats.values())
        return stats

    def add_policy(self, rule: PolicyRule) -> None:
        """Add a rule, replacing any rule with the same id."""
        with self._lock:
            self._policies[rule.id] = rule

    def remove_policy(self, policy_id: str) -> bool:
        with self._lock:
            return self._policies.pop(policy_id, None) is not None

    def set_policy_enabled(self, policy_id: str, enabled: bool) -> bool:
        with self._lock:
            rule = self._policies.get(policy_id)
            if rule is None:
                return False
            self._policies[policy_id] = replace(rule, enabled=enabled)
            return True

    def get_policy(self, policy_id: str) -> Optional[PolicyRule]:
        with self._lock:
            return self._policies.get(policy_id)

    def get_policies(self) -> list[PolicyRule]:
        with self._lock:
            return list(self._policies.values())

    def subscribe(self, listener: ViolationListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe
