"""Policy rule and violation types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from ..constants import Severity

ConditionValue = Union[str, int, float, bool, list]


class PolicyCategory(str, Enum):
    DATA_PROTECTION = "data_protection"
    ACCESS_CONTROL = "access_control"
    NETWORK_SECURITY = "network_security"
    AI_GOVERNANCE = "ai_governance"
    COMPLIANCE = "compliance"
    SHADOW_IT = "shadow_it"
    PRIVACY = "privacy"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    MATCHES_REGEX = "matches_regex"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN_LIST = "in_list"
    NOT_IN_LIST = "not_in_list"


class ConditionLogic(str, Enum):
    AND = "and"
    OR = "or"


@dataclass(frozen=True)
class PolicyCondition:
    field: str  # dot-path into the evaluation context
    operator: ConditionOperator
    value: ConditionValue


@dataclass(frozen=True)
class PolicyRule:
    """
    A declarative rule. Rules are immutable; toggling ``enabled`` or
    editing a rule replaces it in the engine.
    """

    id: str
    name: str
    description: str
    category: PolicyCategory
    severity: Severity
    conditions: tuple[PolicyCondition, ...]
    condition_logic: ConditionLogic = ConditionLogic.AND
    enabled: bool = True
    remediation: str = ""
    tags: frozenset[str] = field(default_factory=frozenset)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "severity": str(self.severity),
            "enabled": self.enabled,
            "conditions": [
                {"field": c.field, "operator": c.operator.value, "value": c.value}
                for c in self.conditions
            ],
            "condition_logic": self.condition_logic.value,
            "remediation": self.remediation,
            "tags": sorted(self.tags),
        }


@dataclass
class PolicyViolation:
    """A rule that fired for one evaluation. Only ``acknowledged`` changes."""

    id: str
    rule_id: str
    rule_name: str
    severity: Severity
    category: PolicyCategory
    domain: str
    description: str
    remediation: str
    timestamp: float
    context: dict[str, Any] = field(default_factory=dict)
    acknowledged: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "severity": str(self.severity),
            "category": self.category.value,
            "domain": self.domain,
            "description": self.description,
            "remediation": self.remediation,
            "timestamp": self.timestamp,
            "acknowledged": self.acknowledged,
        }
