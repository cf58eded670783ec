"""Load custom policy rules from YAML.

Example policies.yaml:

    policies:
      - id: custom-001
        name: Login on a DDNS host
        category: access_control
        severity: high
        condition_logic: and
        conditions:
          - {field: isDDNS, operator: equals, value: true}
          - {field: hasLogin, operator: equals, value: true}
        remediation: Do not enter credentials on dynamic DNS hosts.
        tags: [ddns, login]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from ..constants import Severity
from .models import ConditionLogic, ConditionOperator, PolicyCategory, PolicyCondition, PolicyRule

logger = logging.getLogger(__name__)


class PolicyConfigError(ValueError):
    """A policy definition is malformed."""


def _parse_condition(raw: Any, rule_id: str) -> PolicyCondition:
    if not isinstance(raw, dict):
        raise PolicyConfigError(f"{rule_id}: condition must be a mapping")
    field_name = str(raw.get("field") or "").strip()
    if not field_name:
        raise PolicyConfigError(f"{rule_id}: condition is missing 'field'")
    try:
        operator = ConditionOperator(str(raw.get("operator", "")).strip().lower())
    except ValueError:
        raise PolicyConfigError(f"{rule_id}: unknown operator {raw.get('operator')!r}") from None
    if "value" not in raw:
        raise PolicyConfigError(f"{rule_id}: condition on {field_name} is missing 'value'")
    value = raw["value"]
    if operator in (ConditionOperator.IN_LIST, ConditionOperator.NOT_IN_LIST) and not isinstance(value, list):
        raise PolicyConfigError(f"{rule_id}: {operator.value} requires a list value")
    return PolicyCondition(field=field_name, operator=operator, value=value)


def parse_policy_rule(data: Any) -> PolicyRule:
    """Build a PolicyRule from a mapping; raises PolicyConfigError."""
    if not isinstance(data, dict):
        raise PolicyConfigError("policy entry must be a mapping")
    rule_id = str(data.get("id") or "").strip()
    if not rule_id:
        raise PolicyConfigError("policy is missing 'id'")

    try:
        category = PolicyCategory(str(data.get("category", "")).strip().lower())
    except ValueError:
        raise PolicyConfigError(f"{rule_id}: unknown category {data.get('category')!r}") from None
    try:
        severity = Severity.parse(data.get("severity", ""))
    except ValueError as e:
        raise PolicyConfigError(f"{rule_id}: {e}") from None
    try:
        logic = ConditionLogic(str(data.get("condition_logic", "and")).strip().lower())
    except ValueError:
        raise PolicyConfigError(f"{rule_id}: condition_logic must be 'and' or 'or'") from None

    raw_conditions = data.get("conditions") or []
    if not isinstance(raw_conditions, list) or not raw_conditions:
        raise PolicyConfigError(f"{rule_id}: at least one condition is required")

    return PolicyRule(
        id=rule_id,
        name=str(data.get("name") or rule_id),
        description=str(data.get("description") or ""),
        category=category,
        severity=severity,
        conditions=tuple(_parse_condition(c, rule_id) for c in raw_conditions),
        condition_logic=logic,
        enabled=bool(data.get("enabled", True)),
        remediation=str(data.get("remediation") or ""),
        tags=frozenset(str(t) for t in (data.get("tags") or [])),
    )


def load_policies(path: Path) -> list[PolicyRule]:
    """Load rules from a YAML file; malformed entries are skipped with a warning."""
    path = Path(path)
    if not path.exists():
        return []
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except Exception as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return []

    entries = data.get("policies", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        logger.warning("%s: expected a list of policies", path)
        return []

    rules: list[PolicyRule] = []
    for entry in entries:
        try:
            rules.append(parse_policy_rule(entry))
        except PolicyConfigError as e:
            logger.warning(f"Skipping invalid policy in {path}: {e}")
    logger.info(f"Loaded {len(rules)} custom policies from {path}")
    return rules
