"""Policy engine."""

from .context import build_policy_context
from .defaults import DEFAULT_POLICIES
from .engine import PolicyEngine, evaluate_condition, evaluate_rule
from .loader import PolicyConfigError, load_policies, parse_policy_rule
from .models import (
    ConditionLogic,
    ConditionOperator,
    PolicyCategory,
    PolicyCondition,
    PolicyRule,
    PolicyViolation,
)

__all__ = [
    "ConditionLogic",
    "ConditionOperator",
    "DEFAULT_POLICIES",
    "PolicyCategory",
    "PolicyCondition",
    "PolicyConfigError",
    "PolicyEngine",
    "PolicyRule",
    "PolicyViolation",
    "build_policy_context",
    "evaluate_condition",
    "evaluate_rule",
    "load_policies",
    "parse_policy_rule",
]
