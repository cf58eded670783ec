"""Alert manager and builders."""

from . import builders
from .cooldown import CooldownManager, InMemoryCooldownStorage
from .manager import AlertManager
from .models import (
    DEFAULT_ACTIONS,
    DEFAULT_ALERT_RULES,
    ActionType,
    AlertAction,
    AlertCategory,
    AlertConfig,
    AlertRule,
    AlertStatus,
    CreateAlertInput,
    SecurityAlert,
)
from .policy_manager import AccessPolicyConfig, PolicyAction, PolicyCheckResult, PolicyManager
from .store import AlertStore, InMemoryAlertStore

__all__ = [
    "AccessPolicyConfig",
    "ActionType",
    "AlertAction",
    "AlertCategory",
    "AlertConfig",
    "AlertManager",
    "AlertRule",
    "AlertStatus",
    "AlertStore",
    "CooldownManager",
    "CreateAlertInput",
    "DEFAULT_ACTIONS",
    "DEFAULT_ALERT_RULES",
    "InMemoryAlertStore",
    "InMemoryCooldownStorage",
    "PolicyAction",
    "PolicyCheckResult",
    "PolicyManager",
    "SecurityAlert",
    "builders",
]
