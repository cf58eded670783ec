"""Access policies: allow/warn/block rules for domains, tools, AI services and data transfers.

Rules are evaluated in priority order (highest first). Every matching rule
is recorded as a decision; the first matching ``block`` rule ends the check
and the result is not allowed.

Example access_policies.yaml:

    enabled: true
    domain_rules:
      - id: block-paste-sites
        name: Paste sites
        pattern: pastebin.com
        match_type: suffix
        action: block
        priority: 10
    tool_rules:
      - id: warn-remote-desktop
        name: Remote desktop tools
        patterns: [anydesk.com, teamviewer.com]
        action: warn
    ai_rules:
      - id: no-credentials-to-ai
        name: Credentials to AI services
        blocked_data_types: [credentials]
        action: block
    data_transfer_rules:
      - id: large-uploads
        name: Large uploads
        max_size_kb: 10240
        action: warn
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

import yaml

from ..policy.loader import PolicyConfigError

logger = logging.getLogger(__name__)


class PolicyAction(str, Enum):
    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"


class PolicyMatchType(str, Enum):
    EXACT = "exact"
    SUFFIX = "suffix"
    PREFIX = "prefix"
    CONTAINS = "contains"
    REGEX = "regex"


class PolicyRuleType(str, Enum):
    DOMAIN = "domain"
    TOOL = "tool"
    AI = "ai"
    DATA_TRANSFER = "data_transfer"


@dataclass(frozen=True)
class DomainPolicyRule:
    id: str
    name: str
    pattern: str
    action: PolicyAction
    match_type: PolicyMatchType = PolicyMatchType.SUFFIX
    priority: int = 0
    enabled: bool = True
    description: str = ""


@dataclass(frozen=True)
class ToolPolicyRule:
    """Matches a tool by any of its known domains (suffix match)."""

    id: str
    name: str
    patterns: tuple[str, ...]
    action: PolicyAction
    priority: int = 0
    enabled: bool = True
    description: str = ""


@dataclass(frozen=True)
class AIPolicyRule:
    """
    Matches AI service usage.

    Matches when the provider equals ``provider`` (case-insensitive) or the
    request carries any of ``blocked_data_types``. A rule with neither
    applies to every AI service.
    """

    id: str
    name: str
    action: PolicyAction
    provider: Optional[str] = None
    blocked_data_types: tuple[str, ...] = ()
    priority: int = 0
    enabled: bool = True
    description: str = ""


@dataclass(frozen=True)
class DataTransferPolicyRule:
    id: str
    name: str
    action: PolicyAction
    max_size_kb: Optional[float] = None
    blocked_destinations: tuple[str, ...] = ()
    # When non-empty, any destination outside this list matches.
    allowed_destinations: tuple[str, ...] = ()
    priority: int = 0
    enabled: bool = True
    description: str = ""


@dataclass
class AccessPolicyConfig:
    enabled: bool = True
    domain_rules: list[DomainPolicyRule] = field(default_factory=list)
    tool_rules: list[ToolPolicyRule] = field(default_factory=list)
    ai_rules: list[AIPolicyRule] = field(default_factory=list)
    data_transfer_rules: list[DataTransferPolicyRule] = field(default_factory=list)

    def copy(self) -> AccessPolicyConfig:
        return AccessPolicyConfig(
            enabled=self.enabled,
            domain_rules=list(self.domain_rules),
            tool_rules=list(self.tool_rules),
            ai_rules=list(self.ai_rules),
            data_transfer_rules=list(self.data_transfer_rules),
        )


@dataclass(frozen=True)
class PolicyDecision:
    """One matching access rule."""

    rule_id: str
    rule_name: str
    rule_type: PolicyRuleType
    action: PolicyAction
    matched_pattern: str
    target: str
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "rule_type": self.rule_type.value,
            "action": self.action.value,
            "matched_pattern": self.matched_pattern,
            "target": self.target,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class PolicyCheckResult:
    allowed: bool
    decisions: tuple[PolicyDecision, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"allowed": self.allowed, "decisions": [d.to_dict() for d in self.decisions]}


def match_domain(domain: str, pattern: str, match_type: PolicyMatchType) -> bool:
    """Case-insensitive domain match. An invalid regex never matches."""
    d = (domain or "").lower()
    p = (pattern or "").lower()
    if match_type == PolicyMatchType.EXACT:
        return d == p
    if match_type == PolicyMatchType.SUFFIX:
        return d == p or d.endswith(f".{p}")
    if match_type == PolicyMatchType.PREFIX:
        return d.startswith(p)
    if match_type == PolicyMatchType.CONTAINS:
        return p in d
    if match_type == PolicyMatchType.REGEX:
        try:
            return re.search(pattern, domain or "", re.IGNORECASE) is not None
        except re.error:
            return False
    return False


def matches_any_pattern(
    domain: str,
    patterns: Iterable[str],
    match_type: PolicyMatchType = PolicyMatchType.SUFFIX,
) -> bool:
    return any(match_domain(domain, p, match_type) for p in patterns)


def _kb(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _by_priority(rules: Iterable[Any]) -> list[Any]:
    # sorted() is stable, so equal priorities keep their configured order.
    return sorted((r for r in rules if r.enabled), key=lambda r: r.priority, reverse=True)


class PolicyManager:
    """Evaluates access rules; rule edits are serialized under a lock."""

    def __init__(
        self,
        config: Optional[AccessPolicyConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = (config or AccessPolicyConfig()).copy()
        self.clock = clock
        self._lock = threading.RLock()

    def _decision(self, rule: Any, rule_type: PolicyRuleType, matched: str, target: str) -> PolicyDecision:
        return PolicyDecision(
            rule_id=rule.id,
            rule_name=rule.name,
            rule_type=rule_type,
            action=rule.action,
            matched_pattern=matched,
            target=target,
            timestamp=self.clock(),
        )

    def _evaluate(
        self,
        rules: Sequence[Any],
        rule_type: PolicyRuleType,
        target: str,
        match: Callable[[Any], Optional[str]],
    ) -> PolicyCheckResult:
        """Run ``match`` over rules by priority; it returns the matched pattern or None."""
        with self._lock:
            if not self._config.enabled:
                return PolicyCheckResult(allowed=True)
            ordered = _by_priority(rules)

        decisions: list[PolicyDecision] = []
        for rule in ordered:
            matched = match(rule)
            if matched is None:
                continue
            decisions.append(self._decision(rule, rule_type, matched, target))
            if rule.action == PolicyAction.BLOCK:
                logger.info(f"Access blocked by {rule_type.value} rule {rule.id}: {target}")
                return PolicyCheckResult(allowed=False, decisions=tuple(decisions))
        return PolicyCheckResult(allowed=True, decisions=tuple(decisions))

    def check_domain(self, domain: str) -> PolicyCheckResult:
        def match(rule: DomainPolicyRule) -> Optional[str]:
            return rule.pattern if match_domain(domain, rule.pattern, rule.match_type) else None

        return self._evaluate(self._config.domain_rules, PolicyRuleType.DOMAIN, domain, match)

    def check_tool(self, domain: str) -> PolicyCheckResult:
        def match(rule: ToolPolicyRule) -> Optional[str]:
            if not matches_any_pattern(domain, rule.patterns):
                return None
            return next(p for p in rule.patterns if match_domain(domain, p, PolicyMatchType.SUFFIX))

        return self._evaluate(self._config.tool_rules, PolicyRuleType.TOOL, domain, match)

    def check_ai_service(
        self,
        domain: str,
        provider: Optional[str] = None,
        data_types: Iterable[str] = (),
    ) -> PolicyCheckResult:
        """A rule matches on its provider or on any blocked data type; data types win the label."""
        sent = {t.lower() for t in data_types or ()}

        def match(rule: AIPolicyRule) -> Optional[str]:
            matched = None
            if rule.provider and provider and rule.provider.lower() == provider.lower():
                matched = f"provider:{rule.provider}"
            blocked = [t for t in rule.blocked_data_types if t.lower() in sent]
            if blocked:
                matched = f"data:{','.join(blocked)}"
            if not rule.provider and not rule.blocked_data_types:
                matched = "all_ai"
            return matched

        return self._evaluate(self._config.ai_rules, PolicyRuleType.AI, domain, match)

    def check_data_transfer(self, destination: str, size_kb: float) -> PolicyCheckResult:
        def match(rule: DataTransferPolicyRule) -> Optional[str]:
            if rule.max_size_kb is not None and size_kb > rule.max_size_kb:
                return f"size:{_kb(size_kb)}KB>{_kb(rule.max_size_kb)}KB"
            if rule.blocked_destinations and matches_any_pattern(destination, rule.blocked_destinations):
                return f"blocked:{destination}"
            if rule.allowed_destinations and not matches_any_pattern(destination, rule.allowed_destinations):
                return f"not_allowed:{destination}"
            return None

        return self._evaluate(self._config.data_transfer_rules, PolicyRuleType.DATA_TRANSFER, destination, match)

    # Configuration

    def get_config(self) -> AccessPolicyConfig:
        with self._lock:
            return self._config.copy()

    def update_config(self, **changes: Any) -> AccessPolicyConfig:
        """Replace top-level config fields (enabled, *_rules)."""
        with self._lock:
            self._config = replace(self._config, **changes).copy()
            return self._config.copy()

    def add_domain_rule(self, rule: DomainPolicyRule) -> None:
        with self._lock:
            self._config.domain_rules.append(rule)

    def add_tool_rule(self, rule: ToolPolicyRule) -> None:
        with self._lock:
            self._config.tool_rules.append(rule)

    def add_ai_rule(self, rule: AIPolicyRule) -> None:
        with self._lock:
            self._config.ai_rules.append(rule)

    def add_data_transfer_rule(self, rule: DataTransferPolicyRule) -> None:
        with self._lock:
            self._config.data_transfer_rules.append(rule)

    def _rule_lists(self) -> list[list[Any]]:
        return [
            self._config.domain_rules,
            self._config.tool_rules,
            self._config.ai_rules,
            self._config.data_transfer_rules,
        ]

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a rule of any type by id."""
        removed = False
        with self._lock:
            for rules in self._rule_lists():
                kept = [r for r in rules if r.id != rule_id]
                if len(kept) != len(rules):
                    rules[:] = kept
                    removed = True
        return removed

    def toggle_rule(self, rule_id: str, enabled: bool) -> bool:
        with self._lock:
            for rules in self._rule_lists():
                for i, rule in enumerate(rules):
                    if rule.id == rule_id:
                        rules[i] = replace(rule, enabled=enabled)
                        return True
        return False


# YAML loading


def _common(data: Any, kind: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise PolicyConfigError(f"{kind} rule must be a mapping")
    rule_id = str(data.get("id") or "").strip()
    if not rule_id:
        raise PolicyConfigError(f"{kind} rule is missing 'id'")
    try:
        action = PolicyAction(str(data.get("action", "")).strip().lower())
    except ValueError:
        raise PolicyConfigError(f"{rule_id}: unknown action {data.get('action')!r}") from None
    try:
        priority = int(data.get("priority", 0))
    except (TypeError, ValueError):
        raise PolicyConfigError(f"{rule_id}: priority must be an integer") from None
    return {
        "id": rule_id,
        "name": str(data.get("name") or rule_id),
        "action": action,
        "priority": priority,
        "enabled": bool(data.get("enabled", True)),
        "description": str(data.get("description") or ""),
    }


def _str_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def parse_domain_rule(data: Any) -> DomainPolicyRule:
    common = _common(data, "domain")
    pattern = str(data.get("pattern") or "").strip()
    if not pattern:
        raise PolicyConfigError(f"{common['id']}: domain rule is missing 'pattern'")
    try:
        match_type = PolicyMatchType(str(data.get("match_type", "suffix")).strip().lower())
    except ValueError:
        raise PolicyConfigError(f"{common['id']}: unknown match_type {data.get('match_type')!r}") from None
    return DomainPolicyRule(pattern=pattern, match_type=match_type, **common)


def parse_tool_rule(data: Any) -> ToolPolicyRule:
    common = _common(data, "tool")
    patterns = _str_tuple(data.get("patterns"))
    if not patterns:
        raise PolicyConfigError(f"{common['id']}: tool rule needs at least one pattern")
    return ToolPolicyRule(patterns=patterns, **common)


def parse_ai_rule(data: Any) -> AIPolicyRule:
    common = _common(data, "ai")
    return AIPolicyRule(
        provider=str(data["provider"]) if data.get("provider") else None,
        blocked_data_types=_str_tuple(data.get("blocked_data_types")),
        **common,
    )


def parse_data_transfer_rule(data: Any) -> DataTransferPolicyRule:
    common = _common(data, "data_transfer")
    max_size = data.get("max_size_kb")
    if max_size is not None:
        try:
            max_size = float(max_size)
        except (TypeError, ValueError):
            raise PolicyConfigError(f"{common['id']}: max_size_kb must be a number") from None
    return DataTransferPolicyRule(
        max_size_kb=max_size,
        blocked_destinations=_str_tuple(data.get("blocked_destinations")),
        allowed_destinations=_str_tuple(data.get("allowed_destinations")),
        **common,
    )


_SECTIONS: dict[str, Callable[[Any], Any]] = {
    "domain_rules": parse_domain_rule,
    "tool_rules": parse_tool_rule,
    "ai_rules": parse_ai_rule,
    "data_transfer_rules": parse_data_transfer_rule,
}


def parse_access_policies(data: Any, source: str = "access policies") -> AccessPolicyConfig:
    """Build an AccessPolicyConfig; malformed rules are skipped with a warning."""
    if not isinstance(data, dict):
        return AccessPolicyConfig()
    config = AccessPolicyConfig(enabled=bool(data.get("enabled", True)))
    for section, parse in _SECTIONS.items():
        entries = data.get(section) or []
        if not isinstance(entries, list):
            logger.warning(f"{source}: {section} must be a list")
            continue
        target = getattr(config, section)
        for entry in entries:
            try:
                target.append(parse(entry))
            except PolicyConfigError as e:
                logger.warning(f"Skipping invalid access rule in {source}: {e}")
    return config


def load_access_policies(path: Path) -> AccessPolicyConfig:
    path = Path(path)
    if not path.exists():
        return AccessPolicyConfig()
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except Exception as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return AccessPolicyConfig()
    config = parse_access_policies(data, str(path))
    total = sum(len(getattr(config, s)) for s in _SECTIONS)
    logger.info(f"Loaded {total} access rules from {path}")
    return config
