"""Tests for alert admission, actions, cooldown and lifecycle."""

from dataclasses import replace

import pytest

from zerotrust.alerts import builders
from zerotrust.alerts.cooldown import CooldownManager, cooldown_key
from zerotrust.alerts.manager import AlertManager, rule_matches
from zerotrust.alerts.models import (
    BLOCK_ACTION,
    DEFAULT_ACTIONS,
    DISMISS_ACTION,
    INVESTIGATE_ACTION,
    REPORT_ACTION,
    AlertCategory,
    AlertCondition,
    AlertConfig,
    AlertRule,
    AlertStatus,
    ConditionType,
)
from zerotrust.alerts.store import InMemoryAlertStore
from zerotrust.constants import Severity


def _nrd(domain="fresh-shop.com", confidence="high"):
    return dict(domain=domain, domain_age=3, registration_date="2024-01-01T00:00:00Z", confidence=confidence)


def _exfil(size_kb):
    return dict(
        source_domain="intranet.example",
        target_domain="drop.example",
        body_size=size_kb * 1024,
        method="POST",
        initiator="fetch",
    )


class _BrokenStore(InMemoryAlertStore):
    async def add_alert(self, alert):
        raise OSError("disk full")


@pytest.mark.asyncio
async def test_default_filter_drops_medium_and_admits_high(clock):
    manager = AlertManager(clock=clock)

    assert await manager.alert_nrd(**_nrd(confidence="medium")) is None
    alert = await manager.alert_nrd(**_nrd(confidence="high"))

    assert alert is not None
    assert alert.id.startswith("alert-")
    assert alert.status == AlertStatus.NEW
    assert alert.severity == Severity.HIGH
    assert alert.timestamp == clock()
    assert await manager.get_alert_count() == 1


@pytest.mark.asyncio
async def test_empty_filter_admits_everything(clock):
    manager = AlertManager(AlertConfig(severity_filter=frozenset()), clock=clock)
    assert manager.min_severity() is None
    assert await manager.alert_cookie_access(domain="ads.example", read_count=3) is not None


@pytest.mark.asyncio
async def test_disabled_manager_and_none_inputs_create_nothing(clock):
    manager = AlertManager(AlertConfig(enabled=False), clock=clock)
    assert await manager.alert_nrd(**_nrd()) is None

    enabled = AlertManager(clock=clock)
    assert await enabled.alert_typosquat(domain="google.com", homoglyph_count=0, confidence="none") is None
    assert await enabled.create_alert(None) is None


@pytest.mark.asyncio
async def test_actions_follow_category_rules(clock):
    manager = AlertManager(clock=clock)

    typo = await manager.alert_typosquat(domain="g00gle.com", homoglyph_count=2, confidence="high")
    assert typo.actions == (BLOCK_ACTION, REPORT_ACTION)

    nrd = await manager.alert_nrd(**_nrd())
    assert nrd.actions == DEFAULT_ACTIONS

    creds = await manager.alert_ai_sensitive_data(
        domain="chat.example-ai.com", provider="example-ai", data_types=["credentials"]
    )
    assert creds.actions == (INVESTIGATE_ACTION,)

    pii = await manager.alert_ai_sensitive_data(domain="chat.other-ai.com", provider="other-ai", data_types=["pii"])
    assert pii.actions == DEFAULT_ACTIONS


@pytest.mark.asyncio
async def test_configured_rules_supply_actions(clock):
    custom = AlertRule(
        id="big-exfil",
        name="Very large transfer",
        category=AlertCategory.DATA_EXFILTRATION,
        severity=Severity.CRITICAL,
        actions=(BLOCK_ACTION,),
        condition=AlertCondition(type=ConditionType.THRESHOLD, threshold=1000, field="size_kb"),
    )
    manager = AlertManager(AlertConfig(rules=[custom]), clock=clock)

    big = await manager.alert_data_exfiltration(**_exfil(2000))
    assert big.actions == (BLOCK_ACTION,)

    clock.advance(1)
    moderate = await manager.alert_data_exfiltration(**{**_exfil(600), "target_domain": "other.example"})
    assert moderate.actions == DEFAULT_ACTIONS


@pytest.mark.asyncio
async def test_default_rules_are_checked_before_configured_rules(clock):
    nrd_block = dict(
        name="Block new domains",
        category=AlertCategory.NRD,
        severity=Severity.HIGH,
        actions=(BLOCK_ACTION,),
    )
    manager = AlertManager(AlertConfig(rules=[AlertRule(id="custom-nrd", **nrd_block)]), clock=clock)
    alert = await manager.alert_nrd(**_nrd())
    assert alert.actions == (INVESTIGATE_ACTION, DISMISS_ACTION)

    manager = AlertManager(AlertConfig(rules=[AlertRule(id="nrd-high", **nrd_block)]), clock=clock)
    alert = await manager.alert_nrd(**_nrd())
    assert alert.actions == (BLOCK_ACTION,)


def test_rule_matches_conditions():
    alert_input = builders.build_data_exfiltration_alert(**_exfil(600))
    base = dict(id="r", name="r", category=AlertCategory.DATA_EXFILTRATION, severity=Severity.HIGH, actions=())

    assert rule_matches(AlertRule(**base), alert_input) is True
    assert rule_matches(AlertRule(**base, enabled=False), alert_input) is False
    assert rule_matches(AlertRule(**{**base, "category": AlertCategory.NRD}), alert_input) is False
    assert rule_matches(
        AlertRule(**base, condition=AlertCondition(ConditionType.THRESHOLD, threshold=500, field="size_kb")),
        alert_input,
    ) is True
    assert rule_matches(
        AlertRule(**base, condition=AlertCondition(ConditionType.THRESHOLD, threshold=500, field="method")),
        alert_input,
    ) is False
    assert rule_matches(
        AlertRule(**base, condition=AlertCondition(ConditionType.PATTERN, pattern="drop", field="target_domain")),
        alert_input,
    ) is True


@pytest.mark.asyncio
async def test_explicit_actions_are_kept(clock):
    alert_input = replace(builders.build_nrd_alert(**_nrd()), actions=(REPORT_ACTION,))
    alert = await AlertManager(clock=clock).create_alert(alert_input)
    assert alert.actions == (REPORT_ACTION,)


@pytest.mark.asyncio
async def test_cooldown_suppresses_repeat_alerts(clock):
    manager = AlertManager(AlertConfig(cooldown_seconds=60), clock=clock)

    assert await manager.alert_nrd(**_nrd()) is not None
    assert await manager.alert_nrd(**_nrd(domain="FRESH-SHOP.com")) is None
    assert await manager.alert_nrd(**_nrd(domain="other-shop.com")) is not None
    assert await manager.alert_typosquat(domain="fresh-shop.com", homoglyph_count=1, confidence="high") is not None

    clock.advance(61)
    assert await manager.alert_nrd(**_nrd()) is not None
    assert await manager.get_alert_count() == 4


def test_cooldown_manager_expiry(clock):
    cooldown = CooldownManager(cooldown_seconds=30, clock=clock)
    cooldown.set_cooldown("nrd", "Example.com")

    assert cooldown_key("nrd", "Example.com") == "nrd:example.com"
    assert cooldown.is_on_cooldown("nrd", "example.com") is True
    assert cooldown.get_remaining_cooldown("nrd", "example.com") == 30

    clock.advance(30)
    assert cooldown.is_on_cooldown("nrd", "example.com") is False
    assert cooldown.storage.get("nrd:example.com") is None

    cooldown.set_cooldown("nrd", "example.com")
    cooldown.clear_cooldown("nrd", "example.com")
    assert cooldown.is_on_cooldown("nrd", "example.com") is False


def test_disabled_cooldown_never_suppresses(clock):
    cooldown = CooldownManager(clock=clock)
    cooldown.set_cooldown("nrd", "example.com")
    assert cooldown.enabled is False
    assert cooldown.is_on_cooldown("nrd", "example.com") is False


@pytest.mark.asyncio
async def test_store_failure_returns_none(clock):
    manager = AlertManager(store=_BrokenStore(), clock=clock)
    seen = []
    manager.subscribe(seen.append)

    assert await manager.alert_nrd(**_nrd()) is None
    assert seen == []


@pytest.mark.asyncio
async def test_listeners_are_isolated_and_unsubscribable(clock):
    manager = AlertManager(clock=clock)
    seen = []

    def broken(alert):
        raise RuntimeError("listener failure")

    manager.subscribe(broken)
    unsubscribe = manager.subscribe(seen.append)

    first = await manager.alert_nrd(**_nrd())
    assert seen == [first]

    unsubscribe()
    await manager.alert_nrd(**_nrd(domain="other-shop.com"))
    assert seen == [first]


@pytest.mark.asyncio
async def test_status_lifecycle(clock):
    manager = AlertManager(clock=clock)
    alerts = []
    for domain in ("a-shop.com", "b-shop.com", "c-shop.com"):
        alerts.append(await manager.alert_nrd(**_nrd(domain=domain)))
        clock.advance(1)

    newest = await manager.get_alerts(limit=2)
    assert [a.domain for a in newest] == ["c-shop.com", "b-shop.com"]
    assert len(await manager.get_alerts(limit=0)) == 3

    resolved = await manager.update_alert_status(alerts[0].id, AlertStatus.RESOLVED)
    assert resolved.status == AlertStatus.RESOLVED
    assert alerts[0].status == AlertStatus.NEW
    assert await manager.update_alert_status("alert-missing", AlertStatus.RESOLVED) is None

    assert await manager.acknowledge_all() == 2
    assert await manager.get_alert_count(statuses=[AlertStatus.ACKNOWLEDGED]) == 2

    await manager.update_alert_status(alerts[1].id, "dismissed")
    assert await manager.clear_resolved() == 2
    remaining = await manager.get_alerts()
    assert [a.id for a in remaining] == [alerts[2].id]


@pytest.mark.asyncio
async def test_alert_to_dict(clock):
    alert = await AlertManager(clock=clock).alert_typosquat(
        domain="g00gle.com", homoglyph_count=2, confidence="high", target_domain="google.com"
    )
    data = alert.to_dict()

    assert data["category"] == "typosquat"
    assert data["severity"] == "critical"
    assert data["status"] == "new"
    assert data["details"]["type"] == "typosquat"
    assert [a["id"] for a in data["actions"]] == ["block", "report"]
