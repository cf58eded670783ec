"""Alert persistence boundary."""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional, Protocol

from .models import AlertStatus, SecurityAlert


class AlertStore(Protocol):
    """Storage the AlertManager writes through. Implementations own persistence."""

    async def get_alerts(
        self,
        limit: Optional[int] = None,
        statuses: Optional[Iterable[AlertStatus]] = None,
    ) -> list[SecurityAlert]: ...

    async def get_alert(self, alert_id: str) -> Optional[SecurityAlert]: ...

    async def add_alert(self, alert: SecurityAlert) -> None: ...

    async def update_alert(self, alert: SecurityAlert) -> bool: ...

    async def delete_alert(self, alert_id: str) -> bool: ...

    async def get_alert_count(self, statuses: Optional[Iterable[AlertStatus]] = None) -> int: ...


class InMemoryAlertStore:
    """Dict-backed store; results are newest first."""

    def __init__(self):
        self._alerts: dict[str, SecurityAlert] = {}
        self._lock = asyncio.Lock()

    async def get_alerts(
        self,
        limit: Optional[int] = None,
        statuses: Optional[Iterable[AlertStatus]] = None,
    ) -> list[SecurityAlert]:
        async with self._lock:
            alerts = sorted(self._alerts.values(), key=lambda a: a.timestamp, reverse=True)
        if statuses is not None:
            wanted = set(statuses)
            alerts = [a for a in alerts if a.status in wanted]
        if limit:
            alerts = alerts[: max(0, limit)]
        return alerts

    async def get_alert(self, alert_id: str) -> Optional[SecurityAlert]:
        async with self._lock:
            return self._alerts.get(alert_id)

    async def add_alert(self, alert: SecurityAlert) -> None:
        async with self._lock:
            self._alerts[alert.id] = alert

    async def update_alert(self, alert: SecurityAlert) -> bool:
        async with self._lock:
            if alert.id not in self._alerts:
                return False
            self._alerts[alert.id] = alert
            return True

    async def delete_alert(self, alert_id: str) -> bool:
        async with self._lock:
            return self._alerts.pop(alert_id, None) is not None

    async def get_alert_count(self, statuses: Optional[Iterable[AlertStatus]] = None) -> int:
        async with self._lock:
            if statuses is None:
                return len(self._alerts)
            wanted = set(statuses)
            return sum(1 for a in self._alerts.values() if a.status in wanted)
