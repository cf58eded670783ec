"""Repeat-alert suppression per (category, domain)."""

from __future__ import annotations

import time
from typing import Callable, Optional, Protocol


class CooldownStorage(Protocol):
    def get(self, key: str) -> Optional[float]: ...

    def set(self, key: str, until: float) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class InMemoryCooldownStorage:
    def __init__(self):
        self._until: dict[str, float] = {}

    def get(self, key: str) -> Optional[float]:
        return self._until.get(key)

    def set(self, key: str, until: float) -> None:
        self._until[key] = until

    def delete(self, key: str) -> None:
        self._until.pop(key, None)

    def clear(self) -> None:
        self._until.clear()


def cooldown_key(category: str, domain: str) -> str:
    return f"{category}:{domain.lower()}"


class CooldownManager:
    """
    Tracks when each (category, domain) pair may alert again.

    Expired entries are dropped when read. A cooldown of 0 disables
    suppression entirely.
    """

    def __init__(
        self,
        storage: Optional[CooldownStorage] = None,
        cooldown_seconds: float = 0,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage or InMemoryCooldownStorage()
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock

    @property
    def enabled(self) -> bool:
        return self.cooldown_seconds > 0

    def get_remaining_cooldown(self, category: str, domain: str) -> float:
        key = cooldown_key(category, domain)
        until = self.storage.get(key)
        if until is None:
            return 0.0
        remaining = until - self.clock()
        if remaining <= 0:
            self.storage.delete(key)
            return 0.0
        return remaining

    def is_on_cooldown(self, category: str, domain: str) -> bool:
        if not self.enabled:
            return False
        return self.get_remaining_cooldown(category, domain) > 0

    def set_cooldown(self, category: str, domain: str) -> None:
        if not self.enabled:
            return
        self.storage.set(cooldown_key(category, domain), self.clock() + self.cooldown_seconds)

    def clear_cooldown(self, category: str, domain: str) -> None:
        self.storage.delete(cooldown_key(category, domain))

    def clear_all(self) -> None:
        self.storage.clear()
