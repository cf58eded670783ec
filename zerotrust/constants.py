"""Centralized constants for the security monitor.

Enums and defaults shared by the policy engine, alert manager and
detectors.
"""

from enum import IntEnum


class Severity(IntEnum):
    """Finding severity with ranking for comparison (higher is worse)."""

    INFO = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_string(cls, value: "str | Severity | None") -> "Severity":
        """Convert string severity to enum, defaulting to INFO."""
        if isinstance(value, Severity):
            return value
        if not value:
            return cls.INFO
        mapping = {
            "info": cls.INFO,
            "low": cls.LOW,
            "medium": cls.MEDIUM,
            "high": cls.HIGH,
            "critical": cls.CRITICAL,
        }
        return mapping.get(str(value).strip().lower(), cls.INFO)

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        """Strict variant of from_string; raises ValueError on unknown names."""
        if isinstance(value, Severity):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown severity: {value!r}") from None

    def __str__(self) -> str:
        return self.name.lower()


SECONDS_PER_DAY = 86400

# Cache expiry shared by the reputation detectors and the threat aggregator.
DEFAULT_CACHE_EXPIRY_SECONDS = 24 * 3600

DEFAULT_ALERT_SEVERITY_FILTER = frozenset({Severity.CRITICAL, Severity.HIGH})

USER_AGENT = "zerotrust-monitor/0.3"
