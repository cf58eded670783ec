"""Configuration management for the security monitor."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Set

import yaml
from dotenv import load_dotenv

from .alerts.models import AlertConfig
from .alerts.policy_manager import AccessPolicyConfig, load_access_policies
from .constants import Severity
from .intel.aggregator import ThreatIntelConfig
from .intel.blocklist import SAFE_DOMAINS, parse_blocklist_text
from .policy.loader import load_policies
from .policy.models import PolicyRule
from .reputation.nrd import NRDConfig
from .reputation.suspicious import SUSPICIOUS_TLDS
from .reputation.threat_analyzer import ThreatAnalyzerConfig
from .reputation.typosquat import DEFAULT_REFERENCE_DOMAINS, TyposquatConfig
from .utils.domains import canonicalize_domain

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Application configuration loaded from environment."""

    # Paths
    config_dir: Path = field(default_factory=lambda: Path("./config"))

    # NRD detection
    nrd_threshold_days: int = 30
    nrd_enable_rdap: bool = True
    rdap_timeout: float = 5.0
    rdap_min_qpm: int = 30
    rdap_max_qpm: int = 120
    rdap_error_cache_seconds: float = 300
    nrd_suspicious_threshold: int = 60
    domain_cache_ttl_hours: float = 24

    # Typosquat detection
    typosquat_threshold: int = 30
    typosquat_japanese_homoglyphs: bool = True
    typosquat_warn_punycode: bool = True

    # Pattern analyzer
    threat_analyzer_min_score: int = 30

    # Threat intelligence
    threat_intel_enabled: bool = True
    threat_intel_urlhaus: bool = True
    threat_intel_cache_ttl_hours: float = 24
    threat_intel_confidence_bonus: int = 5
    threat_intel_batch_size: int = 10
    blocklist_urls: list[str] = field(default_factory=list)

    # Alerts
    alert_severity_filter: list[str] = field(default_factory=lambda: ["critical", "high"])
    alert_cooldown_seconds: float = 0

    # Operational limits
    max_concurrent_checks: int = 5
    log_level: str = "INFO"

    # Heuristics (override via config/heuristics.yaml)
    suspicious_tlds: Set[str] = field(default_factory=lambda: set(SUSPICIOUS_TLDS))
    reference_domains: list[str] = field(default_factory=lambda: list(DEFAULT_REFERENCE_DOMAINS))
    safe_domains: Set[str] = field(default_factory=lambda: set(SAFE_DOMAINS))
    ddns_providers: Optional[dict[str, str]] = None

    # Loaded from config_dir
    blocklist: Set[str] = field(default_factory=set)
    policies: list[PolicyRule] = field(default_factory=list)
    access_policies: AccessPolicyConfig = field(default_factory=AccessPolicyConfig)

    def __post_init__(self):
        """Load list files from the config directory."""
        self.config_dir = Path(self.config_dir)
        self._load_lists()

    def _load_lists(self):
        blocklist_path = self.config_dir / "blocklist.txt"
        policies_path = self.config_dir / "policies.yaml"
        access_path = self.config_dir / "access_policies.yaml"

        if blocklist_path.exists():
            text = blocklist_path.read_text(encoding="utf-8", errors="replace")
            self.blocklist = {canonicalize_domain(item) or item for item in parse_blocklist_text(text)}
        if policies_path.exists():
            self.policies = load_policies(policies_path)
        if access_path.exists():
            self.access_policies = load_access_policies(access_path)

    # Component configs

    def nrd_config(self) -> NRDConfig:
        return NRDConfig(
            threshold_days=self.nrd_threshold_days,
            enable_rdap=self.nrd_enable_rdap,
            rdap_timeout=self.rdap_timeout,
            rdap_min_qpm=self.rdap_min_qpm,
            rdap_max_qpm=self.rdap_max_qpm,
            suspicious_threshold=self.nrd_suspicious_threshold,
            cache_expiry=self.domain_cache_ttl_hours * 3600,
            error_cache_expiry=self.rdap_error_cache_seconds,
            suspicious_tlds=frozenset(self.suspicious_tlds),
            ddns_providers=self.ddns_providers,
        )

    def typosquat_config(self) -> TyposquatConfig:
        return TyposquatConfig(
            heuristic_threshold=self.typosquat_threshold,
            cache_expiry=self.domain_cache_ttl_hours * 3600,
            detect_japanese_homoglyphs=self.typosquat_japanese_homoglyphs,
            warn_on_punycode=self.typosquat_warn_punycode,
            reference_domains=list(self.reference_domains),
        )

    def analyzer_config(self) -> ThreatAnalyzerConfig:
        return ThreatAnalyzerConfig(min_score_to_report=self.threat_analyzer_min_score)

    def threat_intel_config(self) -> ThreatIntelConfig:
        return ThreatIntelConfig(
            enabled=self.threat_intel_enabled,
            cache_expiry=self.threat_intel_cache_ttl_hours * 3600,
            confidence_bonus=self.threat_intel_confidence_bonus,
            batch_size=self.threat_intel_batch_size,
            enable_urlhaus=self.threat_intel_urlhaus,
            blocklist_urls=list(self.blocklist_urls),
            safe_domains=frozenset(self.safe_domains),
        )

    def alert_config(self) -> AlertConfig:
        return AlertConfig(
            severity_filter=frozenset(Severity.from_string(s) for s in self.alert_severity_filter),
            cooldown_seconds=self.alert_cooldown_seconds,
        )


def _load_heuristics(config_dir: Path) -> dict:
    """Load heuristic overrides from config/heuristics.yaml (optional)."""
    path = Path(config_dir or ".") / "heuristics.yaml"
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except Exception as exc:
        logger.warning("Failed to parse heuristics.yaml: %s", exc)
        return {}
    if not isinstance(data, dict):
        return {}

    def _coerce_domain_list(raw):
        if not isinstance(raw, (list, set, tuple)):
            return None
        items = [str(item).strip().lower().lstrip(".") for item in raw]
        return [item for item in items if item] or None

    def _coerce_providers(raw):
        if not isinstance(raw, dict):
            return None
        providers = {
            str(zone).strip().lower().lstrip("."): str(name).strip()
            for zone, name in raw.items()
            if str(zone or "").strip() and str(name or "").strip()
        }
        return providers or None

    return {
        "suspicious_tlds": _coerce_domain_list(data.get("suspicious_tlds")),
        "reference_domains": _coerce_domain_list(data.get("reference_domains")),
        "safe_domains": _coerce_domain_list(data.get("safe_domains")),
        "ddns_providers": _coerce_providers(data.get("ddns_providers")),
    }


def _env_bool(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    heuristics = _load_heuristics(config_dir)
    suspicious_tlds = heuristics.get("suspicious_tlds")
    reference_domains = heuristics.get("reference_domains")
    safe_domains = heuristics.get("safe_domains")

    return Config(
        config_dir=config_dir,
        nrd_threshold_days=int(os.getenv("NRD_THRESHOLD_DAYS", "30")),
        nrd_enable_rdap=_env_bool("NRD_ENABLE_RDAP"),
        rdap_timeout=float(os.getenv("RDAP_TIMEOUT", "5")),
        rdap_min_qpm=int(os.getenv("RDAP_MIN_QPM", "30")),
        rdap_max_qpm=int(os.getenv("RDAP_MAX_QPM", "120")),
        rdap_error_cache_seconds=float(os.getenv("RDAP_ERROR_CACHE_SECONDS", "300")),
        nrd_suspicious_threshold=int(os.getenv("NRD_SUSPICIOUS_THRESHOLD", "60")),
        domain_cache_ttl_hours=float(os.getenv("DOMAIN_CACHE_TTL_HOURS", "24")),
        typosquat_threshold=int(os.getenv("TYPOSQUAT_THRESHOLD", "30")),
        typosquat_japanese_homoglyphs=_env_bool("TYPOSQUAT_JAPANESE_HOMOGLYPHS"),
        typosquat_warn_punycode=_env_bool("TYPOSQUAT_WARN_PUNYCODE"),
        threat_analyzer_min_score=int(os.getenv("THREAT_ANALYZER_MIN_SCORE", "30")),
        threat_intel_enabled=_env_bool("THREAT_INTEL_ENABLED"),
        threat_intel_urlhaus=_env_bool("THREAT_INTEL_URLHAUS"),
        threat_intel_cache_ttl_hours=float(os.getenv("THREAT_INTEL_CACHE_TTL_HOURS", "24")),
        threat_intel_confidence_bonus=int(os.getenv("THREAT_INTEL_CONFIDENCE_BONUS", "5")),
        threat_intel_batch_size=int(os.getenv("THREAT_INTEL_BATCH_SIZE", "10")),
        blocklist_urls=_env_list("BLOCKLIST_URLS"),
        alert_severity_filter=[s.lower() for s in _env_list("ALERT_SEVERITY_FILTER", "critical,high")],
        alert_cooldown_seconds=float(os.getenv("ALERT_COOLDOWN_SECONDS", "0")),
        max_concurrent_checks=int(os.getenv("MAX_CONCURRENT_CHECKS", "5")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        suspicious_tlds=set(suspicious_tlds) if suspicious_tlds else set(SUSPICIOUS_TLDS),
        reference_domains=reference_domains or list(DEFAULT_REFERENCE_DOMAINS),
        safe_domains=set(safe_domains) if safe_domains else set(SAFE_DOMAINS),
        ddns_providers=heuristics.get("ddns_providers"),
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []
    if config.nrd_threshold_days < 1:
        errors.append("NRD_THRESHOLD_DAYS must be at least 1")
    if config.rdap_timeout <= 0:
        errors.append("RDAP_TIMEOUT must be positive")
    if config.rdap_min_qpm < 0 or config.rdap_max_qpm < 1:
        errors.append("RDAP_MIN_QPM must be >= 0 and RDAP_MAX_QPM >= 1")
    elif config.rdap_min_qpm > config.rdap_max_qpm:
        errors.append("RDAP_MIN_QPM must not exceed RDAP_MAX_QPM")
    if config.rdap_error_cache_seconds < 0:
        errors.append("RDAP_ERROR_CACHE_SECONDS must not be negative")
    if config.domain_cache_ttl_hours <= 0 or config.threat_intel_cache_ttl_hours <= 0:
        errors.append("Cache TTLs must be positive")
    if not 0 <= config.typosquat_threshold <= 100:
        errors.append("TYPOSQUAT_THRESHOLD must be between 0 and 100")
    if config.threat_intel_confidence_bonus < 0:
        errors.append("THREAT_INTEL_CONFIDENCE_BONUS must not be negative")
    if config.threat_intel_batch_size < 1:
        errors.append("THREAT_INTEL_BATCH_SIZE must be at least 1")
    if config.max_concurrent_checks < 1:
        errors.append("MAX_CONCURRENT_CHECKS must be at least 1")
    if config.alert_cooldown_seconds < 0:
        errors.append("ALERT_COOLDOWN_SECONDS must not be negative")
    for name in config.alert_severity_filter:
        try:
            Severity.parse(name)
        except ValueError:
            errors.append(f"ALERT_SEVERITY_FILTER has unknown severity {name!r}")

    if config.threat_intel_enabled and not (config.threat_intel_urlhaus or config.blocklist or config.blocklist_urls):
        logger.info("No threat feeds or blocklists configured; threat intel will use built-in patterns only")

    return errors
