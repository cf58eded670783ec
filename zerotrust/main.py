"""Command-line entry point.

Usage:
    zerotrust check new-phish.xyz --signal hasLogin=true
    zerotrust check example.com paypa1.com --json
    zerotrust analyze secure-login.example.xyz
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any

import yaml
from dotenv import dotenv_values

from .config import Config, load_config, validate_config
from .pipeline import DomainAssessment, SecurityPipeline
from .policy.context import EXTERNAL_SIGNAL_FIELDS
from .reputation.nrd import NRDDetector
from .reputation.threat_analyzer import ThreatAnalyzer
from .reputation.typosquat import TyposquatDetector

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def _load_env_file(path: str) -> None:
    """Load environment variables from a .env-style file."""
    for key, value in dotenv_values(path).items():
        if value is None:
            continue
        os.environ[key] = value


def parse_signals(pairs: list[str]) -> dict[str, Any]:
    """Parse key=value pairs; values are read as YAML scalars (true, 12, [a, b])."""
    signals: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Invalid signal {pair!r}; expected key=value")
        try:
            signals[key] = yaml.safe_load(raw) if raw.strip() else ""
        except yaml.YAMLError:
            signals[key] = raw
        if key not in EXTERNAL_SIGNAL_FIELDS:
            logger.warning(f"Unknown signal {key!r}; policies may not read it")
    return signals


def _format_assessment(result: DomainAssessment) -> str:
    nrd = result.nrd
    age = f"{nrd.domain_age}d" if nrd.domain_age is not None else "unknown"
    lines = [
        f"{result.domain}",
        f"  NRD:        {nrd.is_nrd} (age {age}, confidence {nrd.confidence.value}, via {nrd.method.value})",
        f"  Typosquat:  {result.typosquat.is_typosquat} ({result.typosquat.confidence.value}"
        + (f", target {result.typosquat.heuristics.target_domain}" if result.typosquat.heuristics.target_domain else "")
        + ")",
        f"  Threat:     {result.threat.is_threat} (severity {result.threat.severity}, "
        f"confidence {result.threat.confidence})",
        f"  Patterns:   score {result.analysis.threat_score} ({result.analysis.risk_level.value})",
    ]
    for match in result.analysis.matches:
        lines.append(f"    - {match.description} (+{match.score})")
    lines.append(f"  Violations: {len(result.violations)}")
    for violation in result.violations:
        lines.append(f"    - [{violation.severity}] {violation.rule_id} {violation.rule_name}")
    lines.append(f"  Access:     {'allowed' if result.access.allowed else 'blocked'}")
    for decision in result.access.decisions:
        lines.append(f"    - [{decision.action.value}] {decision.rule_id} matched {decision.matched_pattern}")
    lines.append(f"  Alerts:     {len(result.alerts)}")
    for alert in result.alerts:
        lines.append(f"    - [{alert.severity}] {alert.title}")
    return "\n".join(lines)


async def run_check(config: Config, domains: list[str], signals: dict[str, Any], as_json: bool) -> int:
    pipeline = SecurityPipeline(config)
    await pipeline.initialize()
    results = await pipeline.assess_domains(domains, signals)
    if as_json:
        print(json.dumps([r.to_dict() for r in results], indent=2, default=str))
    else:
        print("\n\n".join(_format_assessment(r) for r in results))
    return 1 if any(r.alerts for r in results) else 0


def run_analyze(config: Config, domains: list[str], as_json: bool) -> int:
    """Offline heuristics only."""
    nrd = NRDDetector(config.nrd_config())
    typosquat = TyposquatDetector(config.typosquat_config())
    analyzer = ThreatAnalyzer(config.analyzer_config())

    output = []
    for domain in domains:
        scores = nrd.check_domain_sync(domain)
        heuristics = typosquat.check_domain_sync(domain)
        analysis = analyzer.analyze(domain)
        output.append(
            {
                "domain": analysis.domain,
                "suspicious_score": scores.total_score,
                "high_risk_name": nrd.is_high_risk(scores),
                "typosquat_score": heuristics.total_score,
                "typosquat_target": heuristics.target_domain,
                "threat_score": analysis.threat_score,
                "risk_level": analysis.risk_level.value,
            }
        )
    if as_json:
        print(json.dumps(output, indent=2))
    else:
        for row in output:
            print(
                f"{row['domain']}: suspicious={row['suspicious_score']} "
                f"typosquat={row['typosquat_score']} threat={row['threat_score']} ({row['risk_level']})"
            )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zerotrust", description="Domain risk checks, policies and alerts.")
    parser.add_argument("--env-file", help="Load environment variables from a file before running.")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Run the full assessment pipeline")
    check.add_argument("domains", nargs="+")
    check.add_argument(
        "--signal",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Page/network signal for policy evaluation (repeatable)",
    )
    check.add_argument("--no-network", action="store_true", help="Skip RDAP and external threat feeds")
    check.add_argument("--json", action="store_true", help="Print JSON")

    analyze = sub.add_parser("analyze", help="Offline name heuristics only")
    analyze.add_argument("domains", nargs="+")
    analyze.add_argument("--json", action="store_true", help="Print JSON")
    return parser


def main(argv=None) -> int:
    """Entry point."""
    args = build_parser().parse_args(argv)
    if args.env_file:
        _load_env_file(args.env_file)

    config = load_config()
    _configure_logging(config.log_level)

    validation_errors = validate_config(config)
    if validation_errors:
        for err in validation_errors:
            logger.error(err)
        return 2

    if args.command == "analyze":
        return run_analyze(config, args.domains, args.json)

    if args.no_network:
        config.nrd_enable_rdap = False
        config.threat_intel_urlhaus = False
        config.blocklist_urls = []
    try:
        signals = parse_signals(args.signal)
    except ValueError as e:
        logger.error(str(e))
        return 2
    return asyncio.run(run_check(config, args.domains, signals, args.json))


if __name__ == "__main__":
    sys.exit(main())
