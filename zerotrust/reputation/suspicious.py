"""Offline heuristics for suspicious-looking domain names.

None of these touch the network; they are always available as a fallback
when registration data cannot be fetched.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Mapping, Optional

from ..utils.domains import extract_sld, extract_tld
from .ddns import check_ddns
from .models import SuspiciousDomainScores

# TLDs with outsized abuse rates (free or near-free registration).
SUSPICIOUS_TLDS: frozenset[str] = frozenset(
    {
        "xyz",
        "tk",
        "ml",
        "ga",
        "cf",
        "gq",
        "top",
        "work",
        "click",
        "link",
        "online",
        "site",
        "website",
        "club",
        "icu",
        "buzz",
        "rest",
        "surf",
        "monster",
        "uno",
        "quest",
        "fun",
        "cam",
        "bar",
        "loan",
        "zip",
        "mov",
    }
)

SCORE_WEIGHTS: dict[str, int] = {
    "suspicious_tld": 25,
    "excessive_hyphens": 15,
    "excessive_numbers": 20,
    "random_looking": 25,
    "high_entropy": 15,
    "ddns": 20,
}

HIGH_ENTROPY_THRESHOLD = 0.9
HIGH_ENTROPY_MIN_LENGTH = 10

_VOWELS = set("aeiou")
_CONSONANT_RUN = re.compile(r"[b-df-hj-np-tv-z]{5,}")
_DIGIT_RUN = re.compile(r"\d{4,}")


def calculate_entropy(value: str) -> float:
    """Shannon entropy normalized to [0, 1] by the maximum for its length."""
    if not value or len(value) < 2:
        return 0.0
    length = len(value)
    counts = Counter(value)
    entropy = -sum((n / length) * math.log2(n / length) for n in counts.values())
    max_entropy = math.log2(length)
    if max_entropy <= 0:
        return 0.0
    return max(0.0, min(1.0, entropy / max_entropy))


def has_excessive_hyphens(label: str) -> bool:
    if not label:
        return False
    return (
        label.startswith("-")
        or label.endswith("-")
        or "--" in label
        or label.count("-") >= 3
    )


def has_excessive_numbers(label: str) -> bool:
    if not label:
        return False
    if _DIGIT_RUN.search(label):
        return True
    digits = sum(1 for ch in label if ch.isdigit())
    return digits / len(label) >= 0.3


def is_random_looking(label: str) -> bool:
    """Consonant clusters or vowel-free labels that no dictionary word produces."""
    lowered = (label or "").lower()
    if _CONSONANT_RUN.search(lowered):
        return True
    letters = [ch for ch in lowered if "a" <= ch <= "z"]
    if len(letters) >= 3 and not any(ch in _VOWELS for ch in letters):
        return True
    return False


def calculate_suspicious_score(
    domain: str,
    suspicious_tlds: Optional[frozenset[str]] = None,
    ddns_providers: Optional[Mapping[str, str]] = None,
) -> SuspiciousDomainScores:
    """Compute every heuristic sub-score for a domain and their capped sum."""
    host = (domain or "").strip().lower().strip(".")
    if not host:
        return SuspiciousDomainScores()

    tlds = SUSPICIOUS_TLDS if suspicious_tlds is None else suspicious_tlds
    sld = extract_sld(host)
    tld = extract_tld(host)

    entropy = calculate_entropy(sld)
    suspicious_tld = tld in tlds
    hyphens = has_excessive_hyphens(sld)
    numbers = has_excessive_numbers(sld)
    random_looking = is_random_looking(sld)
    ddns = check_ddns(host, ddns_providers)

    score = 0
    if suspicious_tld:
        score += SCORE_WEIGHTS["suspicious_tld"]
    if hyphens:
        score += SCORE_WEIGHTS["excessive_hyphens"]
    if numbers:
        score += SCORE_WEIGHTS["excessive_numbers"]
    if random_looking:
        score += SCORE_WEIGHTS["random_looking"]
    if entropy >= HIGH_ENTROPY_THRESHOLD and len(sld) >= HIGH_ENTROPY_MIN_LENGTH:
        score += SCORE_WEIGHTS["high_entropy"]
    if ddns.is_ddns:
        score += SCORE_WEIGHTS["ddns"]

    return SuspiciousDomainScores(
        entropy=round(entropy, 4),
        has_suspicious_tld=suspicious_tld,
        has_excessive_hyphens=hyphens,
        has_excessive_numbers=numbers,
        is_random_looking=random_looking,
        is_ddns=ddns.is_ddns,
        ddns_provider=ddns.provider,
        total_score=min(score, 100),
    )


def is_high_risk_domain(scores: SuspiciousDomainScores, threshold: int = 60) -> bool:
    return scores.total_score >= threshold
