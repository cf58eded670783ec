"""Typosquat and homograph detection.

Scores a domain on lookalike characters (digit-for-letter swaps, Cyrillic
letters that render like Latin ones, confusable Japanese characters),
mixed-script labels, punycode, and similarity to a reference brand list.
"""

from __future__ import annotations

import logging
import time
import unicodedata
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Optional

import idna
from rapidfuzz import fuzz

from ..cache import CacheStore, MemoryCache
from ..constants import DEFAULT_CACHE_EXPIRY_SECONDS
from ..utils.domains import canonicalize_domain, extract_sld, registered_domain
from .models import (
    DetectionMethod,
    HomoglyphMatch,
    TyposquatBreakdown,
    TyposquatConfidence,
    TyposquatHeuristics,
    TyposquatResult,
)

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_DOMAINS: list[str] = [
    "google.com",
    "gmail.com",
    "youtube.com",
    "microsoft.com",
    "office.com",
    "outlook.com",
    "live.com",
    "apple.com",
    "icloud.com",
    "amazon.com",
    "paypal.com",
    "facebook.com",
    "instagram.com",
    "whatsapp.com",
    "linkedin.com",
    "twitter.com",
    "netflix.com",
    "github.com",
    "dropbox.com",
    "yahoo.com",
    "openai.com",
    "anthropic.com",
    "coinbase.com",
    "binance.com",
    "chase.com",
    "wellsfargo.com",
    "bankofamerica.com",
    "rakuten.co.jp",
    "mercari.com",
    "line.me",
]

# Digits standing in for letters (g00gle, paypa1).
LATIN_DIGIT_HOMOGLYPHS = {
    "0": "o",
    "1": "l",
    "3": "e",
    "4": "a",
    "5": "s",
    "7": "t",
    "8": "b",
    "9": "g",
}
# Alternate reading of ambiguous digits, used only when matching brands.
LATIN_DIGIT_ALTERNATES = {"1": "i"}

# Latin letter pairs that render like a single letter.
LATIN_SEQUENCE_LOOKALIKES = {"rn": "m", "vv": "w"}

# Cyrillic characters that look like Latin
CYRILLIC_HOMOGLYPHS = {
    "а": "a",
    "в": "b",
    "е": "e",
    "к": "k",
    "м": "m",
    "н": "h",
    "о": "o",
    "р": "p",
    "с": "c",
    "т": "t",
    "у": "y",
    "х": "x",
    "ѕ": "s",
    "і": "i",
    "ј": "j",
    "ԁ": "d",
    "һ": "h",
    "ԛ": "q",
    "ԝ": "w",
    "ӏ": "l",
}

# Confusable pairs across kana and kanji.
JAPANESE_HOMOGLYPHS = {
    "ロ": "口",
    "口": "ロ",
    "エ": "工",
    "工": "エ",
    "カ": "力",
    "力": "カ",
    "タ": "夕",
    "夕": "タ",
    "ニ": "二",
    "二": "ニ",
    "ハ": "八",
    "八": "ハ",
    "ト": "卜",
    "卜": "ト",
    "へ": "ヘ",
    "ヘ": "へ",
    "ー": "一",
    "一": "ー",
}

JAPANESE_SCRIPTS = frozenset({"hiragana", "katakana", "cjk"})

SCORE_WEIGHTS = {
    "latin_homoglyph": 15,
    "latin_homoglyph_cap": 45,
    "cyrillic_homoglyph": 20,
    "cyrillic_homoglyph_cap": 60,
    "japanese_homoglyph": 10,
    "japanese_homoglyph_cap": 30,
    "mixed_script": 30,
    "punycode": 20,
    "brand_exact": 40,
    "brand_similar": 20,
}

BRAND_SIMILARITY_THRESHOLD = 85
BRAND_MIN_LENGTH = 5


@dataclass
class TyposquatConfig:
    heuristic_threshold: int = 30
    cache_expiry: float = DEFAULT_CACHE_EXPIRY_SECONDS
    detect_japanese_homoglyphs: bool = True
    warn_on_punycode: bool = True
    reference_domains: list[str] = field(default_factory=lambda: list(DEFAULT_REFERENCE_DOMAINS))


def get_character_script(ch: str) -> str:
    """Classify a character by script; digits count as Latin."""
    if not ch:
        return "common"
    if ch.isascii():
        return "latin" if ch.isalnum() else "common"
    code = ord(ch)
    if 0x0400 <= code <= 0x052F:
        return "cyrillic"
    if 0x0370 <= code <= 0x03FF:
        return "greek"
    if 0x3040 <= code <= 0x309F:
        return "hiragana"
    if 0x30A0 <= code <= 0x30FF or 0xFF66 <= code <= 0xFF9F:
        return "katakana"
    if 0x4E00 <= code <= 0x9FFF or 0x3400 <= code <= 0x4DBF:
        return "cjk"
    if 0x00C0 <= code <= 0x024F:
        return "latin"
    return "common"


def detect_scripts(text: str) -> set[str]:
    return {s for s in (get_character_script(ch) for ch in text or "") if s != "common"}


def is_suspicious_mixed_script(scripts: Iterable[str]) -> bool:
    """Latin mixed with Cyrillic or Greek is suspicious; Japanese mixes are normal."""
    scripts = set(scripts)
    if len(scripts) <= 1:
        return False
    if scripts <= JAPANESE_SCRIPTS | {"latin"}:
        return False
    return True


def is_punycode_domain(domain: str) -> bool:
    return any(label.startswith("xn--") for label in (domain or "").lower().split("."))


def decode_punycode(domain: str) -> str:
    """Decode xn-- labels to Unicode, leaving undecodable labels as-is."""
    labels = []
    for label in (domain or "").split("."):
        if label.lower().startswith("xn--"):
            try:
                label = idna.decode(label)
            except (idna.IDNAError, UnicodeError):
                try:
                    label = label[4:].encode("ascii").decode("punycode")
                except UnicodeError:
                    logger.debug(f"Could not decode punycode label {label}")
        labels.append(label)
    return ".".join(labels)


def normalize_homoglyphs(label: str) -> str:
    """Map lookalike characters to a Latin skeleton."""
    out = []
    for ch in (label or "").lower():
        out.append(LATIN_DIGIT_HOMOGLYPHS.get(ch) or CYRILLIC_HOMOGLYPHS.get(ch) or ch)
    return "".join(out)


def _skeletons(label: str) -> set[str]:
    primary = normalize_homoglyphs(label)
    variants = {primary}
    alternate = "".join(LATIN_DIGIT_ALTERNATES.get(ch, ch) for ch in (label or "").lower())
    variants.add(normalize_homoglyphs(alternate))
    for seq, repl in LATIN_SEQUENCE_LOOKALIKES.items():
        for variant in list(variants):
            if seq in variant:
                variants.add(variant.replace(seq, repl))
    return variants


def find_brand_match(
    domain: str, reference_domains: Iterable[str]
) -> tuple[Optional[str], float, bool]:
    """
    Compare a domain's label against reference brands.

    Returns (target_domain, similarity, exact_skeleton_match). The genuine
    brand domain and same-label registrations under other suffixes never
    match.
    """
    registered = registered_domain(domain)
    label = extract_sld(registered or domain)
    if not label:
        return None, 0.0, False

    skeletons = _skeletons(label)
    best: tuple[Optional[str], float, bool] = (None, 0.0, False)
    for reference in reference_domains:
        reference = reference.lower()
        if registered == reference:
            return None, 0.0, False
        brand = extract_sld(reference)
        if not brand or label == brand:
            continue
        if brand in skeletons:
            return reference, 100.0, True
        if len(label) < BRAND_MIN_LENGTH:
            continue
        similarity = max(fuzz.ratio(s, brand) for s in skeletons)
        if similarity >= BRAND_SIMILARITY_THRESHOLD and similarity > best[1]:
            best = (reference, float(similarity), False)
    return best


def _find_latin_homoglyphs(domain: str) -> list[HomoglyphMatch]:
    """Digits sitting next to a letter inside a label."""
    matches = []
    for idx, ch in enumerate(domain):
        looks_like = LATIN_DIGIT_HOMOGLYPHS.get(ch)
        if not looks_like:
            continue
        left = domain[idx - 1] if idx > 0 else ""
        right = domain[idx + 1] if idx + 1 < len(domain) else ""
        if left.isalpha() or right.isalpha():
            matches.append(HomoglyphMatch(ch, looks_like, idx, "latin_digit"))
    return matches


def _find_script_homoglyphs(domain: str, detect_japanese: bool) -> list[HomoglyphMatch]:
    matches = []
    offset = 0
    for label in domain.split("."):
        japanese_mix = len(detect_scripts(label) & JAPANESE_SCRIPTS) >= 2
        for i, ch in enumerate(label):
            if ch in CYRILLIC_HOMOGLYPHS:
                matches.append(HomoglyphMatch(ch, CYRILLIC_HOMOGLYPHS[ch], offset + i, "cyrillic"))
            elif detect_japanese and japanese_mix and ch in JAPANESE_HOMOGLYPHS:
                matches.append(HomoglyphMatch(ch, JAPANESE_HOMOGLYPHS[ch], offset + i, "japanese"))
        offset += len(label) + 1
    return matches


def score_to_confidence(score: int) -> TyposquatConfidence:
    if score >= 70:
        return TyposquatConfidence.HIGH
    if score >= 40:
        return TyposquatConfidence.MEDIUM
    if score >= 20:
        return TyposquatConfidence.LOW
    return TyposquatConfidence.NONE


class TyposquatDetector:
    """Offline typosquat detector with a lazily expiring result cache."""

    def __init__(
        self,
        config: Optional[TyposquatConfig] = None,
        cache: Optional[CacheStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or TyposquatConfig()
        self.cache = cache if cache is not None else MemoryCache()
        self.clock = clock

    @staticmethod
    def normalize(domain: str) -> str:
        host = canonicalize_domain(domain)
        return unicodedata.normalize("NFKC", decode_punycode(host)).lower()

    def check_domain_sync(self, domain: str) -> TyposquatHeuristics:
        """Run all typosquat heuristics; pure, no cache."""
        host = canonicalize_domain(domain)
        if not host:
            return TyposquatHeuristics()

        punycode = is_punycode_domain(host)
        decoded = self.normalize(host)
        # The public suffix carries no lookalike signal.
        suffix_start = decoded.rfind(".")
        body = decoded[:suffix_start] if suffix_start > 0 else decoded

        latin = _find_latin_homoglyphs(body)
        script = _find_script_homoglyphs(body, self.config.detect_japanese_homoglyphs)
        cyrillic = [m for m in script if m.type == "cyrillic"]
        japanese = [m for m in script if m.type == "japanese"]

        scripts: set[str] = set()
        mixed = False
        for label in body.split("."):
            label_scripts = detect_scripts(label)
            scripts |= label_scripts
            mixed = mixed or is_suspicious_mixed_script(label_scripts)

        target, similarity, exact = find_brand_match(decoded, self.config.reference_domains)

        w = SCORE_WEIGHTS
        breakdown = TyposquatBreakdown(
            latin_homoglyphs=min(len(latin) * w["latin_homoglyph"], w["latin_homoglyph_cap"]),
            cyrillic_homoglyphs=min(len(cyrillic) * w["cyrillic_homoglyph"], w["cyrillic_homoglyph_cap"]),
            japanese_homoglyphs=min(len(japanese) * w["japanese_homoglyph"], w["japanese_homoglyph_cap"]),
            mixed_script=w["mixed_script"] if mixed else 0,
            punycode=w["punycode"] if punycode and self.config.warn_on_punycode else 0,
            brand_similarity=(w["brand_exact"] if exact else w["brand_similar"]) if target else 0,
        )
        total = (
            breakdown.latin_homoglyphs
            + breakdown.cyrillic_homoglyphs
            + breakdown.japanese_homoglyphs
            + breakdown.mixed_script
            + breakdown.punycode
            + breakdown.brand_similarity
        )

        return TyposquatHeuristics(
            homoglyphs=latin + script,
            has_mixed_script=mixed,
            detected_scripts=sorted(scripts),
            is_punycode=punycode,
            decoded_domain=decoded if punycode else None,
            target_domain=target,
            similarity=similarity,
            total_score=min(total, 100),
            breakdown=breakdown,
        )

    def _get_cached(self, domain: str) -> Optional[TyposquatResult]:
        cached = self.cache.get(domain)
        if cached is None:
            return None
        if cached.checked_at + self.config.cache_expiry > self.clock():
            return cached
        self.cache.delete(domain)
        return None

    async def check_domain(self, domain: str) -> TyposquatResult:
        """Check a domain for typosquatting. Never raises."""
        host = canonicalize_domain(domain)
        cached = self._get_cached(host)
        if cached is not None:
            logger.debug(f"Typosquat cache hit for {host}")
            return replace(cached, method=DetectionMethod.CACHE)

        heuristics = self.check_domain_sync(host)
        is_typosquat = bool(host) and heuristics.total_score >= self.config.heuristic_threshold
        confidence = score_to_confidence(heuristics.total_score) if is_typosquat else TyposquatConfidence.NONE
        if is_typosquat and confidence == TyposquatConfidence.NONE:
            confidence = TyposquatConfidence.LOW

        result = TyposquatResult(
            domain=host,
            is_typosquat=is_typosquat,
            confidence=confidence,
            method=DetectionMethod.HEURISTIC,
            checked_at=self.clock(),
            heuristics=heuristics,
            normalized_domain=self.normalize(host) if host else "",
        )
        if is_typosquat:
            target = heuristics.target_domain or "unknown brand"
            logger.info(f"Possible typosquat: {host} (score {heuristics.total_score}, target {target})")
        self.cache.set(host, result)
        return result

    def clear_cache(self) -> None:
        self.cache.clear()
