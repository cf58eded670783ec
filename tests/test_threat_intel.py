"""Tests for blocklists, URLhaus lookups and threat-intel aggregation."""

import asyncio

import aiohttp
import pytest

from zerotrust.intel.aggregator import ThreatIntelAggregator, ThreatIntelConfig, merge_results
from zerotrust.intel.blocklist import Blocklist, parse_blocklist_text
from zerotrust.intel.models import (
    IndicatorType,
    ThreatCategory,
    ThreatCheckResult,
    ThreatSeverity,
    ThreatSource,
)
from zerotrust.intel.urlhaus import URLhausFeed, parse_urlhaus_host_response, parse_urlhaus_url_response


class _FakeResponse:
    def __init__(self, status: int, payload: dict | str):
        self.status = status
        self._payload = payload

    async def json(self):
        if not isinstance(self._payload, dict):
            raise TypeError("Response payload is not JSON")
        return self._payload

    async def text(self):
        if isinstance(self._payload, str):
            return self._payload
        return ""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _FakeSession:
    def __init__(self, *, get_payload_fn=None, post_status: int = 200, post_payload: dict | None = None):
        self._get_payload_fn = get_payload_fn
        self._post_status = post_status
        self._post_payload = post_payload or {}
        self.get_calls: list[str] = []
        self.post_calls: list[tuple[str, dict]] = []

    def get(self, url, headers=None, timeout=None):
        self.get_calls.append(url)
        status, payload = self._get_payload_fn(url)
        return _FakeResponse(status, payload)

    def post(self, url, data=None, headers=None, timeout=None):
        self.post_calls.append((url, data or {}))
        return _FakeResponse(self._post_status, self._post_payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _StaticFeed:
    def __init__(self, name="urlhaus", result=None, error=None, delay=0.0):
        self.name = name
        self.result = result
        self.error = error
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def check_host(self, host):
        self.calls.append(host)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return self.result(host) if callable(self.result) else self.result
        finally:
            self.in_flight -= 1


def _threat(indicator, severity, confidence, category, source, checked_at=0.0):
    return ThreatCheckResult(
        indicator=indicator,
        is_threat=True,
        severity=severity,
        confidence=confidence,
        checked_at=checked_at,
        categories=frozenset({category}),
        sources=frozenset({source}),
    )


def _urlhaus_hit(host):
    return _threat(host, ThreatSeverity.CRITICAL, 85, ThreatCategory.MALWARE, ThreatSource.URLHAUS)


# merge_results


def test_merge_takes_worst_severity_and_unions_sources():
    merged = merge_results(
        "bad.example",
        [
            _threat("bad.example", ThreatSeverity.CRITICAL, 70, ThreatCategory.MALWARE, ThreatSource.URLHAUS),
            _threat("bad.example", ThreatSeverity.LOW, 40, ThreatCategory.PHISHING, ThreatSource.BLOCKLIST),
            None,
        ],
        checked_at=1.0,
    )

    assert merged.is_threat is True
    assert merged.severity == ThreatSeverity.CRITICAL
    assert merged.categories == {ThreatCategory.MALWARE, ThreatCategory.PHISHING}
    assert merged.sources == {ThreatSource.URLHAUS, ThreatSource.BLOCKLIST}
    assert merged.confidence == 75


def test_merge_confidence_is_capped_and_bonus_configurable():
    results = [
        _threat("x.example", ThreatSeverity.HIGH, 98, ThreatCategory.MALWARE, ThreatSource.URLHAUS),
        _threat("x.example", ThreatSeverity.HIGH, 60, ThreatCategory.MALWARE, ThreatSource.BLOCKLIST),
        _threat("x.example", ThreatSeverity.HIGH, 60, ThreatCategory.MALWARE, ThreatSource.INTERNAL),
    ]
    assert merge_results("x.example", results, 0.0).confidence == 100
    assert merge_results("x.example", results, 0.0, confidence_bonus=0).confidence == 98
    assert merge_results("x.example", results[1:], 0.0, confidence_bonus=10).confidence == 70


def test_merge_without_threats_is_neutral():
    clean = ThreatCheckResult("ok.example", False, ThreatSeverity.INFO, 0, 0.0)
    merged = merge_results("ok.example", [None, clean], checked_at=5.0)

    assert merged.is_threat is False
    assert merged.severity == ThreatSeverity.INFO
    assert merged.confidence == 0
    assert merged.checked_at == 5.0


def test_result_to_dict_is_json_friendly():
    data = _urlhaus_hit("bad.example").to_dict()
    assert data["severity"] == "critical"
    assert data["categories"] == ["malware"]
    assert data["sources"] == ["urlhaus"]


# Blocklist


def test_parse_blocklist_text_accepts_hosts_format():
    text = "# comment\n// another\n0.0.0.0 Bad.Example.\nevil.net\nnot_a_domain\n\n"
    assert parse_blocklist_text(text) == ["bad.example", "evil.net"]


def test_blocklist_skips_safe_domains(clock):
    blocklist = Blocklist(clock=clock)
    added = blocklist.add_domains(["evil.net", "google.com", "mail.google.com", "evil.net"])

    assert added == 1
    assert "evil.net" in blocklist
    assert "google.com" not in blocklist


def test_blocklist_direct_and_parent_matches(clock):
    blocklist = Blocklist(clock=clock)
    blocklist.add_domains(["evil.net"])

    direct = blocklist.check_blocklist("evil.net")
    assert direct.confidence == 80
    assert direct.severity == ThreatSeverity.HIGH
    assert direct.categories == {ThreatCategory.MALWARE}

    parent = blocklist.check_blocklist("cdn.login.evil.net")
    assert parent.confidence == 75
    assert parent.details["matched"] == "evil.net"

    assert blocklist.check_blocklist("notevil.net") is None


def test_malicious_patterns_ignore_safe_domains(clock):
    blocklist = Blocklist(clock=clock)

    hit = blocklist.check_malicious_patterns("login-paypal.example.net")
    assert hit.severity == ThreatSeverity.MEDIUM
    assert hit.confidence == 60
    assert hit.sources == {ThreatSource.INTERNAL}

    assert blocklist.check_malicious_patterns("secure-login.google.com") is None
    assert blocklist.check_malicious_patterns("example.org") is None


@pytest.mark.asyncio
async def test_blocklist_update_from_urls(monkeypatch, clock):
    def payload_for(url):
        if url.endswith("bad.txt"):
            return 500, ""
        return 200, "0.0.0.0 bad.example\n# comment\nevil.net\ngoogle.com\n"

    session = _FakeSession(get_payload_fn=payload_for)
    monkeypatch.setattr(aiohttp, "ClientSession", lambda *args, **kwargs: session)

    blocklist = Blocklist(clock=clock)
    size = await blocklist.update_from_urls(["https://lists.example/hosts.txt", "https://lists.example/bad.txt"])

    assert size == 2
    assert blocklist.last_updated == clock()
    assert session.get_calls == ["https://lists.example/hosts.txt", "https://lists.example/bad.txt"]


# URLhaus


def test_parse_urlhaus_no_results():
    result = parse_urlhaus_host_response("ok.example", {"query_status": "no_results"}, 1.0)
    assert result.is_threat is False
    assert result.sources == {ThreatSource.URLHAUS}


def test_parse_urlhaus_severity_by_online_urls():
    offline = {"query_status": "ok", "url_count": "2", "urls": [{"threat": "malware_download", "url_status": "offline"}] * 2}
    result = parse_urlhaus_host_response("bad.example", offline, 1.0)
    assert result.severity == ThreatSeverity.MEDIUM
    assert result.confidence == 60

    online = {"query_status": "ok", "urls": [{"threat": "phishing", "url_status": "online"}]}
    result = parse_urlhaus_host_response("bad.example", online, 1.0)
    assert result.severity == ThreatSeverity.HIGH
    assert result.confidence == 85
    assert result.categories == {ThreatCategory.PHISHING}

    assert parse_urlhaus_host_response("bad.example", "oops", 1.0) is None


@pytest.mark.asyncio
async def test_urlhaus_feed_posts_host(monkeypatch, clock):
    payload = {
        "query_status": "ok",
        "url_count": 7,
        "urls": [{"threat": "malware_download", "url_status": "online"}] * 7,
    }
    session = _FakeSession(post_payload=payload)
    monkeypatch.setattr(aiohttp, "ClientSession", lambda *args, **kwargs: session)

    result = await URLhausFeed(clock=clock).check_host("bad.example")

    assert session.post_calls == [("https://urlhaus-api.abuse.ch/v1/host/", {"host": "bad.example"})]
    assert result.is_threat is True
    assert result.severity == ThreatSeverity.CRITICAL
    assert result.details == {"url_count": 7, "online_urls": 7}
    assert result.checked_at == clock()


@pytest.mark.asyncio
async def test_urlhaus_feed_http_error_has_no_opinion(monkeypatch):
    session = _FakeSession(post_status=502)
    monkeypatch.setattr(aiohttp, "ClientSession", lambda *args, **kwargs: session)

    assert await URLhausFeed().check_host("bad.example") is None


@pytest.mark.asyncio
async def test_urlhaus_feed_posts_url(monkeypatch, clock):
    payload = {"query_status": "ok", "url_status": "online", "threat": "malware_download"}
    session = _FakeSession(post_payload=payload)
    monkeypatch.setattr(aiohttp, "ClientSession", lambda *args, **kwargs: session)

    result = await URLhausFeed(clock=clock).check_url("http://bad.example/payload.exe")

    assert session.post_calls == [
        ("https://urlhaus-api.abuse.ch/v1/url/", {"url": "http://bad.example/payload.exe"})
    ]
    assert result.indicator == "http://bad.example/payload.exe"
    assert result.indicator_type == IndicatorType.URL
    assert result.severity == ThreatSeverity.HIGH
    assert result.confidence == 90
    assert result.categories == {ThreatCategory.MALWARE}


def test_parse_urlhaus_url_response():
    offline = parse_urlhaus_url_response(
        "http://x.example/a", {"query_status": "ok", "url_info": {"url_status": "offline", "threat": "phishing"}}, 1.0
    )
    assert offline.severity == ThreatSeverity.MEDIUM
    assert offline.confidence == 70
    assert offline.categories == {ThreatCategory.PHISHING}

    ransom = parse_urlhaus_url_response(
        "http://x.example/b", {"query_status": "ok", "url_status": "online", "threat": "ransomware"}, 1.0
    )
    assert ransom.severity == ThreatSeverity.CRITICAL

    unknown = parse_urlhaus_url_response("http://x.example/c", {"query_status": "no_results"}, 1.0)
    assert unknown.is_threat is False
    assert unknown.indicator_type == IndicatorType.URL
    assert parse_urlhaus_url_response("http://x.example/c", [], 1.0) is None


# Aggregator


@pytest.mark.asyncio
async def test_aggregator_merges_blocklist_and_feed(clock):
    blocklist = Blocklist(clock=clock)
    blocklist.add_domains(["bad.example"])
    feed = _StaticFeed(result=_urlhaus_hit)
    aggregator = ThreatIntelAggregator(blocklist=blocklist, feeds=[feed], clock=clock)

    result = await aggregator.check_domain("https://bad.example/login")

    assert feed.calls == ["bad.example"]
    assert result.severity == ThreatSeverity.CRITICAL
    assert result.sources == {ThreatSource.BLOCKLIST, ThreatSource.URLHAUS}
    assert result.confidence == 90
    assert result.cached is False


@pytest.mark.asyncio
async def test_failing_feed_is_treated_as_no_opinion(clock):
    blocklist = Blocklist(clock=clock)
    blocklist.add_domains(["bad.example"])
    feed = _StaticFeed(error=RuntimeError("boom"))
    aggregator = ThreatIntelAggregator(blocklist=blocklist, feeds=[feed], clock=clock)

    result = await aggregator.check_domain("bad.example")

    assert result.is_threat is True
    assert result.sources == {ThreatSource.BLOCKLIST}
    assert result.confidence == 80


@pytest.mark.asyncio
async def test_aggregator_caches_until_expiry(clock):
    feed = _StaticFeed(result=_urlhaus_hit)
    aggregator = ThreatIntelAggregator(ThreatIntelConfig(cache_expiry=300), feeds=[feed], clock=clock)

    await aggregator.check_domain("bad.example")
    cached = await aggregator.check_domain("BAD.example")
    assert cached.cached is True
    assert len(feed.calls) == 1

    clock.advance(301)
    fresh = await aggregator.check_domain("bad.example")
    assert fresh.cached is False
    assert len(feed.calls) == 2


@pytest.mark.asyncio
async def test_disabled_aggregator_returns_neutral(clock):
    feed = _StaticFeed(result=_urlhaus_hit)
    aggregator = ThreatIntelAggregator(ThreatIntelConfig(enabled=False), feeds=[feed], clock=clock)

    result = await aggregator.check_domain("bad.example")

    assert result.is_threat is False
    assert feed.calls == []


class _UrlFeed(_StaticFeed):
    def __init__(self, url_result=None, **kwargs):
        super().__init__(**kwargs)
        self.url_result = url_result
        self.url_calls: list[str] = []

    async def check_url(self, url):
        self.url_calls.append(url)
        return self.url_result


@pytest.mark.asyncio
async def test_check_url_merges_host_blocklist_with_url_feed(clock):
    blocklist = Blocklist(clock=clock)
    blocklist.add_domains(["bad.example"])
    url = "https://bad.example/invoice.js"
    feed = _UrlFeed(url_result=_threat(url, ThreatSeverity.CRITICAL, 85, ThreatCategory.MALWARE, ThreatSource.URLHAUS))
    aggregator = ThreatIntelAggregator(blocklist=blocklist, feeds=[feed], clock=clock)

    result = await aggregator.check_url(url)

    assert feed.url_calls == [url]
    assert feed.calls == []
    assert result.indicator == url
    assert result.indicator_type == IndicatorType.URL
    assert result.severity == ThreatSeverity.CRITICAL
    assert result.sources == {ThreatSource.BLOCKLIST, ThreatSource.URLHAUS}
    assert result.confidence == 90

    cached = await aggregator.check_url(url)
    assert cached.cached is True
    assert feed.url_calls == [url]


@pytest.mark.asyncio
async def test_check_url_skips_host_only_feeds(clock):
    feed = _StaticFeed(result=_urlhaus_hit)
    aggregator = ThreatIntelAggregator(feeds=[feed], clock=clock)

    result = await aggregator.check_url("https://clean.example/page")

    assert result.is_threat is False
    assert result.indicator_type == IndicatorType.URL
    assert feed.calls == []


@pytest.mark.asyncio
async def test_check_domains_limits_batch_concurrency(clock):
    feed = _StaticFeed(result=None, delay=0.01)
    aggregator = ThreatIntelAggregator(ThreatIntelConfig(batch_size=2), feeds=[feed], clock=clock)
    domains = ["a.example", "b.example", "c.example", "d.example", "e.example", "a.example"]

    results = await aggregator.check_domains(domains)

    assert list(results) == ["a.example", "b.example", "c.example", "d.example", "e.example"]
    assert feed.max_in_flight <= 2
    assert len(feed.calls) == 5


@pytest.mark.asyncio
async def test_threat_summary_counts(clock):
    blocklist = Blocklist(clock=clock)
    blocklist.add_domains(["blocked.example"])
    feed = _StaticFeed(result=lambda host: _urlhaus_hit(host) if host == "urlhaus.example" else None)
    aggregator = ThreatIntelAggregator(blocklist=blocklist, feeds=[feed], clock=clock)

    summary = await aggregator.get_threat_summary(["blocked.example", "urlhaus.example", "clean.example"])

    assert summary.to_dict() == {
        "total": 3,
        "threats": 2,
        "critical": 1,
        "high": 1,
        "medium": 0,
        "low": 0,
        "categories": {"malware": 2},
    }


@pytest.mark.asyncio
async def test_initialize_downloads_configured_blocklists(monkeypatch, clock):
    session = _FakeSession(get_payload_fn=lambda url: (200, "evil.net\n"))
    monkeypatch.setattr(aiohttp, "ClientSession", lambda *args, **kwargs: session)

    config = ThreatIntelConfig(blocklist_urls=["https://lists.example/hosts.txt"])
    aggregator = ThreatIntelAggregator(config, feeds=[], clock=clock)

    assert await aggregator.initialize() == 1
    result = await aggregator.check_domain("www.evil.net")
    assert result.is_threat is True


@pytest.mark.asyncio
async def test_initialize_skips_download_without_urls(monkeypatch, clock):
    def _fail(*args, **kwargs):
        raise AssertionError("no download expected")

    monkeypatch.setattr(aiohttp, "ClientSession", _fail)
    aggregator = ThreatIntelAggregator(feeds=[], clock=clock)
    assert await aggregator.initialize() == 0
