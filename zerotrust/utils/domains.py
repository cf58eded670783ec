"""Host and registrable-domain helpers built on tldextract."""

from __future__ import annotations

from urllib.parse import urlsplit

import tldextract

# Bundled public suffix snapshot only; lookups never touch the network.
_extract = tldextract.TLDExtract(suffix_list_urls=())


def _clean_host(value: str) -> str:
    return (value or "").strip().lower().strip(".")


def canonicalize_domain(value: str) -> str:
    """
    Reduce a hostname or URL to the bare lowercase host.

    Scheme, credentials, port, path, query, a trailing dot and one leading
    "www." label are dropped: "https://WWW.Example.com:8443/a" -> "example.com".
    """
    text = (value or "").strip()
    if not text:
        return ""
    try:
        host = urlsplit(text if "://" in text else f"//{text}").hostname
    except ValueError:
        host = None
    if not host:
        host = text.split("/", 1)[0].rsplit("@", 1)[-1].split(":", 1)[0]
    host = _clean_host(host)
    return host[4:] if host.startswith("www.") and len(host) > 4 else host


def registered_domain(value: str) -> str:
    """eTLD+1 of a host or URL; the bare host when no public suffix applies."""
    host = canonicalize_domain(value)
    parts = _extract(host) if host else None
    if parts and parts.domain and parts.suffix:
        return f"{parts.domain}.{parts.suffix}"
    return host


def extract_sld(domain: str) -> str:
    """Second-level label: 'example' for www.example.co.uk."""
    host = _clean_host(domain)
    if not host:
        return ""
    return _extract(host).domain or host.split(".")[0]


def extract_tld(domain: str) -> str:
    return _clean_host(domain).rpartition(".")[2]


def parent_domains(domain: str) -> list[str]:
    """
    Every dot-delimited suffix of a host, longest first.

    parent_domains("a.b.example.com") ->
        ["a.b.example.com", "b.example.com", "example.com", "com"]
    """
    host = _clean_host(domain)
    if not host:
        return []
    labels = host.split(".")
    return [".".join(labels[i:]) for i in range(len(labels))]


def matches_domain_or_subdomain(domain: str, zones) -> str | None:
    """Return the zone that equals or is a parent of domain, if any."""
    return next((zone for zone in parent_domains(domain) if zone in zones), None)
