"""Dynamic DNS provider zones.

Free DDNS subdomains are cheap to spin up and are a common home for
command-and-control endpoints and short-lived phishing pages.
"""

from __future__ import annotations

from typing import Mapping, Optional

from ..utils.domains import matches_domain_or_subdomain
from .models import DDNSInfo

DDNS_PROVIDERS: dict[str, str] = {
    # No-IP
    "ddns.net": "No-IP",
    "hopto.org": "No-IP",
    "zapto.org": "No-IP",
    "sytes.net": "No-IP",
    "serveftp.com": "No-IP",
    "servehttp.com": "No-IP",
    "myftp.biz": "No-IP",
    "myftp.org": "No-IP",
    "no-ip.org": "No-IP",
    "no-ip.biz": "No-IP",
    "no-ip.info": "No-IP",
    "redirectme.net": "No-IP",
    "servebeer.com": "No-IP",
    "serveblog.net": "No-IP",
    "servegame.com": "No-IP",
    "webhop.me": "No-IP",
    # DuckDNS
    "duckdns.org": "DuckDNS",
    # Dyn
    "dyndns.org": "DynDNS",
    "dyndns.com": "DynDNS",
    "dynalias.com": "DynDNS",
    "homeip.net": "DynDNS",
    "dnsalias.com": "DynDNS",
    "dnsalias.net": "DynDNS",
    # Dynu
    "dynu.com": "Dynu",
    "dynu.net": "Dynu",
    "freeddns.org": "Dynu",
    "mywire.org": "Dynu",
    # FreeDNS (afraid.org)
    "afraid.org": "FreeDNS",
    "mooo.com": "FreeDNS",
    "us.to": "FreeDNS",
    "chickenkiller.com": "FreeDNS",
    "strangled.net": "FreeDNS",
    # ChangeIP
    "changeip.com": "ChangeIP",
    "changeip.net": "ChangeIP",
    "dns04.com": "ChangeIP",
    # DNS Exit
    "dnsexit.com": "DNS Exit",
    "linkpc.net": "DNS Exit",
    # Others
    "ydns.eu": "YDNS",
    "nsupdate.info": "nsupdate.info",
    "spdns.de": "Securepoint",
    "spdns.org": "Securepoint",
    "synology.me": "Synology",
    "myds.me": "Synology",
    "myqnapcloud.com": "QNAP",
    "3utilities.com": "No-IP",
    "trycloudflare.com": "Cloudflare Tunnel",
    "ngrok.io": "ngrok",
    "ngrok-free.app": "ngrok",
    "ngrok.app": "ngrok",
    "serveo.net": "Serveo",
    "loca.lt": "localtunnel",
    "dedyn.io": "deSEC",
    "freemyip.com": "FreeMyIP",
    "dynv6.net": "dynv6",
    "ddnss.de": "ddnss.de",
    "twilightparadox.com": "FreeDNS",
}


def check_ddns(domain: str, providers: Optional[Mapping[str, str]] = None) -> DDNSInfo:
    """Return the DDNS provider whose zone equals or contains domain."""
    providers = DDNS_PROVIDERS if providers is None else providers
    matched = matches_domain_or_subdomain(domain, providers)
    if not matched:
        return DDNSInfo()
    return DDNSInfo(is_ddns=True, provider=providers[matched], matched_domain=matched)
