"""
Domain helpers
Root (eTLD+1) extraction, IP literal detection and domain syntax validation
"""

import ipaddress
import logging
import re
from typing import Optional
from urllib.parse import urlparse

import tldextract

logger = logging.getLogger(__name__)

MAX_DOMAIN_LENGTH = 253

# Letters, digits, hyphens and dots; must start and end alphanumeric
DOMAIN_SYNTAX_PATTERN = re.compile(r'^[a-zA-Z0-9](?:[a-zA-Z0-9.-]*[a-zA-Z0-9])?$')

# Uses the bundled public suffix snapshot, no network fetch
_extractor = tldextract.TLDExtract(suffix_list_urls=())


def is_ipv4(host: str) -> bool:
    """Check if host is a literal IPv4 address"""
    if not host:
        return False
    try:
        ipaddress.IPv4Address(host)
        return True
    except ValueError:
        return False


def is_valid_domain(domain: str) -> bool:
    """Syntax check applied before any DNS or WHOIS lookup"""
    if not domain or len(domain) > MAX_DOMAIN_LENGTH:
        return False
    if ".." in domain or "." not in domain:
        return False
    return bool(DOMAIN_SYNTAX_PATTERN.match(domain))


def normalize_host(value: str) -> str:
    """Reduce a URL, address or hostname to a lowercase hostname"""
    value = (value or "").strip().lower()
    if "@" in value and "://" not in value:
        value = value.rsplit("@", 1)[1]
    if "://" in value:
        value = urlparse(value).hostname or ""
    value = value.split("/")[0].split(":")[0]
    return value.rstrip(".")


def extract_root_domain(value: str) -> Optional[str]:
    """
    Registrable domain of a URL, address or hostname

    mail.example.co.uk -> example.co.uk. IP literals are returned as-is.
    Returns None when nothing domain-like can be found.
    """
    host = normalize_host(value)
    if not host:
        return None
    if is_ipv4(host):
        return host

    parts = _extractor(host)
    if parts.domain and parts.suffix:
        return f"{parts.domain}.{parts.suffix}"

    logger.debug(f"Could not derive root domain from {value!r}")
    return host or None


def domain_from_address(address: Optional[str]) -> Optional[str]:
    """Domain part of an email address (display names and brackets allowed)"""
    if not address:
        return None
    match = re.search(r'@([A-Za-z0-9.-]+)', address)
    return match.group(1).lower().rstrip(".") if match else None
