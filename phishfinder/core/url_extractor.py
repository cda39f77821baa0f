"""
URL Extractor
Collects, normalizes and validates URLs from HTML or plain-text email content
"""

import logging
import re
from typing import Dict, Iterable, List
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from phishfinder.core.domain_utils import is_ipv4
from phishfinder.core.models import ExtractedUrl

logger = logging.getLogger(__name__)

# URL-shaped substrings in free text. ';' is allowed so '&amp;' survives
# until normalization unescapes it.
URL_PATTERN = re.compile(
    r'https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b'
    r'(?:[-a-zA-Z0-9()@:%_+.~#?&/=;!,*\']*)',
    re.IGNORECASE
)

HOSTNAME_PATTERN = re.compile(
    r'^(?=.{1,253}$)(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+(?:[a-z]{2,63}|xn--[a-z0-9-]{2,59})$'
)

ALLOWED_SCHEMES = {'http', 'https'}

ORIGIN_PATTERN = re.compile(r'^([a-zA-Z][a-zA-Z0-9+.-]*)://([^/?#]*)(.*)$', re.DOTALL)


def normalize_url(candidate: str) -> str:
    """
    Normalize a raw URL candidate

    Steps run in this order: trim, drop quote and angle-bracket characters,
    cut at the first pipe or whitespace, unescape '&amp;', drop one
    trailing slash, lowercase the scheme and host.
    """
    url = candidate.strip()
    url = re.sub(r'[\'"<>]', '', url)
    url = re.split(r'[|\s]', url, maxsplit=1)[0]
    url = re.sub(r'&amp;', '&', url, flags=re.IGNORECASE)
    if url.endswith('/'):
        url = url[:-1]
    return _lowercase_origin(url)


def _lowercase_origin(url: str) -> str:
    match = ORIGIN_PATTERN.match(url)
    if not match:
        return url
    scheme, netloc, rest = match.groups()
    # Userinfo keeps its case
    userinfo, at, host = netloc.rpartition('@')
    return f"{scheme.lower()}://{userinfo}{at}{host.lower()}{rest}"


def is_valid_url(url: str) -> bool:
    """Absolute http(s) URL with a DNS hostname or IPv4 host"""
    if not url:
        return False
    try:
        parsed = urlparse(url)
        # Accessing .port validates it and raises on garbage
        parsed.port
    except ValueError:
        return False

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False

    host = parsed.hostname
    if not host:
        return False
    if is_ipv4(host):
        return True
    return bool(HOSTNAME_PATTERN.match(host))


def _host_of(url: str) -> str:
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def _trim_text_match(url: str) -> str:
    """Drop sentence punctuation that the text pattern swallows"""
    url = url.rstrip('.,;:!?\'')
    if url.endswith(')') and '(' not in url:
        url = url.rstrip(')')
    return url


def find_text_urls(text: str) -> List[str]:
    """Raw URL candidates in free text, in order of appearance"""
    if not text:
        return []
    return [_trim_text_match(m.group(0)) for m in URL_PATTERN.finditer(text)]


def find_html_urls(html: str) -> List[str]:
    """Raw URL candidates from anchor hrefs followed by URLs in the text"""
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    candidates = [a.get("href") for a in soup.find_all("a", href=True)]
    candidates.extend(find_text_urls(soup.get_text(" ")))
    return [c for c in candidates if isinstance(c, str)]


def _collect(candidates: Iterable[str]) -> List[ExtractedUrl]:
    seen: Dict[str, ExtractedUrl] = {}
    for candidate in candidates:
        url = normalize_url(candidate)
        if url in seen:
            continue
        if not is_valid_url(url):
            logger.debug(f"Dropping malformed URL candidate: {candidate[:100]!r}")
            continue
        seen[url] = ExtractedUrl(url=url, suspicious=is_ipv4(_host_of(url)))
    return list(seen.values())


def extract(content: str, is_html: bool) -> List[ExtractedUrl]:
    """
    Extract the deduplicated, validated URLs in content

    Args:
        content: Raw HTML or plain text
        is_html: Parse as HTML (hrefs plus text URLs) or plain text

    Returns:
        URLs in order of first appearance. ``suspicious`` is set for IPv4
        literal hosts only.
    """
    if not isinstance(content, str) or not content:
        return []
    candidates = find_html_urls(content) if is_html else find_text_urls(content)
    return _collect(candidates)


def merge_extracted(*groups: Iterable[ExtractedUrl]) -> List[ExtractedUrl]:
    """Union of extraction results; first occurrence wins the position"""
    merged: Dict[str, ExtractedUrl] = {}
    for group in groups:
        for item in group:
            existing = merged.get(item.url)
            if existing is None:
                merged[item.url] = ExtractedUrl(url=item.url, suspicious=item.suspicious)
            elif item.suspicious:
                existing.suspicious = True
    return list(merged.values())
