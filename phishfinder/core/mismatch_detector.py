"""
Link Mismatch Detector
Flags anchors whose visible URL or address names a different domain than the
link target
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from phishfinder.core.models import UrlMismatch

logger = logging.getLogger(__name__)

LOOKS_LIKE_URL = re.compile(
    r'^(https?://)?([\w\-.]+\.[a-z]{2,}|(?:\d{1,3}\.){3}\d{1,3})(:\d+)?([/?#].*)?$',
    re.IGNORECASE
)

LOOKS_LIKE_EMAIL = re.compile(
    r'^(?:mailto:)?[\w.%+-]+@([\w-]+(?:\.[\w-]+)+)$',
    re.IGNORECASE
)


def _strip_www(domain: str) -> str:
    return domain[4:] if domain.startswith("www.") else domain


def label_domain(label: str) -> Optional[str]:
    """Domain named by a link label, or None if the label is not URL/email shaped"""
    label = label.strip()
    email_match = LOOKS_LIKE_EMAIL.match(label)
    if email_match:
        return email_match.group(1).lower()

    if not LOOKS_LIKE_URL.match(label):
        return None

    candidate = label if re.match(r'^https?://', label, re.IGNORECASE) else f"https://{label}"
    host = urlparse(candidate).hostname
    return host.lower() if host else None


def target_domain(href: str) -> Optional[str]:
    """Domain of a link target; None for schemes other than mailto and http(s)"""
    href = href.strip()
    lowered = href.lower()

    if lowered.startswith("mailto:"):
        address = href[len("mailto:"):].split("?", 1)[0].split(",", 1)[0]
        if "@" not in address:
            return None
        domain = address.rsplit("@", 1)[1].strip().lower()
        return domain or None

    if lowered.startswith(("http://", "https://")):
        host = urlparse(href).hostname
        return host.lower() if host else None

    return None


def is_mismatch(label: str, display_domain: str, actual_domain: str) -> bool:
    if _strip_www(display_domain) == _strip_www(actual_domain):
        return False
    # Label already mentions the real target, e.g. a tracking redirect on the same site
    return actual_domain.lower() not in label.lower()


def detect_mismatches(html_content: str) -> List[UrlMismatch]:
    """
    Find anchors whose displayed URL or address disagrees with the href

    Args:
        html_content: HTML-preserving view of the email body

    Returns:
        One UrlMismatch per offending anchor. Anchors that cannot be parsed
        are logged and skipped.
    """
    if not isinstance(html_content, str) or not html_content:
        return []

    soup = BeautifulSoup(html_content, "html.parser")
    mismatches: List[UrlMismatch] = []

    for anchor in soup.find_all("a", href=True):
        href = anchor.get("href")
        label = anchor.get_text(strip=True)
        if not isinstance(href, str) or not href.strip() or not label:
            continue

        try:
            display_domain = label_domain(label)
            if not display_domain:
                continue
            actual_domain = target_domain(href)
            if not actual_domain:
                continue
        except ValueError as e:
            logger.warning(f"Skipping unparsable link {href[:100]!r}: {e}")
            continue

        if is_mismatch(label, display_domain, actual_domain):
            mismatches.append(UrlMismatch(
                displayed_url=label,
                actual_url=href.strip(),
                display_domain=display_domain,
                actual_domain=actual_domain
            ))

    if mismatches:
        logger.info(f"Detected {len(mismatches)} link mismatches")
    return mismatches
