"""
Suspicious Pattern Analyzer
Scans subject and body text for social-engineering language
"""

import logging
import re
from typing import List, Optional, Pattern, Tuple

from phishfinder.core.models import SuspiciousPattern

logger = logging.getLogger(__name__)

# (category, pattern), scanned in this order
SUSPICIOUS_PATTERNS: List[Tuple[str, Pattern]] = [
    ("Urgency/Threat", re.compile(
        r'\burgent\w*|\bimmediate action\b|\baccounts?\b.*?\bsuspend\w*|\bverif(?:y|ication)\b.*?\baccounts?\b',
        re.IGNORECASE
    )),
    ("Credential Harvesting", re.compile(
        r'\bpasswords?\b|\bcredentials?\b|\blog ?in\b|\bsign in\b',
        re.IGNORECASE
    )),
    ("Financial", re.compile(
        r'\$\s?\d[\d,.]*|\bmoney\b|\bpayments?\b|\btransfer\b|\bbank\b|\baccount\b',
        re.IGNORECASE
    )),
    ("Prize/Reward", re.compile(
        r'\bwon\b|\bwinner\b|\blottery\b|\bprize\b|\breward\b',
        re.IGNORECASE
    )),
]

RESPONSE_REQUEST_PATTERN = re.compile(
    r'\bplease (?:reply|respond|confirm|get back to me)\b'
    r'|\b(?:reply|respond) (?:to this (?:email|message)|asap|immediately|by)\b'
    r'|\blet me know\b'
    r'|\bawaiting your (?:reply|response|confirmation)\b'
    r'|\bconfirm (?:receipt|your (?:details|identity|information))\b'
    r'|\bkindly (?:reply|respond|confirm|send)\b',
    re.IGNORECASE
)


def _unique_matches(pattern: Pattern, text: str) -> List[str]:
    """Literal matches in first-seen order, case-insensitively deduplicated"""
    seen = {}
    for match in pattern.finditer(text):
        literal = match.group(0)
        key = literal.lower()
        if key not in seen:
            seen[key] = literal
    return list(seen.values())


def analyze(subject: Optional[str], body: Optional[str]) -> List[SuspiciousPattern]:
    """
    Find pattern categories present in the subject and body

    Returns:
        One entry per (category, location) with at least one match, subject
        entries first. Empty or missing text yields no entries.
    """
    found: List[SuspiciousPattern] = []

    for location, text in (("subject", subject), ("body", body)):
        if not isinstance(text, str) or not text:
            continue
        for category, pattern in SUSPICIOUS_PATTERNS:
            matches = _unique_matches(pattern, text)
            if matches:
                found.append(SuspiciousPattern(type=category, location=location, matches=matches))

    if found:
        logger.debug(f"Matched {len(found)} suspicious pattern groups")
    return found


def distinct_categories(patterns: List[SuspiciousPattern]) -> List[str]:
    return list(dict.fromkeys(p.type for p in patterns))


def requires_response(subject: Optional[str], body: Optional[str]) -> bool:
    """True when the message explicitly asks the reader to reply or confirm"""
    text = " ".join(t for t in (subject, body) if isinstance(t, str))
    return bool(RESPONSE_REQUEST_PATTERN.search(text))
