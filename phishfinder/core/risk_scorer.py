"""
Risk Scorer
Weighted, capped 0-100 score over an analyzed email

Three independently capped groups are summed in a fixed order:
    authentication (max 30) -> URLs (max 30) -> content (max 40)
Reasons are reported in the same order.
"""

from typing import List, Optional, Tuple

from phishfinder.core.models import Authentication, EmailRecord, RiskScore
from phishfinder.core.pattern_analyzer import distinct_categories

AUTH_CAP = 30
URL_CAP = 30
CONTENT_CAP = 40
PATTERN_CAP = 20
TOTAL_CAP = 100

RISK_LEVELS = [
    (30, "low"),
    (60, "medium"),
]


def risk_level(score: int) -> str:
    for threshold, level in RISK_LEVELS:
        if score < threshold:
            return level
    return "high"


def authentication_points(auth: Optional[Authentication]) -> Tuple[int, List[str]]:
    # A failed lookup is not evidence against the sender
    if auth is None:
        return 0, []

    points, reasons = 0, []
    if auth.spf.status == "missing":
        points += 10
        reasons.append("SPF authentication failed")
    if auth.dkim.status == "missing":
        points += 10
        reasons.append("DKIM authentication failed")
    if auth.dmarc.status == "none":
        points += 10
        reasons.append("No DMARC policy")
    return min(points, AUTH_CAP), reasons


def url_points(record: EmailRecord) -> Tuple[int, List[str]]:
    points, reasons = 0, []
    if record.flags.safebrowsing_flag:
        points += 15
        reasons.append("Unsafe URLs detected")
    if record.flags.has_url_mismatches:
        points += 10
        reasons.append("URL mismatches found")
    if record.flags.has_external_urls:
        points += 5
        reasons.append("External URLs present")
    return min(points, URL_CAP), reasons


def content_points(record: EmailRecord) -> Tuple[int, List[str]]:
    points, reasons = 0, []

    categories = distinct_categories(record.suspicious_patterns)
    if categories:
        points += min(5 * len(categories), PATTERN_CAP)
        reasons.append(f"{len(categories)} suspicious patterns detected")
    if record.flags.has_multiple_recipients:
        points += 10
        reasons.append("Multiple recipients")
    if record.requires_response:
        points += 10
        reasons.append("Response required")
    return min(points, CONTENT_CAP), reasons


def score(record: EmailRecord) -> RiskScore:
    """Score an analyzed email; deterministic for a given record"""
    total = 0
    reasons: List[str] = []

    for group in (authentication_points(record.authentication), url_points(record), content_points(record)):
        points, group_reasons = group
        total += points
        reasons.extend(group_reasons)

    total = min(total, TOTAL_CAP)
    return RiskScore(score=total, reasons=reasons, risk_level=risk_level(total))
