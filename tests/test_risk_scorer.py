import pytest

from phishfinder.core.models import (
    Authentication, AuthenticationCheck, EmailRecord, Receiver, SecurityFlags,
    Sender, SuspiciousPattern
)
from phishfinder.core.risk_scorer import risk_level, score


def auth(spf="hardfail", dkim="present", dmarc="reject"):
    return Authentication(
        spf=AuthenticationCheck(record=None if spf == "missing" else "v=spf1 -all", status=spf, present=spf != "missing"),
        dkim=AuthenticationCheck(record=None if dkim == "missing" else "v=DKIM1", status=dkim, present=dkim == "present"),
        dmarc=AuthenticationCheck(record="v=DMARC1", status=dmarc, present=True),
        summary=""
    )


def record(authentication=None, flags=None, patterns=(), requires_response=False):
    return EmailRecord(
        id="msg-1",
        sender=Sender(address="a@example.com", domain="example.com"),
        receiver=Receiver(address="b@example.org"),
        subject="",
        body="",
        timestamp=None,
        authentication=authentication,
        flags=flags or SecurityFlags(),
        suspicious_patterns=list(patterns),
        requires_response=requires_response
    )


def pattern(category, location="body"):
    return SuspiciousPattern(type=category, location=location, matches=["x"])


def test_clean_email_scores_zero():
    result = score(record(authentication=auth()))

    assert result.score == 0
    assert result.reasons == []
    assert result.risk_level == "low"


def test_every_signal_caps_at_one_hundred_with_ordered_reasons():
    flags = SecurityFlags(
        safebrowsing_flag=True,
        has_external_urls=True,
        has_multiple_recipients=True,
        has_suspicious_patterns=True,
        has_url_mismatches=True
    )
    patterns = [pattern(c) for c in ("Urgency/Threat", "Credential Harvesting", "Financial", "Prize/Reward", "Other")]

    result = score(record(auth("missing", "missing", "none"), flags, patterns, requires_response=True))

    assert result.score == 100
    assert result.risk_level == "high"
    assert result.reasons == [
        "SPF authentication failed",
        "DKIM authentication failed",
        "No DMARC policy",
        "Unsafe URLs detected",
        "URL mismatches found",
        "External URLs present",
        "5 suspicious patterns detected",
        "Multiple recipients",
        "Response required",
    ]


def test_lookup_errors_and_missing_authentication_add_nothing():
    assert score(record(authentication=auth("error", "error", "error"))).score == 0
    assert score(record(authentication=None)).score == 0


def test_url_signals():
    result = score(record(auth(), SecurityFlags(safebrowsing_flag=True, has_external_urls=True)))

    assert result.score == 20
    assert result.reasons == ["Unsafe URLs detected", "External URLs present"]


def test_pattern_points_count_distinct_categories_and_cap_at_twenty():
    same_category = [pattern("Financial", "subject"), pattern("Financial", "body")]
    assert score(record(auth(), patterns=same_category)).score == 5

    many = [pattern(f"Category {i}") for i in range(6)]
    assert score(record(auth(), patterns=many)).score == 20


def test_dmarc_none_never_lowers_the_score():
    flags = SecurityFlags(has_url_mismatches=True)
    strict = score(record(auth(dmarc="reject"), flags))
    relaxed = score(record(auth(dmarc="none"), flags))

    assert relaxed.score == strict.score + 10
    assert relaxed.reasons == ["No DMARC policy", "URL mismatches found"]


@pytest.mark.parametrize("flag", [
    "safebrowsing_flag", "has_external_urls", "has_multiple_recipients", "has_url_mismatches"
])
def test_adding_a_signal_is_monotonic(flag):
    base = record(auth(), SecurityFlags(), [pattern("Financial")])
    raised = record(auth(), SecurityFlags(**{flag: True}), [pattern("Financial")])

    assert score(raised).score > score(base).score


@pytest.mark.parametrize("value, level", [(0, "low"), (29, "low"), (30, "medium"), (59, "medium"), (60, "high"), (100, "high")])
def test_risk_levels(value, level):
    assert risk_level(value) == level
