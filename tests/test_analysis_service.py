import pytest
from sqlalchemy.exc import SQLAlchemyError

from phishfinder.core.dns_auth import DnsAuthResolver
from phishfinder.core.exceptions import ConfigurationError, InvalidEmailError
from phishfinder.core.models import ExtractedUrl
from phishfinder.core.threat_checker import STATUS_FAILED, ThreatChecker
from phishfinder.services.analysis_service import EmailAnalysisService, has_external_urls
from phishfinder.services.sender_profile import SenderProfileService
from tests.fakes import (
    GOOD_DOMAIN_RECORDS, SAFE_BROWSING_URL, FakeResolver, FakeResponse,
    FakeSession, safe_browsing_matches
)

PHISHING_HTML = """<html><head><style>.x{}</style></head><body>
<p>URGENT: verify your account immediately.</p>
<a href="https://evil.test/login">https://bank.example.com/login</a>
<a href="http://192.168.1.1/steal">Click here</a>
<p>Visit https://docs.example.com/help today.</p>
<p>Please reply with your password.</p>
</body></html>"""


def phishing_email(**overrides):
    email = {
        "id": "msg-100",
        "sender": {"address": "Alerts <alerts@example.com>"},
        "receiver": {"address": "me@corp.test"},
        "subject": "Action required",
        "htmlBody": PHISHING_HTML,
        "timestamp": "2024-05-01T10:00:00Z",
        "labels": ["INBOX"],
    }
    email.update(overrides)
    return email


class FailingProfiles:
    async def record_email(self, document):
        raise SQLAlchemyError("sender_profiles is locked")


def make_service(store, session=None, api_key="test-key", profiles=None):
    session = session or FakeSession({
        SAFE_BROWSING_URL: safe_browsing_matches({"https://evil.test/login": "SOCIAL_ENGINEERING"})
    })
    checker = ThreatChecker(
        api_key=api_key,
        api_url=SAFE_BROWSING_URL,
        client_id="phishfinder",
        client_version="1.0.0",
        session=session
    )
    return EmailAnalysisService(
        threat_checker=checker,
        dns_resolver=DnsAuthResolver(resolver=FakeResolver(dict(GOOD_DOMAIN_RECORDS))),
        store=store,
        profiles=profiles or SenderProfileService(store)
    )


async def test_phishing_email_end_to_end(store):
    result = await make_service(store).analyze_email(phishing_email())
    record = result.record

    assert [u.url for u in record.extracted_urls] == [
        "https://evil.test/login",
        "http://192.168.1.1/steal",
        "https://bank.example.com/login",
        "https://docs.example.com/help",
    ]
    assert [u.suspicious for u in record.extracted_urls] == [False, True, False, False]
    assert len(record.url_mismatches) == 1
    assert record.url_mismatches[0].display_domain == "bank.example.com"
    assert record.url_mismatches[0].actual_domain == "evil.test"

    assert record.sender.address == "alerts@example.com"
    assert record.sender.domain == "example.com"
    assert record.sender.display_name == "Alerts"
    assert record.authentication.summary == "SPF: Pass, DKIM: Pass, DMARC: Pass"
    assert record.requires_response is True
    assert ".x{}" not in record.body

    assert record.flags.safebrowsing_flag is True
    assert record.flags.has_url_mismatches is True
    assert record.flags.has_external_urls is True
    assert record.flags.has_multiple_recipients is False

    assert record.risk_score.score == 55
    assert record.risk_score.risk_level == "medium"
    assert record.risk_score.reasons == [
        "Unsafe URLs detected",
        "URL mismatches found",
        "External URLs present",
        "3 suspicious patterns detected",
        "Response required",
    ]

    assert result.persistence.created is True
    assert result.persistence.profile_updated is True

    stored = await store.get_email("msg-100")
    assert stored["recordId"] == result.persistence.record_id
    assert stored["riskScore"]["score"] == 55
    assert stored["senderProfileProcessed"] is True

    profile = await store.get_sender_profile("alerts@example.com")
    assert profile["securityMetrics"] == {
        "totalEmails": 1,
        "suspiciousEmails": 1,
        "suspiciousLinkCount": 1,
        "phishingLinkCount": 1,
        "unwantedSoftwareCount": 0,
        "suspiciousKeywordCount": 1,
    }
    assert profile["lastAuthenticationStatus"]["spf"] == "v=spf1 include:_spf.example.com -all"


async def test_resubmitting_an_email_does_not_double_count(store):
    service = make_service(store)

    first = await service.analyze_email(phishing_email())
    second = await service.analyze_email(phishing_email())

    assert second.persistence.created is False
    assert second.persistence.record_id == first.persistence.record_id
    profile = await store.get_sender_profile("alerts@example.com")
    assert profile["securityMetrics"]["totalEmails"] == 1


async def test_resubmitted_id_returns_stored_verdict_without_lookups(store):
    session = FakeSession({
        SAFE_BROWSING_URL: safe_browsing_matches({"https://evil.test/login": "SOCIAL_ENGINEERING"})
    })
    service = make_service(store, session=session)

    first = await service.analyze_email(phishing_email())
    lookups = len(session.calls_to(SAFE_BROWSING_URL))
    second = await service.analyze_email(phishing_email(subject="Something else entirely"))

    assert len(session.calls_to(SAFE_BROWSING_URL)) == lookups
    assert second.persistence.created is False
    assert second.persistence.record_id == first.persistence.record_id
    assert second.record.subject == "Action required"
    assert second.record.risk_score.score == first.record.risk_score.score


async def test_plain_text_body_is_accepted(store):
    email = phishing_email(htmlBody=None, body="Lunch on Friday? Let me know.", id="msg-101")

    record = (await make_service(store).analyze_email(email)).record

    assert record.extracted_urls == []
    assert record.requires_response is True
    assert record.flags.safebrowsing_flag is False


@pytest.mark.parametrize("overrides", [
    {"htmlBody": None, "body": None},
    {"htmlBody": "   "},
    {"htmlBody": 42},
    {"id": ""},
])
async def test_invalid_email_is_rejected_before_storage(store, overrides):
    email = phishing_email(**overrides)

    with pytest.raises(InvalidEmailError):
        await make_service(store).analyze_email(email)

    assert await store.get_email("msg-100") is None


async def test_missing_safe_browsing_key_stores_nothing(store):
    with pytest.raises(ConfigurationError):
        await make_service(store, api_key=None).analyze_email(phishing_email())

    assert await store.get_email("msg-100") is None
    assert await store.get_sender_profile("alerts@example.com") is None


async def test_threat_lookup_failure_is_recorded_and_stored(store):
    session = FakeSession({SAFE_BROWSING_URL: FakeResponse(status=503)})

    result = await make_service(store, session=session).analyze_email(phishing_email())

    assert result.record.threat_check_status == STATUS_FAILED
    assert result.record.flags.safebrowsing_flag is False
    assert (await store.get_email("msg-100"))["threatCheckStatus"] == STATUS_FAILED


async def test_profile_failure_keeps_the_email(store):
    result = await make_service(store, profiles=FailingProfiles()).analyze_email(phishing_email())

    assert result.persistence.created is True
    assert result.persistence.profile_updated is False
    assert "locked" in result.persistence.profile_error
    assert result.persistence.fully_succeeded is False

    stored = await store.get_email("msg-100")
    assert stored["senderProfileProcessed"] is False
    assert [d["id"] for d in await store.unprocessed_profile_emails()] == ["msg-100"]


def test_has_external_urls():
    internal = [ExtractedUrl("https://mail.example.com/a"), ExtractedUrl("https://example.com/b")]

    assert has_external_urls(internal, "example.com") is False
    assert has_external_urls(internal + [ExtractedUrl("https://other.org")], "example.com") is True
    assert has_external_urls(internal, None) is True
    assert has_external_urls([], "example.com") is False
