import asyncio

import aiohttp
import pytest

from phishfinder.core.exceptions import ConfigurationError
from phishfinder.core.threat_checker import (
    STATUS_CHECKED, STATUS_FAILED, STATUS_SKIPPED, THREAT_TYPES, ThreatChecker
)
from tests.fakes import SAFE_BROWSING_URL, FakeResponse, FakeSession, safe_browsing_matches


def make_checker(session, api_key="test-key"):
    return ThreatChecker(
        api_key=api_key,
        api_url=SAFE_BROWSING_URL,
        client_id="phishfinder",
        client_version="1.0.0",
        timeout=2.0,
        session=session
    )


async def test_batches_unique_urls_into_one_request():
    session = FakeSession({SAFE_BROWSING_URL: safe_browsing_matches({})})
    checker = make_checker(session)

    results = await checker.check(["https://a.example.com", "https://b.example.com", "https://a.example.com"])

    assert [r.url for r in results] == ["https://a.example.com", "https://b.example.com"]
    assert all(not r.suspicious for r in results)

    calls = session.calls_to(SAFE_BROWSING_URL)
    assert len(calls) == 1
    assert calls[0]["params"] == {"key": "test-key"}
    payload = calls[0]["json"]
    assert payload["client"] == {"clientId": "phishfinder", "clientVersion": "1.0.0"}
    assert payload["threatInfo"]["threatTypes"] == THREAT_TYPES
    assert payload["threatInfo"]["platformTypes"] == ["ANY_PLATFORM"]
    assert payload["threatInfo"]["threatEntryTypes"] == ["URL"]
    assert payload["threatInfo"]["threatEntries"] == [
        {"url": "https://a.example.com"},
        {"url": "https://b.example.com"},
    ]


async def test_matched_urls_are_flagged_with_first_threat_type():
    body = {
        "matches": [
            {"threat": {"url": "https://evil.test/login"}, "threatType": "SOCIAL_ENGINEERING"},
            {"threat": {"url": "https://evil.test/login"}, "threatType": "MALWARE"},
            {"threat": {"url": "https://bad.test/app.exe"}, "threatType": "UNWANTED_SOFTWARE"},
        ]
    }
    session = FakeSession({SAFE_BROWSING_URL: FakeResponse(payload=body)})

    report = await make_checker(session).lookup(
        ["https://evil.test/login", "https://fine.example.com", "https://bad.test/app.exe"]
    )

    assert report.status == STATUS_CHECKED
    assert [(r.url, r.suspicious, r.threat_type) for r in report.results] == [
        ("https://evil.test/login", True, "SOCIAL_ENGINEERING"),
        ("https://fine.example.com", False, None),
        ("https://bad.test/app.exe", True, "UNWANTED_SOFTWARE"),
    ]
    assert len(report.flagged) == 2


@pytest.mark.parametrize("response", [
    FakeResponse(status=503),
    FakeResponse(status=400, payload={"error": {"code": 400}}),
    FakeResponse(error=aiohttp.ClientConnectionError("connection refused")),
    FakeResponse(error=asyncio.TimeoutError()),
    FakeResponse(payload=["not", "an", "object"]),
])
async def test_upstream_failure_fails_open_and_is_reported(response):
    session = FakeSession({SAFE_BROWSING_URL: response})
    urls = ["https://a.example.com", "https://b.example.com"]

    report = await make_checker(session).lookup(urls)

    assert report.status == STATUS_FAILED
    assert report.error
    assert [r.url for r in report.results] == urls
    assert not any(r.suspicious for r in report.results)


async def test_empty_input_makes_no_request():
    session = FakeSession()

    report = await make_checker(session).lookup([])

    assert report.status == STATUS_SKIPPED
    assert report.results == []
    assert session.calls == []


async def test_missing_api_key_is_a_configuration_error():
    session = FakeSession()
    checker = make_checker(session, api_key=None)

    assert not checker.configured
    with pytest.raises(ConfigurationError):
        await checker.lookup(["https://a.example.com"])
    assert session.calls == []
