"""
Shared fixtures
"""

import pytest

from phishfinder.core.config import Settings
from phishfinder.services.storage import EmailStore
from tests.fakes import (
    DETECTOR_URL, GOOD_DOMAIN_RECORDS, SAFE_BROWSING_URL, WHOIS_URL,
    FakeResolver, FakeSession, safe_browsing_matches
)


@pytest.fixture
def fake_resolver():
    return FakeResolver(dict(GOOD_DOMAIN_RECORDS))


@pytest.fixture
def fake_session():
    return FakeSession({SAFE_BROWSING_URL: safe_browsing_matches({})})


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        ENVIRONMENT="test",
        SAFE_BROWSING_API_KEY="test-key",
        SAFE_BROWSING_URL=SAFE_BROWSING_URL,
        WHOIS_API_URL=WHOIS_URL,
        AI_DETECTOR_URL=DETECTOR_URL,
        AI_DETECTOR_TOKEN="detector-token",
        BACKGROUND_JOBS_ENABLED=False,
    )


@pytest.fixture
async def store():
    email_store = EmailStore("sqlite+aiosqlite:///:memory:")
    await email_store.open()
    yield email_store
    await email_store.close()
