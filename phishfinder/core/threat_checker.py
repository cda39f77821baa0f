"""
Threat Checker
Batches extracted URLs into one Google Safe Browsing v4 lookup
Reference: https://developers.google.com/safe-browsing/v4/lookup-api
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import aiohttp

from phishfinder.core.exceptions import ConfigurationError
from phishfinder.core.models import ThreatResult

logger = logging.getLogger(__name__)

THREAT_TYPES = [
    "MALWARE",
    "SOCIAL_ENGINEERING",
    "UNWANTED_SOFTWARE",
    "POTENTIALLY_HARMFUL_APPLICATION"
]

STATUS_CHECKED = "checked"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


class UpstreamStatusError(aiohttp.ClientError):
    """Safe Browsing answered with a non-200 status"""


@dataclass
class ThreatReport:
    """Per-URL results plus whether the lookup actually happened"""
    results: List[ThreatResult] = field(default_factory=list)
    status: str = STATUS_SKIPPED
    error: Optional[str] = None

    @property
    def flagged(self) -> List[ThreatResult]:
        return [r for r in self.results if r.suspicious]


def unique_urls(urls: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(u for u in urls if u))


class ThreatChecker:
    """
    Google Safe Browsing client

    A failed lookup never raises: every URL comes back unflagged and the
    report status is "failed" so callers can tell it apart from a clean
    result.
    """

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str,
        client_id: str,
        client_version: str,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.client_id = client_id
        self.client_version = client_version
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = session

        if self.api_key:
            logger.info("Google Safe Browsing API key configured")
        else:
            logger.warning("SAFE_BROWSING_API_KEY not set - URL threat checks will be refused")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def require_credentials(self) -> None:
        if not self.configured:
            raise ConfigurationError("SAFE_BROWSING_API_KEY is not configured")

    def build_payload(self, urls: List[str]) -> Dict[str, Any]:
        return {
            "client": {
                "clientId": self.client_id,
                "clientVersion": self.client_version
            },
            "threatInfo": {
                "threatTypes": THREAT_TYPES,
                "platformTypes": ["ANY_PLATFORM"],
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": url} for url in urls]
            }
        }

    async def check(self, urls: Iterable[str]) -> List[ThreatResult]:
        """One ThreatResult per unique input URL"""
        report = await self.lookup(urls)
        return report.results

    async def lookup(self, urls: Iterable[str]) -> ThreatReport:
        """
        Query Safe Browsing for a batch of URLs

        Raises:
            ConfigurationError: no API key configured
        """
        self.require_credentials()

        batch = unique_urls(urls)
        if not batch:
            return ThreatReport(results=[], status=STATUS_SKIPPED)

        try:
            data = await self._post(self.build_payload(batch))
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Safe Browsing lookup failed for {len(batch)} URLs: {e!r}")
            return ThreatReport(
                results=[ThreatResult(url=url) for url in batch],
                status=STATUS_FAILED,
                error=str(e) or e.__class__.__name__
            )

        matches = self._index_matches(data.get("matches") or [])
        results = [
            ThreatResult(url=url, suspicious=True, threat_type=matches[url])
            if url in matches else ThreatResult(url=url)
            for url in batch
        ]

        flagged = sum(1 for r in results if r.suspicious)
        if flagged:
            logger.warning(f"Safe Browsing flagged {flagged} of {len(batch)} URLs")
        else:
            logger.info(f"Safe Browsing found no threats in {len(batch)} URLs")

        return ThreatReport(results=results, status=STATUS_CHECKED)

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self.session is not None:
            return await self._send(self.session, payload)
        async with aiohttp.ClientSession() as session:
            return await self._send(session, payload)

    async def _send(self, session, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with session.post(
            self.api_url,
            params={"key": self.api_key},
            json=payload,
            timeout=self.timeout
        ) as response:
            if response.status != 200:
                raise UpstreamStatusError(f"Safe Browsing API error: {response.status}")
            data = await response.json()
            if not isinstance(data, dict):
                raise ValueError("Unexpected Safe Browsing response body")
            return data

    @staticmethod
    def _index_matches(matches: List[Dict[str, Any]]) -> Dict[str, str]:
        """URL -> threat type, keeping the first match for each URL"""
        indexed: Dict[str, str] = {}
        for match in matches:
            url = (match.get("threat") or {}).get("url")
            if url and url not in indexed:
                indexed[url] = match.get("threatType", "UNKNOWN")
        return indexed
