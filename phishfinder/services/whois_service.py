"""
WHOIS Service
Client for the WHOIS microservice with a root-domain keyed cache
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import aiohttp

from phishfinder.core.domain_utils import extract_root_domain
from phishfinder.core.exceptions import WhoisLookupError

logger = logging.getLogger(__name__)


class WhoisService:
    """
    Fetches registration data for a domain

    Lookups are keyed and cached by root domain, so mail.example.co.uk and
    example.co.uk share one entry.
    """

    def __init__(
        self,
        base_url: str,
        cache=None,
        store=None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.store = store
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = session

    async def lookup(self, domain: str) -> Dict[str, Any]:
        """
        Registration data for the domain's root

        Raises:
            WhoisLookupError: service unreachable, timed out or non-2xx
        """
        root = extract_root_domain(domain)
        if not root:
            raise WhoisLookupError(f"Cannot derive a registrable domain from {domain!r}")

        if self.cache is not None:
            cached = await self.cache.get(root)
            if cached is not None:
                logger.debug(f"Cache hit for WHOIS data: {root}")
                return cached

        data = await self._fetch(root)

        if self.cache is not None:
            await self.cache.set(root, data)
        logger.info(f"Fetched WHOIS data for {root}")
        return data

    async def lookup_for_email(self, domain: str, email_id: Optional[str] = None) -> Dict[str, Any]:
        """Look up WHOIS data and, with an email id, store it on that email"""
        data = await self.lookup(domain)
        if email_id and self.store is not None:
            updated = await self.store.update_whois(email_id, data, updated_at=datetime.utcnow())
            if updated:
                logger.info(f"Updated WHOIS data for email {email_id}")
            else:
                logger.info(f"No email found for id {email_id}; WHOIS data not stored")
        return data

    async def _fetch(self, root: str) -> Dict[str, Any]:
        url = f"{self.base_url}/{root}"
        try:
            if self.session is not None:
                return await self._get(self.session, url)
            async with aiohttp.ClientSession() as session:
                return await self._get(session, url)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"WHOIS lookup failed for {root}: {e!r}")
            raise WhoisLookupError(f"WHOIS lookup failed for {root}") from e

    async def _get(self, session, url: str) -> Dict[str, Any]:
        async with session.get(url, timeout=self.timeout) as response:
            if response.status < 200 or response.status >= 300:
                raise WhoisLookupError(f"WHOIS API error: {response.status}")
            data = await response.json()
            if not isinstance(data, dict):
                raise ValueError("Unexpected WHOIS response body")
            return data
