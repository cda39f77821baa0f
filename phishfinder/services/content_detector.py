"""
Content Detector Client
Asks an external detector how likely a text is to be machine-written
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from phishfinder.core.exceptions import ConfigurationError, ContentDetectorError

logger = logging.getLogger(__name__)

MIN_WORDS = 10
MAX_WORDS = 298


def prepare_text(text: str) -> str:
    """
    Trim text to the detector's word limits

    Raises:
        ValueError: fewer than MIN_WORDS words
    """
    words = (text or "").split()
    if len(words) > MAX_WORDS:
        logger.info(f"Text exceeds {MAX_WORDS} words ({len(words)}); trimming")
        words = words[:MAX_WORDS]
    if len(words) < MIN_WORDS:
        raise ValueError(f"Text must be between {MIN_WORDS} and {MAX_WORDS} words.")
    return " ".join(words)


class ContentDetector:
    def __init__(
        self,
        api_url: str,
        token: Optional[str],
        timeout: float = 15.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.api_url = api_url
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session = session

    async def score(self, text: str) -> float:
        """
        Detector score for text

        Raises:
            ValueError: word count out of bounds
            ConfigurationError: no detector token configured
            ContentDetectorError: upstream failure or unsuccessful answer
        """
        text = prepare_text(text)
        if not self.token:
            raise ConfigurationError("AI_DETECTOR_TOKEN is not configured")

        try:
            if self.session is not None:
                result = await self._post(self.session, text)
            else:
                async with aiohttp.ClientSession() as session:
                    result = await self._post(session, text)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Content detector request failed: {e!r}")
            raise ContentDetectorError("Error analyzing content.") from e

        if not result.get("success"):
            logger.error(f"Content detector returned an error: {result}")
            raise ContentDetectorError(result.get("message") or "API error occurred.")

        try:
            return float(result["score"])
        except (KeyError, TypeError, ValueError) as e:
            raise ContentDetectorError("Content detector returned no score") from e

    async def _post(self, session, text: str) -> dict:
        async with session.post(
            self.api_url,
            json={"text": text},
            headers={"Authorization": self.token},
            timeout=self.timeout
        ) as response:
            logger.debug(f"Content detector status: {response.status}")
            data = await response.json(content_type=None)
            if not isinstance(data, dict):
                raise ValueError("Unexpected content detector response body")
            return data
