"""
Startup initialization logic
Builds, opens and closes the shared resources behind the API
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import aiohttp
from fastapi import FastAPI

from phishfinder.core.config import Settings, settings
from phishfinder.core.dns_auth import DnsAuthResolver
from phishfinder.core.threat_checker import ThreatChecker
from phishfinder.services.analysis_service import EmailAnalysisService
from phishfinder.services.cache import MemoryCache, StoreCache, TieredCache
from phishfinder.services.content_detector import ContentDetector
from phishfinder.services.metrics_service import MetricsService
from phishfinder.services.scheduler import BackgroundJobs
from phishfinder.services.sender_profile import SenderProfileService
from phishfinder.services.storage import EmailStore
from phishfinder.services.whois_service import WhoisService

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


class Services:
    """
    Composition root for one process

    Everything that holds a connection or a cache is created in ``open()``
    and released in ``close()``. ``resolver`` and ``http_session`` replace
    the DNS resolver and outbound HTTP session, mainly for tests; a passed
    session is not closed here.
    """

    def __init__(self, config: Settings, resolver=None, http_session=None):
        self.config = config
        self.resolver = resolver
        self.http = http_session
        self._owns_http = http_session is None
        self.store = EmailStore(config.DATABASE_URL)
        self.opened = False

    async def open(self) -> None:
        config = self.config
        await self.store.open()
        if self.http is None:
            self.http = aiohttp.ClientSession()

        dns_cache = TieredCache(
            MemoryCache(timedelta(seconds=config.DNS_CACHE_TTL_SECONDS), name="dns"),
            StoreCache(self.store, "domain_authentication", timedelta(hours=config.DNS_DB_CACHE_TTL_HOURS))
        )
        whois_cache = StoreCache(self.store, "whois", timedelta(days=config.WHOIS_CACHE_TTL_DAYS))

        self.threat_checker = ThreatChecker(
            api_key=config.SAFE_BROWSING_API_KEY,
            api_url=config.SAFE_BROWSING_URL,
            client_id=config.SAFE_BROWSING_CLIENT_ID,
            client_version=config.SAFE_BROWSING_CLIENT_VERSION,
            timeout=config.THREAT_CHECK_TIMEOUT,
            session=self.http
        )
        self.dns_resolver = DnsAuthResolver(
            resolver=self.resolver,
            cache=dns_cache,
            selectors=config.DKIM_SELECTORS,
            timeout=config.DNS_TIMEOUT
        )
        self.profiles = SenderProfileService(self.store)
        self.analysis = EmailAnalysisService(
            threat_checker=self.threat_checker,
            dns_resolver=self.dns_resolver,
            store=self.store,
            profiles=self.profiles
        )
        self.whois = WhoisService(
            base_url=config.WHOIS_API_URL,
            cache=whois_cache,
            store=self.store,
            timeout=config.WHOIS_TIMEOUT,
            session=self.http
        )
        self.metrics = MetricsService(self.store)
        self.content_detector = ContentDetector(
            api_url=config.AI_DETECTOR_URL,
            token=config.AI_DETECTOR_TOKEN,
            timeout=config.AI_DETECTOR_TIMEOUT,
            session=self.http
        )
        self.jobs = BackgroundJobs(
            self.store,
            self.profiles,
            interval=timedelta(minutes=config.BACKGROUND_JOB_INTERVAL_MINUTES)
        )
        if config.BACKGROUND_JOBS_ENABLED:
            self.jobs.start()

        self.opened = True
        logger.info("Services ready")

    async def close(self) -> None:
        if not self.opened:
            return
        await self.jobs.stop()
        if self._owns_http and self.http is not None:
            await self.http.close()
            self.http = None
        await self.store.close()
        self.opened = False
        logger.info("Services closed")


async def initialize_system(app: FastAPI, services: Optional[Services] = None):
    """
    Open the shared services on startup

    Services already placed on ``app.state.services`` are opened instead of
    building new ones from the global settings.

    Args:
        app: FastAPI application instance
    """
    services = services or getattr(app.state, "services", None) or Services(settings)
    try:
        await services.open()
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise
    app.state.services = services


async def shutdown_system(app: FastAPI):
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.close()


def get_init_status(app: FastAPI) -> Dict[str, Any]:
    services = getattr(app.state, "services", None)
    return {
        "initialized": bool(services and services.opened),
        "threat_checks_configured": bool(services and services.opened and services.threat_checker.configured),
        "background_jobs": bool(services and services.config.BACKGROUND_JOBS_ENABLED),
    }
