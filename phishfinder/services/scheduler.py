"""
Background Jobs
Periodic backfill: score emails stored without a risk score and retry
sender-profile updates that did not complete
"""

import asyncio
import logging
from datetime import timedelta
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from phishfinder.core import risk_scorer
from phishfinder.core.models import EmailRecord

logger = logging.getLogger(__name__)


class BackgroundJobs:
    def __init__(self, store, profiles, interval: timedelta, batch_size: int = 100):
        self.store = store
        self.profiles = profiles
        self.interval = interval
        self.batch_size = batch_size
        self._task: Optional[asyncio.Task] = None

    async def score_pending(self) -> int:
        scored = 0
        for document in await self.store.unscored_emails(self.batch_size):
            try:
                record = EmailRecord.from_dict(document)
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Cannot rebuild stored email {document.get('id')} for scoring: {e!r}")
                continue
            risk = risk_scorer.score(record)
            await self.store.set_risk_score(record.id, risk)
            scored += 1
        if scored:
            logger.info(f"Scored {scored} stored emails")
        return scored

    async def run_once(self) -> Dict[str, int]:
        """One backfill pass"""
        return {
            "scored": await self.score_pending(),
            "profiles": await self.profiles.process_pending(self.batch_size),
        }

    async def _run(self) -> None:
        logger.info(f"Background jobs running every {self.interval}")
        while True:
            try:
                await self.run_once()
            except SQLAlchemyError as e:
                logger.error(f"Background job pass failed: {e}")
            await asyncio.sleep(self.interval.total_seconds())

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Background jobs stopped")
