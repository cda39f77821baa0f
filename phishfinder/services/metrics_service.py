"""
Metrics Service
Dashboard aggregates over stored emails for a trailing time window
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)

TIME_RANGES = {"7d": 7, "30d": 30, "90d": 90}


class MetricsService:
    def __init__(self, store, clock: Callable[[], datetime] = datetime.utcnow):
        self.store = store
        self.clock = clock

    async def get_metrics(self, time_range: str) -> Dict[str, Any]:
        """
        Totals for the window ending now, plus the window before it

        Raises:
            ValueError: time_range is not one of 7d, 30d, 90d
        """
        if time_range not in TIME_RANGES:
            raise ValueError(f"Invalid time range: {time_range}")

        window = timedelta(days=TIME_RANGES[time_range])
        end = self.clock()
        start = end - window
        previous_start = start - window

        current = await self.store.email_stats(start, end)
        previous = await self.store.email_stats(previous_start, start)
        daily = await self.store.daily_stats(start, end)

        logger.info(f"Metrics for {time_range}: {current['total']} emails, {current['flagged']} flagged")

        return {
            "timeRange": time_range,
            "totalEmails": current["total"],
            "previousTotalEmails": previous["total"],
            "flaggedEmails": current["flagged"],
            "averageRiskScore": current["average_risk_score"],
            "suspiciousUrls": current["suspicious_urls"],
            "previousSuspiciousUrls": previous["suspicious_urls"],
            "dailyStats": daily,
        }
