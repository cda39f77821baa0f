"""
Dashboard Metrics API Endpoint
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from phishfinder.api.errors import server_error
from phishfinder.services.metrics_service import TIME_RANGES

logger = logging.getLogger(__name__)

router = APIRouter()


class DailyStat(BaseModel):
    date: str
    totalEmails: int
    flaggedEmails: int


class MetricsResponse(BaseModel):
    timeRange: str
    totalEmails: int
    previousTotalEmails: int
    flaggedEmails: int
    averageRiskScore: Optional[float] = None
    suspiciousUrls: int
    previousSuspiciousUrls: int
    dailyStats: List[DailyStat]


@router.get("/metrics/{time_range}", response_model=MetricsResponse)
async def get_metrics(request: Request, time_range: str) -> MetricsResponse:
    if time_range not in TIME_RANGES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid time range. Use one of: {', '.join(TIME_RANGES)}"
        )
    try:
        metrics = await request.app.state.services.metrics.get_metrics(time_range)
    except Exception as e:
        logger.exception(f"Error fetching metrics: {e}")
        raise server_error("Error fetching metrics", e)
    return MetricsResponse(**metrics)
