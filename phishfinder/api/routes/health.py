"""
Health check endpoint
Provides system status information
"""

from fastapi import APIRouter, Request
from pydantic import BaseModel
from datetime import datetime
import time

from phishfinder.utils.startup import get_init_status

router = APIRouter()

VERSION = "1.0.0"

# Track startup time
_startup_time = time.time()


class HealthResponse(BaseModel):
    """Health check response model"""
    status: str
    version: str
    uptime_seconds: float
    timestamp: str
    services_ready: bool
    threat_checks_configured: bool
    background_jobs: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint

    Returns:
        HealthResponse: System health status
    """
    uptime = time.time() - _startup_time
    status = get_init_status(request.app)

    return HealthResponse(
        status="healthy" if status["initialized"] else "starting",
        version=VERSION,
        uptime_seconds=round(uptime, 2),
        timestamp=datetime.utcnow().isoformat(),
        services_ready=status["initialized"],
        threat_checks_configured=status["threat_checks_configured"],
        background_jobs=status["background_jobs"]
    )
