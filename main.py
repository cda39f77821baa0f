"""
PhishFinder Backend v1.0
FastAPI-based phishing analysis service for email content

Entry point: python main.py
"""

import logging
import os

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from phishfinder.core.config import settings
from phishfinder.api.routes import analysis, dns_records, health, metrics, whois
from phishfinder.utils.startup import configure_logging, initialize_system, shutdown_system

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Rate limiter setup
limiter = Limiter(key_func=get_remote_address)

# Create FastAPI application
app = FastAPI(
    title="PhishFinder",
    description="Phishing analysis for email content: URLs, sender authentication and risk scoring",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security headers to all responses"""
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if not settings.DEBUG:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


@app.on_event("startup")
async def startup_event():
    """Open shared services on startup"""
    await initialize_system(app)
    logger.info(f"PhishFinder ready on {settings.SERVER_URL} (docs at {settings.SERVER_URL}/api/docs)")


@app.on_event("shutdown")
async def shutdown_event():
    await shutdown_system(app)


# Include API routes
app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(analysis.router, prefix="/api", tags=["Email Analysis"])
app.include_router(dns_records.router, prefix="/api", tags=["DNS Records"])
app.include_router(whois.router, prefix="/api", tags=["WHOIS"])
app.include_router(metrics.router, prefix="/api", tags=["Metrics"])


if __name__ == "__main__":
    # PORT env var overrides settings for container deployments
    port = int(os.environ.get("PORT", settings.PORT))
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=port,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
