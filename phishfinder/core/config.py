"""
Configuration settings using Pydantic
Loads environment variables from .env file
"""

from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings"""

    # Server configuration
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=8080, description="Server port")
    DEBUG: bool = Field(default=False, description="Debug mode")
    ENVIRONMENT: str = Field(default="production", description="Deployment environment name")
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")
    ALLOWED_ORIGINS: List[str] = Field(
        default=["http://localhost:8080", "http://localhost:3000"],
        description="CORS allowed origins"
    )

    # Storage
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./data/phishfinder.db",
        description="SQLAlchemy async database URL"
    )

    # Google Safe Browsing
    SAFE_BROWSING_API_KEY: Optional[str] = Field(default=None, description="Safe Browsing API key")
    SAFE_BROWSING_URL: str = Field(
        default="https://safebrowsing.googleapis.com/v4/threatMatches:find",
        description="Safe Browsing lookup endpoint"
    )
    SAFE_BROWSING_CLIENT_ID: str = Field(default="phishfinder", description="Client id sent to Safe Browsing")
    SAFE_BROWSING_CLIENT_VERSION: str = Field(default="1.0.0", description="Client version sent to Safe Browsing")
    THREAT_CHECK_TIMEOUT: float = Field(default=10.0, description="Safe Browsing request timeout in seconds")

    # DNS authentication lookups
    DNS_TIMEOUT: float = Field(default=5.0, description="Lifetime of a single DNS query in seconds")
    DNS_CACHE_TTL_SECONDS: int = Field(default=3600, description="In-memory DNS cache time-to-live")
    DNS_DB_CACHE_TTL_HOURS: int = Field(default=24, description="Stored DNS cache time-to-live")
    DKIM_SELECTORS: List[str] = Field(
        default=["default", "selector1", "selector2"],
        description="DKIM selectors probed in order"
    )

    # WHOIS microservice
    WHOIS_API_URL: str = Field(default="http://localhost:8081", description="WHOIS service base URL")
    WHOIS_TIMEOUT: float = Field(default=10.0, description="WHOIS request timeout in seconds")
    WHOIS_CACHE_TTL_DAYS: int = Field(default=30, description="WHOIS cache time-to-live in days")

    # AI-written text detector
    AI_DETECTOR_URL: str = Field(
        default="https://www.freedetector.ai/api/content_detector/",
        description="Content detector endpoint"
    )
    AI_DETECTOR_TOKEN: Optional[str] = Field(default=None, description="Content detector API token")
    AI_DETECTOR_TIMEOUT: float = Field(default=15.0, description="Content detector timeout in seconds")

    # Background jobs
    BACKGROUND_JOBS_ENABLED: bool = Field(default=True, description="Run the backfill loop")
    BACKGROUND_JOB_INTERVAL_MINUTES: int = Field(default=5, description="Minutes between backfill passes")

    @property
    def SERVER_URL(self) -> str:
        """Get the server URL"""
        return f"http://{self.HOST if self.HOST != '0.0.0.0' else 'localhost'}:{self.PORT}"

    @property
    def expose_error_details(self) -> bool:
        """Whether error responses may carry exception details"""
        return self.DEBUG or self.ENVIRONMENT.lower() != "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env file


# Global settings instance
settings = Settings()
