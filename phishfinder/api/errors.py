"""
Error responses shared by the API routes
"""

from typing import Any, Dict

from fastapi import HTTPException

from phishfinder.core.config import settings


def error_detail(message: str, exc: Exception) -> Dict[str, Any]:
    """Generic message; exception text only outside production"""
    detail: Dict[str, Any] = {"error": message}
    if settings.expose_error_details:
        detail["details"] = str(exc)
    return detail


def server_error(message: str, exc: Exception, status_code: int = 500) -> HTTPException:
    return HTTPException(status_code=status_code, detail=error_detail(message, exc))
