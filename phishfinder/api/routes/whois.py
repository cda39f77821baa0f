"""
WHOIS API Endpoints
Registration data for a sender domain, optionally stored on an email
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from phishfinder.api.errors import server_error
from phishfinder.core.domain_utils import is_valid_domain
from phishfinder.core.exceptions import WhoisLookupError

logger = logging.getLogger(__name__)

router = APIRouter()


class WhoisResponse(BaseModel):
    success: bool
    emailId: Optional[str] = None
    whoisData: Dict[str, Any]


async def _whois(request: Request, domain: str, email_id: Optional[str]) -> WhoisResponse:
    domain = domain.strip().lower()
    if not is_valid_domain(domain):
        raise HTTPException(status_code=400, detail="Invalid domain format")

    logger.info(f"{request.method} WHOIS request for {domain}" + (f", email {email_id}" if email_id else ""))
    try:
        data = await request.app.state.services.whois.lookup_for_email(domain, email_id)
    except WhoisLookupError as e:
        raise server_error("Error processing WHOIS data", e, status_code=502)

    return WhoisResponse(success=True, emailId=email_id, whoisData=data)


@router.get("/whois/{domain}", response_model=WhoisResponse)
@router.post("/whois/{domain}", response_model=WhoisResponse)
async def get_whois(request: Request, domain: str) -> WhoisResponse:
    return await _whois(request, domain, None)


@router.get("/whois/{domain}/{email_id}", response_model=WhoisResponse)
@router.post("/whois/{domain}/{email_id}", response_model=WhoisResponse)
async def get_whois_for_email(request: Request, domain: str, email_id: str) -> WhoisResponse:
    """Look up WHOIS data and store it on the given email"""
    return await _whois(request, domain, email_id)
