"""
DNS Records API Endpoint
SPF, DKIM and DMARC lookup for a domain

Rate limiting: 100 requests per 15 minutes per IP
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.util import get_remote_address

from phishfinder.core.domain_utils import is_valid_domain

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
router = APIRouter()


class RecordStates(BaseModel):
    spf: str
    dkim: str
    dmarc: str


class DnsRecordsResponse(BaseModel):
    """Record text or a "No ... record found" / "Error fetching ... record" marker"""
    spf: str
    dkim: str
    dmarc: str
    summary: str
    states: RecordStates


@router.get("/dns-records/{domain}", response_model=DnsRecordsResponse)
@limiter.limit("100 per 15 minutes")
async def get_dns_records(request: Request, domain: str) -> DnsRecordsResponse:
    """
    Look up authentication records for a domain

    The domain is validated before any lookup is made. Lookup failures are
    reported in the body, never as an error status.
    """
    domain = domain.strip().lower()
    if not is_valid_domain(domain):
        logger.warning(f"Rejected DNS lookup for invalid domain {domain[:100]!r}")
        raise HTTPException(status_code=400, detail="Invalid domain format")

    details = await request.app.state.services.dns_resolver.resolve(domain)
    return DnsRecordsResponse(**details.to_dict())
