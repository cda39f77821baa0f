"""
Email Analysis API Endpoints
Submit an email for analysis, fetch stored verdicts, and score text with the
content detector
"""

from typing import Any, List, Optional, Union
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from phishfinder.api.errors import server_error
from phishfinder.core.exceptions import ConfigurationError, ContentDetectorError, InvalidEmailError

logger = logging.getLogger(__name__)

router = APIRouter()


class SenderIn(BaseModel):
    address: str
    domain: Optional[str] = None
    displayName: Optional[str] = None
    organization: Optional[str] = None


class ReceiverIn(BaseModel):
    address: Optional[str] = None
    domain: Optional[str] = None
    cc: Union[List[str], str, None] = None
    bcc: Union[List[str], str, None] = None


class EmailAnalysisRequest(BaseModel):
    """Email submitted for analysis"""
    id: str
    sender: SenderIn
    receiver: Optional[ReceiverIn] = None
    subject: Optional[str] = ""
    # Type-checked by the analysis service so bad content is a 400, not a 422
    body: Optional[Any] = None
    htmlBody: Optional[Any] = None
    timestamp: Optional[Union[str, int, float]] = None
    headers: List[Any] = []
    labels: List[str] = []


class ContentDetectionRequest(BaseModel):
    text: str


class ContentDetectionResponse(BaseModel):
    score: float


@router.post("/analyze-email")
@router.post("/saveEmailAnalysis")
async def analyze_email(request: Request, payload: EmailAnalysisRequest):
    """
    Analyze an email and store the verdict

    Resubmitting an id returns the verdict with the identity of the record
    stored the first time.
    """
    services = request.app.state.services
    try:
        result = await services.analysis.analyze_email(payload.model_dump())
    except InvalidEmailError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigurationError as e:
        logger.error(f"Email analysis not configured: {e}")
        raise server_error("Error analyzing email", e)
    except Exception as e:
        logger.exception(f"Email analysis failed for {payload.id}: {e}")
        raise server_error("Error analyzing email", e)

    if result.persistence.profile_error:
        logger.warning(f"Email {payload.id} stored without sender profile update")
    return result.to_dict()


@router.get("/emails/{email_id}")
async def get_email(request: Request, email_id: str):
    """Fetch a stored verdict by its external id"""
    document = await request.app.state.services.store.get_email(email_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Email not found")
    return document


@router.post("/ai-analyze", response_model=ContentDetectionResponse)
async def ai_analyze(request: Request, payload: ContentDetectionRequest) -> ContentDetectionResponse:
    """Score text with the AI-written content detector (10 to 298 words)"""
    detector = request.app.state.services.content_detector
    try:
        score = await detector.score(payload.text)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigurationError as e:
        logger.error(f"Content detector not configured: {e}")
        raise server_error("Error analyzing content.", e)
    except ContentDetectorError as e:
        raise server_error("Error analyzing content.", e, status_code=502)

    return ContentDetectionResponse(score=score)
