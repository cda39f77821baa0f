"""
Sender Profile Service
Folds each stored email into its sender's running profile
"""

import logging
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


def contributions(document: Dict[str, Any]) -> Dict[str, int]:
    """Counter increments for one email document"""
    flags = document.get("flags") or {}
    threats = [t for t in document.get("threatResults") or [] if t.get("suspicious")]
    flagged = bool(
        flags.get("safebrowsingFlag")
        or flags.get("hasSuspiciousPatterns")
        or flags.get("hasUrlMismatches")
    )
    return {
        "total_emails": 1,
        "suspicious_emails": 1 if flagged else 0,
        "suspicious_link_count": len(document.get("urlMismatches") or []),
        "phishing_link_count": sum(1 for t in threats if t.get("threatType") == "SOCIAL_ENGINEERING"),
        "unwanted_software_count": sum(1 for t in threats if t.get("threatType") == "UNWANTED_SOFTWARE"),
        "suspicious_keyword_count": 1 if flags.get("hasSuspiciousPatterns") else 0,
    }


def _records_only(authentication: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "spf": (authentication.get("spf") or {}).get("record"),
        "dkim": (authentication.get("dkim") or {}).get("record"),
        "dmarc": (authentication.get("dmarc") or {}).get("record"),
        "summary": authentication.get("summary"),
    }


def email_entry(document: Dict[str, Any]) -> Dict[str, Any]:
    """Summary of one email as kept in the profile's email list"""
    flags = document.get("flags") or {}
    authentication = document.get("authentication") or {}
    return {
        "id": document["id"],
        "subject": document.get("subject"),
        "timestamp": document.get("timestamp"),
        "body": document.get("body"),
        "extractedUrls": document.get("extractedUrls") or [],
        "isFlagged": bool(
            flags.get("safebrowsingFlag")
            or flags.get("hasSuspiciousPatterns")
            or flags.get("hasUrlMismatches")
        ),
        "authentication": _records_only(authentication) if authentication else None,
        "labels": document.get("labels") or [],
    }


class SenderProfileService:
    def __init__(self, store):
        self.store = store

    async def record_email(self, document: Dict[str, Any]) -> bool:
        """
        Apply one email to its sender profile and mark it processed

        Returns True when the profile now reflects the email (including when
        it already did). Storage errors propagate to the caller.
        """
        sender = document.get("sender") or {}
        if not sender.get("address"):
            logger.warning(f"Email {document.get('id')} has no sender address; skipping profile update")
            await self.store.mark_profile_processed(document["id"])
            return False

        authentication = document.get("authentication")
        await self.store.add_to_sender_profile(
            sender=sender,
            entry=email_entry(document),
            increments=contributions(document),
            last_authentication=_records_only(authentication) if authentication else None
        )
        await self.store.mark_profile_processed(document["id"])
        logger.info(f"Sender profile updated for {sender['address']} with email {document['id']}")
        return True

    async def process_pending(self, limit: int = 100) -> int:
        """Retry emails whose profile update has not been applied yet"""
        processed = 0
        for document in await self.store.unprocessed_profile_emails(limit):
            try:
                if await self.record_email(document):
                    processed += 1
            except SQLAlchemyError as e:
                logger.error(f"Sender profile retry failed for {document.get('id')}: {e}")
        if processed:
            logger.info(f"Processed {processed} pending sender profile updates")
        return processed
