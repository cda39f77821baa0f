"""
Email Analysis Service
Runs one submitted email through the analysis pipeline and stores the verdict

Pipeline:
    validate -> clean -> extract URLs (HTML and text views, concurrently)
    -> detect link mismatches -> Safe Browsing -> SPF/DKIM/DMARC
    -> suspicious patterns -> flags and risk score -> persist
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from sqlalchemy.exc import SQLAlchemyError

from phishfinder.core import pattern_analyzer, risk_scorer, url_extractor
from phishfinder.core.domain_utils import domain_from_address, extract_root_domain
from phishfinder.core.exceptions import InvalidEmailError
from phishfinder.core.mismatch_detector import detect_mismatches
from phishfinder.core.models import (
    AnalysisResult, EmailRecord, ExtractedUrl, PersistOutcome, Receiver,
    SecurityFlags, Sender
)
from phishfinder.utils.email_parser import EmailParser, get_email_parser

logger = logging.getLogger(__name__)


def has_external_urls(urls: List[ExtractedUrl], sender_domain: Optional[str]) -> bool:
    """Any URL outside the sender's root domain; every URL counts when the sender is unknown"""
    if not urls:
        return False
    sender_root = extract_root_domain(sender_domain) if sender_domain else None
    if not sender_root:
        return True

    for item in urls:
        try:
            host = urlparse(item.url).hostname
        except ValueError:
            continue
        if host and extract_root_domain(host) != sender_root:
            return True
    return False


def _email_content(raw: Dict[str, Any]) -> str:
    for key in ("htmlBody", "body"):
        value = raw.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise InvalidEmailError(f"Email {key} must be a string")
        if value.strip():
            return value
    raise InvalidEmailError("Email body is required")


class EmailAnalysisService:
    """
    Composes the analyzers for one email at a time

    Args:
        threat_checker: ThreatChecker
        dns_resolver: DnsAuthResolver
        store: EmailStore
        profiles: SenderProfileService
    """

    def __init__(self, threat_checker, dns_resolver, store, profiles, parser: Optional[EmailParser] = None):
        self.threat_checker = threat_checker
        self.dns_resolver = dns_resolver
        self.store = store
        self.profiles = profiles
        self.parser = parser or get_email_parser()

    def _sender(self, raw: Dict[str, Any], cleaned_text: str) -> Sender:
        value = raw.get("sender") or {}
        if isinstance(value, str):
            value = {"address": value}

        raw_address = value.get("address") or ""
        address = self.parser.extract_address(raw_address) or raw_address.strip().lower()
        domain = (value.get("domain") or domain_from_address(address) or "").strip().lower() or None
        display_name = value.get("displayName") or self.parser.extract_display_name(raw_address)

        return Sender(
            address=address,
            domain=domain,
            display_name=display_name,
            organization=value.get("organization") or self.parser.extract_organization(domain, cleaned_text)
        )

    def _receiver(self, raw: Dict[str, Any]) -> Receiver:
        value = raw.get("receiver") or {}
        if isinstance(value, str):
            value = {"address": value}

        primary = self.parser.parse_recipients(value.get("address"))
        cc = self.parser.parse_recipients(value.get("cc"))
        bcc = self.parser.parse_recipients(value.get("bcc"))

        return Receiver(
            address=", ".join(r["address"] for r in primary) or None,
            domain=value.get("domain") or (primary[0]["domain"] if primary else None),
            cc=[r["address"] for r in cc],
            bcc=[r["address"] for r in bcc]
        )

    async def _extract_urls(self, preserved_html: str, cleaned_text: str) -> List[ExtractedUrl]:
        loop = asyncio.get_running_loop()
        html_urls, text_urls = await asyncio.gather(
            loop.run_in_executor(None, url_extractor.extract, preserved_html, True),
            loop.run_in_executor(None, url_extractor.extract, cleaned_text, False)
        )
        return url_extractor.merge_extracted(html_urls, text_urls)

    async def analyze_email(self, raw: Dict[str, Any]) -> AnalysisResult:
        """
        Analyze and store one email

        An id that is already stored returns the stored verdict without
        running any lookups.

        Raises:
            InvalidEmailError: missing id or body
            ConfigurationError: Safe Browsing is not configured; raised
                before anything is stored
        """
        email_id = raw.get("id")
        if not isinstance(email_id, str) or not email_id.strip():
            raise InvalidEmailError("Email id is required")
        content = _email_content(raw)

        existing = await self.store.get_email(email_id)
        if existing is not None:
            logger.info(f"Email {email_id} already analyzed as record {existing['recordId']}")
            return AnalysisResult(
                record=EmailRecord.from_dict(existing),
                persistence=PersistOutcome(record_id=existing["recordId"], created=False)
            )

        cleaned = self.parser.clean_body(content)
        subject = raw.get("subject") or ""
        if not isinstance(subject, str):
            subject = str(subject)

        extracted = await self._extract_urls(cleaned.preserved_html, cleaned.cleaned_text)
        mismatches = detect_mismatches(cleaned.preserved_html)
        logger.info(f"Email {email_id}: {len(extracted)} URLs, {len(mismatches)} link mismatches")

        report = await self.threat_checker.lookup([u.url for u in extracted])

        sender = self._sender(raw, cleaned.cleaned_text)
        authentication = None
        if sender.domain:
            details = await self.dns_resolver.resolve(sender.domain)
            authentication = details.to_authentication()

        patterns = pattern_analyzer.analyze(subject, cleaned.cleaned_text)
        requires_response = pattern_analyzer.requires_response(subject, cleaned.cleaned_text)
        receiver = self._receiver(raw)

        record = EmailRecord(
            id=email_id,
            sender=sender,
            receiver=receiver,
            subject=subject,
            body=cleaned.cleaned_text,
            timestamp=self.parser.parse_timestamp(raw.get("timestamp")),
            extracted_urls=extracted,
            url_mismatches=mismatches,
            threat_results=report.results,
            threat_check_status=report.status,
            authentication=authentication,
            suspicious_patterns=patterns,
            requires_response=requires_response,
            flags=SecurityFlags(
                safebrowsing_flag=bool(report.flagged),
                has_external_urls=has_external_urls(extracted, sender.domain),
                has_multiple_recipients=receiver.recipient_count > 1,
                has_suspicious_patterns=bool(patterns),
                has_url_mismatches=bool(mismatches)
            ),
            labels=list(raw.get("labels") or []),
            headers=list(raw.get("headers") or [])
        )
        record.risk_score = risk_scorer.score(record)
        logger.info(
            f"Email {email_id} scored {record.risk_score.score} ({record.risk_score.risk_level})"
        )

        return AnalysisResult(record=record, persistence=await self._persist(record))

    async def _persist(self, record: EmailRecord) -> PersistOutcome:
        record_id, created = await self.store.save_email(record)
        outcome = PersistOutcome(record_id=record_id, created=created)
        if not created:
            return outcome

        try:
            outcome.profile_updated = await self.profiles.record_email(record.to_dict())
        except SQLAlchemyError as e:
            # The email row is stored; the backfill job retries the profile
            logger.error(f"Sender profile update failed for email {record.id}: {e}")
            outcome.profile_error = str(e)
        return outcome
