"""
Data model shared by the analysis pipeline and the store

Records are plain dataclasses; ``to_dict`` produces the camelCase JSON shape
that is persisted and returned by the API, ``from_dict`` reads it back.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class ExtractedUrl:
    """URL found in email content"""
    url: str
    suspicious: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "suspicious": self.suspicious}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedUrl":
        return cls(url=data["url"], suspicious=bool(data.get("suspicious")))


@dataclass
class UrlMismatch:
    """Anchor whose visible label points somewhere other than its target"""
    displayed_url: str
    actual_url: str
    display_domain: str
    actual_domain: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "displayedUrl": self.displayed_url,
            "actualUrl": self.actual_url,
            "displayDomain": self.display_domain,
            "actualDomain": self.actual_domain,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UrlMismatch":
        return cls(
            displayed_url=data["displayedUrl"],
            actual_url=data["actualUrl"],
            display_domain=data["displayDomain"],
            actual_domain=data["actualDomain"]
        )


@dataclass
class ThreatResult:
    """Safe Browsing verdict for one URL"""
    url: str
    suspicious: bool = False
    threat_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "suspicious": self.suspicious, "threatType": self.threat_type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThreatResult":
        return cls(url=data["url"], suspicious=bool(data.get("suspicious")), threat_type=data.get("threatType"))


@dataclass
class SuspiciousPattern:
    """One pattern category matched in one location (subject or body)"""
    type: str
    location: str
    matches: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "location": self.location, "matches": list(self.matches)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SuspiciousPattern":
        return cls(type=data["type"], location=data["location"], matches=list(data.get("matches") or []))


@dataclass
class AuthenticationCheck:
    """SPF, DKIM or DMARC outcome for the sender domain

    ``present`` says whether a record was published; ``status`` is what the
    record itself declares (SPF qualifier, DMARC policy).
    """
    record: Optional[str]
    status: str
    present: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"record": self.record, "status": self.status, "present": self.present}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthenticationCheck":
        return cls(record=data.get("record"), status=data["status"], present=bool(data.get("present")))


@dataclass
class Authentication:
    spf: AuthenticationCheck
    dkim: AuthenticationCheck
    dmarc: AuthenticationCheck
    summary: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spf": self.spf.to_dict(),
            "dkim": self.dkim.to_dict(),
            "dmarc": self.dmarc.to_dict(),
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Authentication":
        return cls(
            spf=AuthenticationCheck.from_dict(data["spf"]),
            dkim=AuthenticationCheck.from_dict(data["dkim"]),
            dmarc=AuthenticationCheck.from_dict(data["dmarc"]),
            summary=data.get("summary") or ""
        )


@dataclass
class SecurityFlags:
    safebrowsing_flag: bool = False
    has_external_urls: bool = False
    has_multiple_recipients: bool = False
    has_suspicious_patterns: bool = False
    has_url_mismatches: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "safebrowsingFlag": self.safebrowsing_flag,
            "hasExternalUrls": self.has_external_urls,
            "hasMultipleRecipients": self.has_multiple_recipients,
            "hasSuspiciousPatterns": self.has_suspicious_patterns,
            "hasUrlMismatches": self.has_url_mismatches,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SecurityFlags":
        return cls(
            safebrowsing_flag=bool(data.get("safebrowsingFlag")),
            has_external_urls=bool(data.get("hasExternalUrls")),
            has_multiple_recipients=bool(data.get("hasMultipleRecipients")),
            has_suspicious_patterns=bool(data.get("hasSuspiciousPatterns")),
            has_url_mismatches=bool(data.get("hasUrlMismatches"))
        )


@dataclass
class RiskScore:
    score: int
    reasons: List[str]
    risk_level: str

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "reasons": list(self.reasons), "riskLevel": self.risk_level}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskScore":
        return cls(score=int(data["score"]), reasons=list(data.get("reasons") or []), risk_level=data["riskLevel"])


@dataclass
class Sender:
    address: str
    domain: Optional[str] = None
    display_name: Optional[str] = None
    organization: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "domain": self.domain,
            "displayName": self.display_name,
            "organization": self.organization,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sender":
        return cls(
            address=data.get("address") or "",
            domain=data.get("domain"),
            display_name=data.get("displayName"),
            organization=data.get("organization")
        )


@dataclass
class Receiver:
    address: Optional[str] = None
    domain: Optional[str] = None
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)

    @property
    def recipient_count(self) -> int:
        primary = [a.strip() for a in (self.address or "").split(",") if a.strip()]
        return len(primary) + len(self.cc) + len(self.bcc)

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "domain": self.domain, "cc": list(self.cc), "bcc": list(self.bcc)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Receiver":
        return cls(
            address=data.get("address"),
            domain=data.get("domain"),
            cc=list(data.get("cc") or []),
            bcc=list(data.get("bcc") or [])
        )


@dataclass
class EmailRecord:
    """One analyzed email as persisted in the ``emails`` table"""
    id: str
    sender: Sender
    receiver: Receiver
    subject: str
    body: str
    timestamp: Optional[datetime]
    extracted_urls: List[ExtractedUrl] = field(default_factory=list)
    url_mismatches: List[UrlMismatch] = field(default_factory=list)
    threat_results: List[ThreatResult] = field(default_factory=list)
    threat_check_status: str = "skipped"
    authentication: Optional[Authentication] = None
    suspicious_patterns: List[SuspiciousPattern] = field(default_factory=list)
    requires_response: bool = False
    flags: SecurityFlags = field(default_factory=SecurityFlags)
    risk_score: Optional[RiskScore] = None
    labels: List[str] = field(default_factory=list)
    headers: List[Any] = field(default_factory=list)
    processed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender.to_dict(),
            "receiver": self.receiver.to_dict(),
            "subject": self.subject,
            "body": self.body,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "extractedUrls": [u.to_dict() for u in self.extracted_urls],
            "urlMismatches": [m.to_dict() for m in self.url_mismatches],
            "threatResults": [t.to_dict() for t in self.threat_results],
            "threatCheckStatus": self.threat_check_status,
            "authentication": self.authentication.to_dict() if self.authentication else None,
            "suspiciousPatterns": [p.to_dict() for p in self.suspicious_patterns],
            "requiresResponse": self.requires_response,
            "flags": self.flags.to_dict(),
            "riskScore": self.risk_score.to_dict() if self.risk_score else None,
            "labels": list(self.labels),
            "headers": list(self.headers),
            "processedAt": self.processed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmailRecord":
        authentication = data.get("authentication")
        risk_score = data.get("riskScore")
        return cls(
            id=data["id"],
            sender=Sender.from_dict(data.get("sender") or {}),
            receiver=Receiver.from_dict(data.get("receiver") or {}),
            subject=data.get("subject") or "",
            body=data.get("body") or "",
            timestamp=_parse_datetime(data.get("timestamp")),
            extracted_urls=[ExtractedUrl.from_dict(u) for u in data.get("extractedUrls") or []],
            url_mismatches=[UrlMismatch.from_dict(m) for m in data.get("urlMismatches") or []],
            threat_results=[ThreatResult.from_dict(t) for t in data.get("threatResults") or []],
            threat_check_status=data.get("threatCheckStatus") or "skipped",
            authentication=Authentication.from_dict(authentication) if authentication else None,
            suspicious_patterns=[SuspiciousPattern.from_dict(p) for p in data.get("suspiciousPatterns") or []],
            requires_response=bool(data.get("requiresResponse")),
            flags=SecurityFlags.from_dict(data.get("flags") or {}),
            risk_score=RiskScore.from_dict(risk_score) if risk_score else None,
            labels=list(data.get("labels") or []),
            headers=list(data.get("headers") or []),
            processed_at=_parse_datetime(data.get("processedAt")) or datetime.utcnow()
        )


@dataclass
class PersistOutcome:
    """Result of storing a record and its sender-profile side effect

    ``created`` is False when the id was already stored. ``profile_error``
    is set when the record was written but the profile update failed.
    """
    record_id: int
    created: bool
    profile_updated: bool = False
    profile_error: Optional[str] = None

    @property
    def fully_succeeded(self) -> bool:
        return not self.created or self.profile_updated

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recordId": self.record_id,
            "created": self.created,
            "profileUpdated": self.profile_updated,
            "profileError": self.profile_error,
        }


@dataclass
class AnalysisResult:
    record: EmailRecord
    persistence: PersistOutcome

    def to_dict(self) -> Dict[str, Any]:
        payload = self.record.to_dict()
        payload["recordId"] = self.persistence.record_id
        payload["persistence"] = self.persistence.to_dict()
        return payload
