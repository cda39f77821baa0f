"""
Email Store
Async SQLAlchemy persistence for analyzed emails, sender profiles and the
DNS/WHOIS cache tables

Each analyzed email is kept as its JSON document plus the scalar columns the
dashboard and background jobs query on.
"""

import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Integer, String,
    UniqueConstraint, func, select, update
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from phishfinder.core.models import EmailRecord, RiskScore

logger = logging.getLogger(__name__)

Base = declarative_base()

PROFILE_COUNTERS = (
    "total_emails",
    "suspicious_emails",
    "suspicious_link_count",
    "phishing_link_count",
    "unwanted_software_count",
    "suspicious_keyword_count",
)


class EmailRow(Base):
    __tablename__ = "emails"

    id = Column(Integer, primary_key=True, index=True)
    email_id = Column(String, unique=True, index=True, nullable=False)
    sender_address = Column(String, index=True)
    sender_domain = Column(String, index=True)
    timestamp = Column(DateTime, index=True)
    processed_at = Column(DateTime, nullable=False)
    safebrowsing_flag = Column(Boolean, default=False, nullable=False)
    extracted_url_count = Column(Integer, default=0, nullable=False)
    suspicious_url_count = Column(Integer, default=0, nullable=False)
    risk_score = Column(Integer, nullable=True, index=True)
    risk_details = Column(JSON, nullable=True)
    sender_profile_processed = Column(Boolean, default=False, nullable=False, index=True)
    whois_data = Column(JSON, nullable=True)
    whois_last_updated = Column(DateTime, nullable=True)
    document = Column(JSON, nullable=False)

    @classmethod
    def from_record(cls, record: EmailRecord) -> "EmailRow":
        flagged_urls = {t.url for t in record.threat_results if t.suspicious}
        flagged_urls.update(u.url for u in record.extracted_urls if u.suspicious)
        return cls(
            email_id=record.id,
            sender_address=record.sender.address,
            sender_domain=record.sender.domain,
            timestamp=record.timestamp or record.processed_at,
            processed_at=record.processed_at,
            safebrowsing_flag=record.flags.safebrowsing_flag,
            extracted_url_count=len(record.extracted_urls),
            suspicious_url_count=len(flagged_urls),
            risk_score=record.risk_score.score if record.risk_score else None,
            risk_details=record.risk_score.to_dict() if record.risk_score else None,
            document=record.to_dict(),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = dict(self.document)
        payload["recordId"] = self.id
        payload["riskScore"] = self.risk_details
        payload["senderProfileProcessed"] = self.sender_profile_processed
        sender = dict(payload.get("sender") or {})
        sender["whoisData"] = self.whois_data
        sender["whoisLastUpdated"] = self.whois_last_updated.isoformat() if self.whois_last_updated else None
        payload["sender"] = sender
        return payload


class SenderProfileRow(Base):
    __tablename__ = "sender_profiles"

    id = Column(Integer, primary_key=True, index=True)
    sender_address = Column(String, unique=True, index=True, nullable=False)
    sender_domain = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    total_emails = Column(Integer, default=0, nullable=False)
    suspicious_emails = Column(Integer, default=0, nullable=False)
    suspicious_link_count = Column(Integer, default=0, nullable=False)
    phishing_link_count = Column(Integer, default=0, nullable=False)
    unwanted_software_count = Column(Integer, default=0, nullable=False)
    suspicious_keyword_count = Column(Integer, default=0, nullable=False)
    last_authentication = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False)
    last_updated = Column(DateTime, nullable=False)


class SenderProfileEmailRow(Base):
    __tablename__ = "sender_profile_emails"
    __table_args__ = (UniqueConstraint("profile_id", "email_id", name="uq_profile_email"),)

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("sender_profiles.id", ondelete="CASCADE"), index=True, nullable=False)
    email_id = Column(String, nullable=False)
    entry = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)


class CacheEntryMixin:
    id = Column(Integer, primary_key=True)
    key = Column(String, unique=True, index=True, nullable=False)
    value = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)
    ttl_seconds = Column(Integer, nullable=False)


class DomainAuthenticationRow(CacheEntryMixin, Base):
    __tablename__ = "domain_authentication"


class WhoisRow(CacheEntryMixin, Base):
    __tablename__ = "whois"


CACHE_TABLES = {
    DomainAuthenticationRow.__tablename__: DomainAuthenticationRow,
    WhoisRow.__tablename__: WhoisRow,
}


def _engine_options(database_url: str) -> Dict[str, Any]:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return {}
    if not url.database or url.database == ":memory:":
        # One shared connection, or every session would see its own empty database
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    directory = os.path.dirname(url.database)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return {}


class EmailStore:
    """
    Owns the async engine and session factory

    Call ``open()`` before use and ``close()`` on shutdown.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self.engine = None
        self._sessions = None

    async def open(self) -> None:
        self.engine = create_async_engine(
            self.database_url,
            echo=self.echo,
            future=True,
            **_engine_options(self.database_url)
        )
        self._sessions = sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Email store ready ({make_url(self.database_url).get_backend_name()})")

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self._sessions = None

    def session(self) -> AsyncSession:
        if self._sessions is None:
            raise RuntimeError("EmailStore is not open")
        return self._sessions()

    # ------------------------------------------------------------------
    # Emails
    # ------------------------------------------------------------------

    async def save_email(self, record: EmailRecord) -> Tuple[int, bool]:
        """
        Insert a record unless its id is already stored

        Returns:
            (storage id, created). ``created`` is False for duplicates,
            including a concurrent insert that won the unique constraint.
        """
        async with self.session() as session:
            existing = await session.scalar(select(EmailRow.id).where(EmailRow.email_id == record.id))
            if existing is not None:
                logger.info(f"Email {record.id} already stored as {existing}")
                return existing, False

            row = EmailRow.from_record(record)
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                existing = await session.scalar(select(EmailRow.id).where(EmailRow.email_id == record.id))
                logger.info(f"Email {record.id} stored concurrently as {existing}")
                return existing, False

            logger.info(f"Stored email {record.id} as {row.id}")
            return row.id, True

    async def get_email(self, email_id: str) -> Optional[Dict[str, Any]]:
        async with self.session() as session:
            row = await session.scalar(select(EmailRow).where(EmailRow.email_id == email_id))
            return row.to_dict() if row else None

    async def update_whois(self, email_id: str, whois_data: Dict[str, Any], updated_at: Optional[datetime] = None) -> bool:
        """Attach WHOIS data to a stored email; False if the id is unknown"""
        async with self.session() as session:
            result = await session.execute(
                update(EmailRow)
                .where(EmailRow.email_id == email_id)
                .values(whois_data=whois_data, whois_last_updated=updated_at or datetime.utcnow())
            )
            await session.commit()
            return result.rowcount > 0

    async def set_risk_score(self, email_id: str, risk: RiskScore) -> None:
        async with self.session() as session:
            await session.execute(
                update(EmailRow)
                .where(EmailRow.email_id == email_id)
                .values(risk_score=risk.score, risk_details=risk.to_dict())
            )
            await session.commit()

    async def unscored_emails(self, limit: int = 100) -> List[Dict[str, Any]]:
        async with self.session() as session:
            rows = await session.scalars(
                select(EmailRow).where(EmailRow.risk_score.is_(None)).order_by(EmailRow.id).limit(limit)
            )
            return [dict(row.document) for row in rows]

    async def unprocessed_profile_emails(self, limit: int = 100) -> List[Dict[str, Any]]:
        async with self.session() as session:
            rows = await session.scalars(
                select(EmailRow)
                .where(EmailRow.sender_profile_processed.is_(False))
                .order_by(EmailRow.id)
                .limit(limit)
            )
            return [dict(row.document) for row in rows]

    async def mark_profile_processed(self, email_id: str) -> None:
        async with self.session() as session:
            await session.execute(
                update(EmailRow).where(EmailRow.email_id == email_id).values(sender_profile_processed=True)
            )
            await session.commit()

    async def email_stats(self, start: datetime, end: datetime) -> Dict[str, Any]:
        """Totals for emails with start <= timestamp < end"""
        async with self.session() as session:
            result = await session.execute(
                select(
                    func.count(EmailRow.id),
                    func.coalesce(func.sum(EmailRow.safebrowsing_flag.cast(Integer)), 0),
                    func.coalesce(func.sum(EmailRow.suspicious_url_count), 0),
                    func.avg(EmailRow.risk_score),
                ).where(EmailRow.timestamp >= start, EmailRow.timestamp < end)
            )
            total, flagged, suspicious_urls, average = result.one()
        return {
            "total": int(total or 0),
            "flagged": int(flagged or 0),
            "suspicious_urls": int(suspicious_urls or 0),
            "average_risk_score": round(float(average), 1) if average is not None else None,
        }

    async def daily_stats(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        day = func.date(EmailRow.timestamp)
        async with self.session() as session:
            result = await session.execute(
                select(
                    day,
                    func.count(EmailRow.id),
                    func.coalesce(func.sum(EmailRow.safebrowsing_flag.cast(Integer)), 0),
                )
                .where(EmailRow.timestamp >= start, EmailRow.timestamp < end)
                .group_by(day)
                .order_by(day)
            )
            return [
                {"date": str(date), "totalEmails": int(total), "flaggedEmails": int(flagged)}
                for date, total, flagged in result.all()
            ]

    # ------------------------------------------------------------------
    # Sender profiles
    # ------------------------------------------------------------------

    async def _profile_id(self, address: str, now: datetime) -> int:
        async with self.session() as session:
            existing = await session.scalar(
                select(SenderProfileRow.id).where(SenderProfileRow.sender_address == address)
            )
            if existing is not None:
                return existing

            row = SenderProfileRow(sender_address=address, created_at=now, last_updated=now)
            session.add(row)
            try:
                await session.commit()
                return row.id
            except IntegrityError:
                await session.rollback()
                return await session.scalar(
                    select(SenderProfileRow.id).where(SenderProfileRow.sender_address == address)
                )

    async def add_to_sender_profile(
        self,
        sender: Dict[str, Any],
        entry: Dict[str, Any],
        increments: Dict[str, int],
        last_authentication: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Append an email entry to its sender's profile and bump the counters

        The entry insert and the counter increments commit together, and
        counters are incremented in SQL. Returns False if this email was
        already applied to the profile.
        """
        unknown = set(increments) - set(PROFILE_COUNTERS)
        if unknown:
            raise ValueError(f"Unknown profile counters: {sorted(unknown)}")

        now = datetime.utcnow()
        profile_id = await self._profile_id(sender["address"], now)

        values = {name: getattr(SenderProfileRow, name) + amount for name, amount in increments.items()}
        values["last_updated"] = now
        if sender.get("domain"):
            values["sender_domain"] = sender["domain"]
        if sender.get("displayName"):
            values["display_name"] = sender["displayName"]
        if last_authentication is not None:
            values["last_authentication"] = last_authentication

        async with self.session() as session:
            session.add(SenderProfileEmailRow(
                profile_id=profile_id,
                email_id=entry["id"],
                entry=entry,
                created_at=now
            ))
            try:
                # The entry is flushed before the UPDATE runs, so a duplicate fails here
                await session.execute(
                    update(SenderProfileRow).where(SenderProfileRow.id == profile_id).values(**values)
                )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(f"Email {entry['id']} already applied to profile {sender['address']}")
                return False
        return True

    async def get_sender_profile(self, address: str) -> Optional[Dict[str, Any]]:
        async with self.session() as session:
            profile = await session.scalar(
                select(SenderProfileRow).where(SenderProfileRow.sender_address == address)
            )
            if profile is None:
                return None
            entries = await session.scalars(
                select(SenderProfileEmailRow.entry)
                .where(SenderProfileEmailRow.profile_id == profile.id)
                .order_by(SenderProfileEmailRow.id)
            )
            emails = list(entries)

        return {
            "sender": {
                "address": profile.sender_address,
                "domain": profile.sender_domain,
                "displayName": profile.display_name,
            },
            "emails": emails,
            "securityMetrics": {
                "totalEmails": profile.total_emails,
                "suspiciousEmails": profile.suspicious_emails,
                "suspiciousLinkCount": profile.suspicious_link_count,
                "phishingLinkCount": profile.phishing_link_count,
                "unwantedSoftwareCount": profile.unwanted_software_count,
                "suspiciousKeywordCount": profile.suspicious_keyword_count,
            },
            "lastAuthenticationStatus": profile.last_authentication,
            "created": profile.created_at.isoformat(),
            "lastUpdated": profile.last_updated.isoformat(),
        }

    # ------------------------------------------------------------------
    # Cache tables
    # ------------------------------------------------------------------

    async def get_cache_entry(self, table: str, key: str) -> Optional[Tuple[Any, datetime, int]]:
        model = CACHE_TABLES[table]
        async with self.session() as session:
            row = await session.scalar(select(model).where(model.key == key))
            if row is None:
                return None
            return row.value, row.created_at, row.ttl_seconds

    async def put_cache_entry(self, table: str, key: str, value: Any, created_at: datetime, ttl_seconds: int) -> None:
        """Insert or overwrite a cache entry; last write wins"""
        model = CACHE_TABLES[table]
        fields = {"value": value, "created_at": created_at, "ttl_seconds": ttl_seconds}
        async with self.session() as session:
            row = await session.scalar(select(model).where(model.key == key))
            if row is None:
                session.add(model(key=key, **fields))
            else:
                for name, field_value in fields.items():
                    setattr(row, name, field_value)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                await session.execute(update(model).where(model.key == key).values(**fields))
                await session.commit()
