"""
DNS Authentication Resolver
Looks up SPF, DKIM and DMARC TXT records for a sending domain

Each sub-lookup ends in one of three states: found, missing (the record is
confirmed absent) or error (the lookup itself failed). Found and missing
answers are cached; errors are not, so a transient failure is retried on
the next request.

DKIM selectors are chosen by the sender and cannot be enumerated through
DNS. Probing a short fixed list of common selectors is a best-effort
approximation: a domain that signs with another selector reports "missing".
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import dns.asyncresolver
import dns.exception
import dns.resolver

from phishfinder.core.models import Authentication, AuthenticationCheck

logger = logging.getLogger(__name__)

DEFAULT_DKIM_SELECTORS = ("default", "selector1", "selector2")

SPF_QUALIFIER_PATTERN = re.compile(r'(?:^|\s)([-~+?]?)all(?:\s|$)', re.IGNORECASE)
DMARC_POLICY_PATTERN = re.compile(r'(?:^|;)\s*p\s*=\s*([a-z]+)', re.IGNORECASE)

SPF_STATUSES = {"-": "hardfail", "~": "softfail", "+": "pass", "": "pass", "?": "neutral"}
DMARC_POLICIES = {"none", "quarantine", "reject"}


class RecordState(str, Enum):
    FOUND = "found"
    MISSING = "missing"
    ERROR = "error"


@dataclass
class RecordLookup:
    """Outcome of one TXT sub-lookup"""
    state: RecordState
    record: Optional[str] = None
    error: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.state == RecordState.FOUND

    @property
    def summary_label(self) -> str:
        return {RecordState.FOUND: "Pass", RecordState.MISSING: "Fail"}.get(self.state, "Error")

    def display(self, kind: str) -> str:
        """Record text, or the wire sentinel for missing and failed lookups"""
        if self.state == RecordState.FOUND:
            return self.record
        if self.state == RecordState.MISSING:
            return f"No {kind} record found"
        return f"Error fetching {kind} record"

    def to_cache(self) -> Dict[str, Any]:
        return {"state": self.state.value, "record": self.record}

    @classmethod
    def from_cache(cls, data: Dict[str, Any]) -> "RecordLookup":
        return cls(state=RecordState(data["state"]), record=data.get("record"))

    @classmethod
    def found(cls, record: str) -> "RecordLookup":
        return cls(state=RecordState.FOUND, record=record)

    @classmethod
    def missing(cls) -> "RecordLookup":
        return cls(state=RecordState.MISSING)

    @classmethod
    def failed(cls, error: str) -> "RecordLookup":
        return cls(state=RecordState.ERROR, error=error)


@dataclass
class AuthenticationDetails:
    spf: RecordLookup
    dkim: RecordLookup
    dmarc: RecordLookup

    @property
    def summary(self) -> str:
        # "Pass" means a record was published, not that the message passed a policy check
        return (
            f"SPF: {self.spf.summary_label}, "
            f"DKIM: {self.dkim.summary_label}, "
            f"DMARC: {self.dmarc.summary_label}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spf": self.spf.display("SPF"),
            "dkim": self.dkim.display("DKIM"),
            "dmarc": self.dmarc.display("DMARC"),
            "summary": self.summary,
            "states": {
                "spf": self.spf.state.value,
                "dkim": self.dkim.state.value,
                "dmarc": self.dmarc.state.value,
            },
        }

    def to_authentication(self) -> Authentication:
        """Presence and declared status, kept as separate fields"""
        return Authentication(
            spf=AuthenticationCheck(
                record=self.spf.record,
                status="error" if self.spf.state == RecordState.ERROR else extract_spf_status(self.spf.record),
                present=self.spf.present
            ),
            dkim=AuthenticationCheck(
                record=self.dkim.record,
                status={RecordState.FOUND: "present", RecordState.MISSING: "missing"}.get(self.dkim.state, "error"),
                present=self.dkim.present
            ),
            dmarc=AuthenticationCheck(
                record=self.dmarc.record,
                status="error" if self.dmarc.state == RecordState.ERROR else extract_dmarc_policy(self.dmarc.record),
                present=self.dmarc.present
            ),
            summary=self.summary
        )


def extract_spf_status(record: Optional[str]) -> str:
    """
    SPF status from the record's ``all`` mechanism

    Returns one of missing, hardfail (-all), softfail (~all), pass (+all),
    neutral (?all or no ``all`` mechanism).
    """
    if not record:
        return "missing"
    match = SPF_QUALIFIER_PATTERN.search(record)
    if not match:
        return "neutral"
    return SPF_STATUSES.get(match.group(1), "neutral")


def extract_dmarc_policy(record: Optional[str]) -> str:
    """
    DMARC policy from the ``p=`` tag

    No record means no policy ("none"); a record without a recognizable
    ``p=`` tag is "unknown".
    """
    if not record:
        return "none"
    match = DMARC_POLICY_PATTERN.search(record)
    if not match:
        return "unknown"
    policy = match.group(1).lower()
    return policy if policy in DMARC_POLICIES else "unknown"


class DnsAuthResolver:
    """
    Resolves and caches SPF, DKIM and DMARC records

    Args:
        resolver: object with ``async resolve(name, rdtype)``; defaults to
            dnspython's async resolver bounded by ``timeout``
        cache: object with async ``get(key)`` / ``set(key, value)``
        selectors: DKIM selectors probed in order
    """

    def __init__(
        self,
        resolver=None,
        cache=None,
        selectors: Sequence[str] = DEFAULT_DKIM_SELECTORS,
        timeout: float = 5.0
    ):
        if resolver is None:
            resolver = dns.asyncresolver.Resolver()
            resolver.lifetime = timeout
        self.resolver = resolver
        self.cache = cache
        self.selectors = tuple(selectors)

    async def resolve(self, domain: str) -> AuthenticationDetails:
        """Run the three sub-lookups concurrently; never raises"""
        domain = domain.strip().lower().rstrip(".")

        results = await asyncio.gather(
            self.get_spf(domain),
            self.get_dkim(domain),
            self.get_dmarc(domain),
            return_exceptions=True
        )

        lookups: List[RecordLookup] = []
        for kind, result in zip(("SPF", "DKIM", "DMARC"), results):
            if isinstance(result, RecordLookup):
                lookups.append(result)
            else:
                logger.error(f"{kind} lookup for {domain} raised unexpectedly: {result!r}")
                lookups.append(RecordLookup.failed(repr(result)))

        details = AuthenticationDetails(*lookups)
        logger.info(f"Authentication records for {domain}: {details.summary}")
        return details

    async def get_spf(self, domain: str) -> RecordLookup:
        return await self._cached("spf", domain, self._lookup_spf)

    async def get_dkim(self, domain: str) -> RecordLookup:
        return await self._cached("dkim", domain, self._lookup_dkim)

    async def get_dmarc(self, domain: str) -> RecordLookup:
        return await self._cached("dmarc", domain, self._lookup_dmarc)

    async def _cached(self, kind: str, domain: str, lookup) -> RecordLookup:
        key = f"{kind}:{domain}"
        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit for {kind.upper()} record: {domain}")
                return RecordLookup.from_cache(cached)

        result = await lookup(domain)

        if self.cache is not None and result.state != RecordState.ERROR:
            await self.cache.set(key, result.to_cache())
        return result

    async def _txt(self, name: str) -> List[str]:
        answer = await self.resolver.resolve(name, "TXT")
        records = []
        for rdata in answer:
            chunks = getattr(rdata, "strings", None)
            text = b"".join(chunks).decode("utf-8", errors="replace") if chunks else str(rdata).strip('"')
            records.append(text)
        return records

    async def _query(self, name: str, kind: str) -> Optional[List[str]]:
        """TXT strings for name, [] when confirmed absent, None on failure"""
        try:
            return await self._txt(name)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except (dns.exception.DNSException, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"{kind} TXT lookup failed for {name}: {e!r}")
            return None

    async def _lookup_spf(self, domain: str) -> RecordLookup:
        records = await self._query(domain, "SPF")
        if records is None:
            return RecordLookup.failed(f"SPF lookup failed for {domain}")
        spf = next((r for r in records if r.lower().startswith("v=spf1")), None)
        return RecordLookup.found(spf) if spf else RecordLookup.missing()

    async def _lookup_dkim(self, domain: str) -> RecordLookup:
        errored = False
        for selector in self.selectors:
            records = await self._query(f"{selector}._domainkey.{domain}", "DKIM")
            if records is None:
                errored = True
                continue
            record = "".join(records).strip()
            if record:
                logger.debug(f"DKIM record for {domain} found with selector {selector}")
                return RecordLookup.found(record)

        if errored:
            return RecordLookup.failed(f"DKIM probe failed for {domain}")
        return RecordLookup.missing()

    async def _lookup_dmarc(self, domain: str) -> RecordLookup:
        records = await self._query(f"_dmarc.{domain}", "DMARC")
        if records is None:
            return RecordLookup.failed(f"DMARC lookup failed for {domain}")
        dmarc = next((r for r in records if r.lower().startswith("v=dmarc1")), None)
        if dmarc is None:
            dmarc = "".join(records).strip() or None
        return RecordLookup.found(dmarc) if dmarc else RecordLookup.missing()
