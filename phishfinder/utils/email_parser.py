"""
Email Parser Utility
Cleans email bodies and parses sender/recipient fields for analysis
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# Providers whose domain says nothing about the sender's organization
PERSONAL_EMAIL_PROVIDERS = {
    "gmail.com", "googlemail.com", "yahoo.com", "hotmail.com", "outlook.com",
    "live.com", "aol.com", "icloud.com", "protonmail.com", "proton.me"
}


@dataclass
class CleanedBody:
    preserved_html: str
    cleaned_text: str


class EmailParser:
    """Parse raw email fields into the values the analyzers work on"""

    EMAIL_PATTERN = re.compile(
        r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}',
        re.IGNORECASE
    )

    DISPLAY_NAME_PATTERN = re.compile(r'^\s*"?([^"<]+?)"?\s*<([^>]*)>\s*$')

    SIGNATURE_MARKERS = [
        re.compile(r'^--\s*$', re.MULTILINE),
        re.compile(r'^Sent from', re.MULTILINE),
    ]

    NON_CONTENT_TAGS = ["script", "style", "head", "title", "meta", "link", "noscript"]

    ORGANIZATION_PATTERNS = [
        re.compile(r'([A-Z][A-Za-z0-9 &.,]+?)\s+(?:Corporation|Inc|LLC|Ltd|Company|Department|Team)\b'),
        re.compile(r'(?:Regards|Sincerely|Thanks),?\s*\n?\s*(?:The\s+)?([A-Z][A-Za-z0-9 &.]+?)(?:\s+Team)?\s*$', re.MULTILINE),
        re.compile(r'^([A-Z][A-Za-z0-9 &.,]+?)\s+(?:Headquarters|Office|Building)\b', re.MULTILINE),
    ]

    def clean_body(self, body: str) -> CleanedBody:
        """
        Build the two views of an email body

        The preserved view keeps markup so links can be inspected; the
        cleaned view is readable text with non-content markup dropped,
        anything after a signature marker removed and whitespace collapsed.
        """
        preserved = re.sub(r'\r\n?', '\n', body)
        preserved = re.sub(r'\n\s*\n\s*\n+', '\n\n', preserved).strip()

        soup = BeautifulSoup(body, "html.parser")
        for tag in soup(self.NON_CONTENT_TAGS):
            tag.decompose()
        text = soup.get_text("\n")
        text = re.sub(r'\r\n?', '\n', text)

        for marker in self.SIGNATURE_MARKERS:
            text = marker.split(text, maxsplit=1)[0]

        cleaned = re.sub(r'\s+', ' ', text).strip()
        return CleanedBody(preserved_html=preserved, cleaned_text=cleaned)

    def extract_address(self, value: Optional[str]) -> Optional[str]:
        """Bare address from 'Name <addr>' or 'addr'"""
        if not value:
            return None
        match = self.EMAIL_PATTERN.search(value)
        return match.group(0).lower() if match else None

    def extract_display_name(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        match = self.DISPLAY_NAME_PATTERN.match(value)
        if not match:
            return None
        name = match.group(1).strip()
        return name or None

    def extract_domain(self, value: Optional[str]) -> Optional[str]:
        address = self.extract_address(value)
        if not address:
            return None
        return address.rsplit("@", 1)[1]

    def parse_recipients(self, value: Any) -> List[Dict[str, Optional[str]]]:
        """
        Split a recipient field into address/displayName/domain entries

        Accepts a comma-separated string or a list of strings. Entries
        without an address are dropped.
        """
        if not value:
            return []
        parts = value if isinstance(value, list) else str(value).split(",")

        recipients = []
        for part in parts:
            if not isinstance(part, str):
                continue
            address = self.extract_address(part)
            if not address:
                continue
            recipients.append({
                "address": address,
                "displayName": self.extract_display_name(part),
                "domain": address.rsplit("@", 1)[1],
            })
        return recipients

    def extract_organization(self, domain: Optional[str], body: Optional[str]) -> Optional[str]:
        """
        Best-effort organization name for a sender

        Personal mailbox providers yield None. Otherwise the first label of
        the domain is title-cased; when that is too short to be a name the
        body is searched for company, signature or letterhead phrasing.
        """
        if not domain:
            return None
        domain = domain.lower()
        if domain in PERSONAL_EMAIL_PROVIDERS:
            return None

        label = domain.split(".")[0]
        from_domain = re.sub(r'[-_]+', ' ', label).title().strip()
        if len(from_domain) > 3:
            return from_domain

        for pattern in self.ORGANIZATION_PATTERNS:
            match = pattern.search(body or "")
            if not match:
                continue
            candidate = re.sub(r'\s+', ' ', match.group(1)).strip(" ,.")
            if 3 < len(candidate) < 50:
                return candidate

        return from_domain or None

    @staticmethod
    def parse_timestamp(value: Any) -> Optional[datetime]:
        """
        Naive UTC datetime from ISO text, epoch milliseconds or a datetime

        Unparseable values yield None.
        """
        if value is None or value == "":
            return None
        try:
            if isinstance(value, datetime):
                parsed = value
            elif isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
                parsed = datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
            else:
                parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except (ValueError, OverflowError, OSError) as e:
            logger.warning(f"Unparseable email timestamp {value!r}: {e}")
            return None

        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed


# Singleton instance
_parser: Optional[EmailParser] = None


def get_email_parser() -> EmailParser:
    """Get or create email parser instance"""
    global _parser
    if _parser is None:
        _parser = EmailParser()
    return _parser
