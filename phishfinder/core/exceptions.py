"""
Exception types raised across component boundaries
"""


class PhishFinderError(Exception):
    """Base class for errors the API layer translates into responses"""


class InvalidEmailError(PhishFinderError):
    """Submitted email content is missing or malformed"""


class ConfigurationError(PhishFinderError):
    """A required setting (usually an API credential) is not configured"""


class WhoisLookupError(PhishFinderError):
    """WHOIS service unreachable or answered with a non-2xx status"""


class ContentDetectorError(PhishFinderError):
    """Content detector unreachable or returned an unsuccessful payload"""
