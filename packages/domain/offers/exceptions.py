"""
Error types for the competitive-offer engine
"""
from typing import Optional


class OfferEngineError(Exception):
    """Base class for all offer engine errors"""


class ChargeValidationError(OfferEngineError, ValueError):
    """Analysis request is malformed (missing category, non-positive amount, ...)"""


class SearchUnavailableError(OfferEngineError):
    """External AI collaborator unreachable, failed, or timed out"""


class MalformedResponseError(OfferEngineError):
    """AI collaborator output failed schema validation"""

    def __init__(self, message: str, raw_response: Optional[str] = None):
        super().__init__(message)
        self.raw_response = raw_response


class CacheStoreError(OfferEngineError):
    """Persistence I/O failure in the suggestion cache"""
