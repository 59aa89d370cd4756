"""Exception hierarchy for goal replay resolution."""

from typing import Any, Dict, Optional


class ReplaySearchError(Exception):
    """Base exception for all goal replay errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SearchError(ReplaySearchError):
    """A remote search attempt failed."""

    pass


class NetworkError(SearchError):
    """Transport failure or unexpected HTTP status from Reddit."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class ParseError(SearchError):
    """Reddit answered with a body that is not a search listing."""

    pass


class BlockedError(SearchError):
    """Reddit detected automated traffic (CAPTCHA, bot page or throttling)."""

    def __init__(
        self,
        message: str,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.reason = reason


class PersistenceError(ReplaySearchError):
    """The goal link cache could not be written to durable storage."""

    pass


class ResolutionCancelled(ReplaySearchError):
    """The caller cancelled resolution or its deadline passed."""

    pass
