"""Custom exceptions for podsync."""

from enum import Enum
from typing import Optional


class PodsyncError(Exception):
    """Base exception for all podsync errors."""

    pass


class FetchFailure(str, Enum):
    """Reasons a feed fetch can fail at the transport level."""

    NO_RESPONSE = "no_response"


class TransportError(PodsyncError):
    """Feed could not be fetched (timeout, network failure, HTTP error).

    Raised by the feed client only after every retry attempt failed.
    """

    def __init__(
        self,
        url: str,
        attempts: int,
        reason: FetchFailure = FetchFailure.NO_RESPONSE,
        last_error: Optional[BaseException] = None,
    ):
        self.url = url
        self.attempts = attempts
        self.reason = reason
        self.last_error = last_error
        message = f"No response from feed {url} after {attempts} attempt(s)"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)


class FeedParseError(PodsyncError):
    """Feed document is malformed or not a feed at all."""

    def __init__(self, message: str, url: str = ""):
        self.url = url
        super().__init__(message)


class StorageError(PodsyncError):
    """Database operation failed and was rolled back."""

    pass


class ConfigError(PodsyncError):
    """Configuration or import file errors."""

    pass
