"""
Chat bridge error taxonomy.

    ValidationError      - missing or malformed input (empty message, empty body)
    UpstreamUnavailable  - the AI service webhook failed or returned non-2xx
    ParseFailure         - nothing extractable from an inbound payload

A poll that runs out of attempts is NOT an error: see PollState.EXHAUSTED.
"""
from typing import Optional


class BridgeError(Exception):
    """Base class for chat bridge failures."""
    pass


class ValidationError(BridgeError):
    """Raised when caller input fails validation."""
    pass


class UpstreamUnavailable(BridgeError):
    """Raised when the outbound webhook call does not succeed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseFailure(BridgeError):
    """Raised when an inbound payload carries no reply at all."""
    pass
