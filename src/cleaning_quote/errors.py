"""
Error taxonomy shared by the storage, lifecycle and service layers.
"""
from typing import Optional


class QuoteError(Exception):
    """Base class for quote service errors."""


class ResourceNotFoundError(QuoteError):
    """The resolver exhausted every candidate and fallback search."""

    def __init__(self, identifier: str, attempts: int = 0):
        self.identifier = identifier
        self.attempts = attempts
        super().__init__(f"Resource not found: {identifier!r} ({attempts} lookups)")


class TransportError(QuoteError):
    """Network failure or 5xx from a remote collaborator. Safe to retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ConfigurationError(QuoteError):
    """Required collaborator credentials are absent."""


class MutationError(QuoteError):
    """The store rejected a lock/cancel write. `detail` is the raw response."""

    def __init__(self, message: str, detail: str = ""):
        self.detail = detail
        super().__init__(message)


class InvalidTransitionError(QuoteError):
    """A lifecycle transition that the state machine does not allow."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move quote from {_label(current)} to {_label(target)}")


class InvalidRequestError(QuoteError):
    """Malformed caller input (missing id, unparsable payload)."""


def _label(status) -> str:
    return getattr(status, 'value', str(status))
