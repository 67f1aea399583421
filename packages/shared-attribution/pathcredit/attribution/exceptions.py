"""Custom exceptions for attribution."""

from __future__ import annotations


class AttributionError(Exception):
    """Base exception for attribution errors."""

    pass


class NotFoundError(AttributionError, LookupError):
    """Raised when a referenced event is absent from the supplied data."""

    pass


class InvalidArgumentError(AttributionError, ValueError):
    """Raised for an unknown model identifier or a malformed date range."""

    pass


class DataUnavailableError(AttributionError):
    """Raised when a channel or event lookup cannot be resolved."""

    pass


class InternalError(AttributionError):
    """Raised when an arithmetic invariant is violated."""

    pass
