"""Custom exceptions for the crypto tracker.

Catalog errors say whether they are worth retrying (``recoverable``), so
the client's retry wrapper never has to inspect HTTP details again.
"""


class TrackerError(Exception):
    """Base exception for all tracker errors."""


class CatalogError(TrackerError):
    """Base for failures reported by the remote catalog client."""

    recoverable: bool = False

    def __init__(self, message: str = "", *, status_code: int | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or "")
        self.status_code = status_code


class InvalidInputError(CatalogError):
    """Malformed query, id list or date range."""


class TransportError(CatalogError):
    """Invalid response from server."""

    recoverable = True


class NotFoundError(CatalogError):
    """Cryptocurrency not found."""


class RateLimitedError(CatalogError):
    """Rate limited - too many requests."""

    recoverable = True


class DecodeError(CatalogError):
    """Failed to decode response data."""


class UnpricedAssetError(DecodeError):
    """Asset has no usable current price."""


class NoDataError(CatalogError):
    """No data received."""
