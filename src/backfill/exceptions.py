"""Custom exceptions for the kline backfill service.

Exchange, store and configuration errors live here so the data layer and
the exchange layer can share them without circular imports.
"""


class BackfillError(Exception):
    """Base exception for all backfill errors."""


class ConfigurationError(BackfillError):
    """Raised when a required setting is missing or invalid at startup."""

    def __init__(self, message: str, setting: str | None = None) -> None:
        super().__init__(message)
        self.setting = setting


class ExchangeRequestError(BackfillError):
    """Raised when a request to the exchange does not yield usable data."""


class NetworkError(ExchangeRequestError):
    """Raised when a request fails in transport or returns a non-success status."""


class ParseError(ExchangeRequestError):
    """Raised when a response body is not well-formed or has an unexpected shape."""


class StoreError(BackfillError):
    """Raised for SQLite failures other than an expected uniqueness conflict."""
