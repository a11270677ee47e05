"""Exceptions raised while retrieving Confluence content."""


class FetcherError(Exception):
    """Base exception for fetcher-related errors."""
    pass


class PayloadError(FetcherError):
    """Exception for API responses that do not have the expected shape."""
    pass
