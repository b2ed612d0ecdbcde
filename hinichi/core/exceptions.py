"""Custom exceptions for hinichi."""

from typing import List, Optional


class HinichiError(Exception):
    """Base exception for hinichi."""
    pass


class ConfigurationError(HinichiError):
    """Configuration related errors."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class UpstreamUnavailableError(HinichiError):
    """The listing upstream never returned an OK response for any candidate date."""

    def __init__(self, message: str, requested_date: str):
        super().__init__(message)
        self.requested_date = requested_date


class NoEntriesFoundError(HinichiError):
    """The upstream answered but every probed listing was empty."""

    def __init__(self, message: str, requested_date: str):
        super().__init__(message)
        self.requested_date = requested_date


class APIError(HinichiError):
    """External API errors."""

    def __init__(self, message: str, status_code: int = None, response_text: str = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class CacheError(HinichiError):
    """Cache related errors."""
    pass
