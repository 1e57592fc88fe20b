"""
AI Service Exceptions

This module contains exception classes for the translation client and dispatcher.
Separated to avoid circular imports between client.py and providers.py.
"""

from typing import Optional


class TranslationError(Exception):
    """Translation service error with optional code and details."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ConfigError(TranslationError):
    """Provider is not usable (missing API key, no provider configured)."""

    def __init__(self, message: str, code: str = "config_error", details: dict = None):
        super().__init__(message, code=code, details=details)


class TransportError(TranslationError):
    """Non-2xx response that is not a rate-limit signal, or a network failure."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: dict = None):
        super().__init__(message, code="transport_error", details=details)
        self.status_code = status_code


class ParseError(TranslationError):
    """Response body was not JSON or carried no usable content."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, code="parse_error", details=details)


class RateLimitError(TranslationError):
    """Rate-limit retries exceeded the caller-supplied cap."""

    def __init__(self, message: str, attempts: int = 0, details: dict = None):
        super().__init__(message, code="rate_limited", details=details)
        self.attempts = attempts
