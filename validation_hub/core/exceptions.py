"""
Custom Exceptions - Validation Hub
validation_hub/core/exceptions.py

Exception classes for the tile data pipeline.
"""

from typing import Optional


class PipelineException(Exception):
    """Base exception for tile pipeline operations."""

    pass


class FetchError(PipelineException):
    """A tile could not be fetched from its provider."""

    error_code = "FETCH_ERROR"

    def __init__(self, message: str, provider: Optional[str] = None):
        self.message = message
        self.provider = provider
        super().__init__(message)


class ProviderUnavailable(FetchError):
    """Network failure, timeout, open circuit or error status from a provider."""

    error_code = "PROVIDER_UNAVAILABLE"

    def __init__(
        self,
        message: str = "Provider unavailable",
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ):
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message, provider)


class ProviderMalformed(FetchError):
    """Provider payload failed the adapter's minimal shape checks."""

    error_code = "PROVIDER_MALFORMED"
    retryable = False

    def __init__(
        self,
        message: str = "Provider returned malformed data",
        provider: Optional[str] = None,
        tile_type: Optional[str] = None,
    ):
        self.tile_type = tile_type
        super().__init__(message, provider)


class CacheCorrupt(PipelineException):
    """Stored cache entry failed to deserialize."""

    def __init__(self, key: str, tier: str, reason: str = ""):
        self.key = key
        self.tier = tier
        self.reason = reason
        message = f"Corrupt {tier} cache entry {key}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NoIdentity(PipelineException):
    """Persisted-tier operation attempted without a user/session context."""

    def __init__(self, message: str = "No user or session identity for persisted tier"):
        self.message = message
        super().__init__(message)
