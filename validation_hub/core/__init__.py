"""
Core Package - Validation Hub
validation_hub/core/__init__.py

Core infrastructure: dependencies, exceptions, logging.
"""

from validation_hub.core.exceptions import (
    CacheCorrupt,
    FetchError,
    NoIdentity,
    PipelineException,
    ProviderMalformed,
    ProviderUnavailable,
)

__all__ = [
    "CacheCorrupt",
    "FetchError",
    "NoIdentity",
    "PipelineException",
    "ProviderMalformed",
    "ProviderUnavailable",
]
