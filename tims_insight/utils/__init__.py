"""
Utilities Package - Logging and Exception Handling
"""
from .logging import get_logger, setup_logging, redact_secrets
from .exceptions import (
    InsightError,
    MissingInputError,
    ConfigurationError,
    UpstreamListingError,
    UpstreamInvocationError,
    NoUsableModelError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "redact_secrets",
    "InsightError",
    "MissingInputError",
    "ConfigurationError",
    "UpstreamListingError",
    "UpstreamInvocationError",
    "NoUsableModelError",
]
