"""Retry handling and failure diagnostics."""

from .handler import RetryableErrorHandler, classify_error, describe_error
from .models import EnvironmentInfo, ErrorContext, ErrorSummary, RetryContext

__all__ = [
    "RetryableErrorHandler",
    "RetryContext",
    "ErrorContext",
    "EnvironmentInfo",
    "ErrorSummary",
    "classify_error",
    "describe_error",
]
