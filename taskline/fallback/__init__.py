"""Slow-path interpretation through an external completion service."""

from taskline.fallback.client import FallbackAnswer, FallbackClient, parse_completion
from taskline.fallback.service import CompletionService, HttpCompletionService

__all__ = [
    "CompletionService",
    "FallbackAnswer",
    "FallbackClient",
    "HttpCompletionService",
    "parse_completion",
]
