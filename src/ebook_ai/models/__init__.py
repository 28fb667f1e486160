"""Data models for ebook-ai."""

from .data_models import (
    Provider,
    BookType,
    AIConfig,
    PromptConfig,
    GenerationOptions,
    GenerationRequest,
    GenerationResult,
    RateLimitInfo,
    RetryState,
    Chapter,
    ProxyCheckResult,
)

__all__ = [
    "Provider",
    "BookType",
    "AIConfig",
    "PromptConfig",
    "GenerationOptions",
    "GenerationRequest",
    "GenerationResult",
    "RateLimitInfo",
    "RetryState",
    "Chapter",
    "ProxyCheckResult",
]
