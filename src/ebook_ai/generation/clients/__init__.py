"""Adapter implementations for LLM providers."""

from .base import ProviderAdapter, ProviderCall
from .gemini import GeminiAdapter
from .openai_compatible import OpenAICompatibleAdapter, AI302Adapter
from .ollama import OllamaAdapter

__all__ = [
    "ProviderAdapter",
    "ProviderCall",
    "GeminiAdapter",
    "OpenAICompatibleAdapter",
    "AI302Adapter",
    "OllamaAdapter",
]
