"""Async LLM client for book summaries and mind maps."""

__version__ = "1.0.0"
