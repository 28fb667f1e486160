"""Utility functions for ebook-ai."""

from .prompt_loader import PromptLoader, get_prompt_loader, reload_prompts
from .user_feedback import UserFeedback, StatusIcon

__all__ = [
    "PromptLoader",
    "get_prompt_loader",
    "reload_prompts",
    "UserFeedback",
    "StatusIcon",
]
