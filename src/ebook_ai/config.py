"""Configuration management for AI generation."""

import copy
import os
import yaml
import logging
from typing import Any, Callable, Dict, Optional, Protocol, Union

from ebook_ai.models import AIConfig, GenerationOptions, PromptConfig

logger = logging.getLogger(__name__)

API_KEY_ENV_VAR = "EBOOK_AI_API_KEY"


class ConfigProvider(Protocol):
    """Anything that can hand out the AI config in effect right now."""

    def current(self) -> AIConfig:
        ...


class StaticConfigProvider:
    """Always returns the same config."""

    def __init__(self, config: AIConfig):
        self._config = config

    def current(self) -> AIConfig:
        return self._config


class CallableConfigProvider:
    """Resolves the config through a zero-argument accessor on every call."""

    def __init__(self, accessor: Callable[[], AIConfig]):
        self._accessor = accessor

    def current(self) -> AIConfig:
        return self._accessor()


def as_config_provider(value: Union[AIConfig, Callable[[], AIConfig], ConfigProvider]) -> ConfigProvider:
    """Wrap a static config or an accessor as a ConfigProvider."""
    if isinstance(value, AIConfig):
        return StaticConfigProvider(value)
    if hasattr(value, "current"):
        return value
    if callable(value):
        return CallableConfigProvider(value)
    raise TypeError(f"Expected AIConfig, callable or ConfigProvider, got {type(value).__name__}")


class Config:
    """Configuration management for AI generation."""

    DEFAULT_CONFIG = {
        'ai': {
            'provider': 'gemini',      # 'gemini' | 'openai' | '302.ai' | 'ollama'
            'api_key': '',             # Falls back to EBOOK_AI_API_KEY
            'api_url': None,           # None = provider default
            'model': None,             # None = provider default
            'temperature': 0.7,
            'proxy_url': None,         # e.g. http://127.0.0.1:7890
            'proxy_enabled': False,
        },
        'retry': {
            'max_retries': 3,              # Total attempts, including the first
            'base_retry_delay_ms': 60000,  # Floor for the wait between attempts
        },
        'transport': {
            'request_timeout_sec': 120,    # Direct requests only; proxy requests use a fixed 30s
        },
        'prompts': {
            'version': 'v1',               # 'v1' | 'v2'
            'chapter_summary': {
                'fiction': '',
                'non_fiction': '',
            },
            'mindmap': {
                'chapter': '',
                'arrow': '',
                'combined': '',
            },
            'connection_analysis': '',
            'overall_summary': '',
        },
        'output': {
            'language': 'en',
        },
    }

    def __init__(self, config_file: Optional[str] = ".ebook-ai.yml"):
        self.config_file = config_file
        self.config = self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file or use defaults."""
        # When config_file is None or falsy, skip file I/O and return defaults
        if not self.config_file:
            return copy.deepcopy(self.DEFAULT_CONFIG)
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    user_config = yaml.safe_load(f)
                    # yaml.safe_load can return None
                    if not user_config:
                        return copy.deepcopy(self.DEFAULT_CONFIG)
                    return self._deep_merge(self.DEFAULT_CONFIG, user_config)
            except Exception as e:
                logger.warning(f"Failed to load config from {self.config_file}: {e}")
        return copy.deepcopy(self.DEFAULT_CONFIG)

    def create_sample_config(self, filepath: str = ".ebook-ai.yml") -> None:
        """Write a configuration file listing every option with an explanation."""
        config_content = """# ebook-ai configuration

ai:
  provider: 'gemini'          # Options: 'gemini', 'openai', '302.ai', 'ollama'
  api_key: ''                 # Leave empty to read EBOOK_AI_API_KEY
  api_url: null               # null = provider default
                              #   gemini: https://generativelanguage.googleapis.com/v1beta
                              #   openai: https://api.openai.com/v1
                              #   302.ai: https://api.302.ai/v1
                              #   ollama: http://localhost:11434
  model: null                 # null = provider default (gemini-1.5-flash, gpt-3.5-turbo, llama2)
  temperature: 0.7            # 0 - 2
  proxy_url: null             # e.g. 'http://127.0.0.1:7890' or 'socks5://127.0.0.1:1080'
  proxy_enabled: false        # socks proxies need the optional 'socksio' package

retry:
  max_retries: 3              # Total attempts per call, including the first one
  base_retry_delay_ms: 60000  # Minimum wait after a rate limit; a longer server hint wins

transport:
  request_timeout_sec: 120    # Timeout for direct requests (proxied requests use 30s)

prompts:
  version: 'v1'               # Built-in template set: 'v1' or 'v2'
  # Custom templates replace the built-in ones. Placeholders: {{title}}, {{content}},
  # {{chapterSummaries}}, {{bookTitle}}, {{chapterInfo}}, {{connections}}
  chapter_summary:
    fiction: ''
    non_fiction: ''
  mindmap:
    chapter: ''
    arrow: ''
    combined: ''
  connection_analysis: ''
  overall_summary: ''

output:
  language: 'en'              # en, zh, ja, ko, fr, de, es, ru
"""
        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(config_content)

        logger.info(f"Configuration created at {filepath}")

    def get(self, key: str, default=None):
        """Get configuration value using dot notation."""
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_ai_config(self) -> AIConfig:
        """Build the AI config from the current settings."""
        ai = dict(self.get('ai', {}) or {})
        if not ai.get('api_key'):
            ai['api_key'] = os.environ.get(API_KEY_ENV_VAR, '')
        return AIConfig.from_dict(ai)

    def get_prompt_config(self) -> PromptConfig:
        return PromptConfig(
            chapter_summary_fiction=self.get('prompts.chapter_summary.fiction') or '',
            chapter_summary_non_fiction=self.get('prompts.chapter_summary.non_fiction') or '',
            mindmap_chapter=self.get('prompts.mindmap.chapter') or '',
            mindmap_arrow=self.get('prompts.mindmap.arrow') or '',
            mindmap_combined=self.get('prompts.mindmap.combined') or '',
            connection_analysis=self.get('prompts.connection_analysis') or '',
            overall_summary=self.get('prompts.overall_summary') or '',
        )

    def get_generation_options(self, on_token_usage=None) -> GenerationOptions:
        return GenerationOptions(
            on_token_usage=on_token_usage,
            max_retries=int(self.get('retry.max_retries', 3)),
            base_retry_delay_ms=int(self.get('retry.base_retry_delay_ms', 60000)),
        )

    def _deep_merge(self, default: Dict, user: Dict) -> Dict:
        """Deeply merge user config with defaults."""
        result = copy.deepcopy(default)

        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
