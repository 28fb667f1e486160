"""Data models for AI generation."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ebook_ai.exceptions import ConfigurationError


class Provider(Enum):
    """Supported upstream LLM HTTP APIs."""
    GEMINI = "gemini"
    OPENAI = "openai"
    AI302 = "302.ai"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, value: Any) -> "Provider":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"不支持的AI提供商: {value}",
                suggestion=f"Use one of: {', '.join(p.value for p in cls)}"
            )


class BookType(Enum):
    """Kind of book, selects the chapter summary template."""
    FICTION = "fiction"
    NON_FICTION = "non-fiction"


@dataclass(frozen=True)
class AIConfig:
    """Connection settings for one provider. Immutable for the duration of a call."""
    provider: Provider
    api_key: str = ""
    api_url: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    proxy_url: Optional[str] = None
    proxy_enabled: bool = False

    def __post_init__(self):
        object.__setattr__(self, "provider", Provider.parse(self.provider))
        if self.temperature is not None and not (0 <= self.temperature <= 2):
            raise ConfigurationError(
                f"Temperature must be between 0 and 2, got: {self.temperature}",
                suggestion="Use a value such as 0.7"
            )

    @property
    def use_proxy(self) -> bool:
        return bool(self.proxy_enabled and self.proxy_url)

    def with_changes(self, **changes) -> "AIConfig":
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AIConfig":
        """Build from a mapping with either camelCase or snake_case keys."""
        def pick(*keys, default=None):
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return default

        if pick("provider") is None:
            raise ConfigurationError("AI provider is not configured", suggestion="Set ai.provider")
        temperature = pick("temperature")
        return cls(
            provider=pick("provider"),
            api_key=pick("api_key", "apiKey", default="") or "",
            api_url=pick("api_url", "apiUrl") or None,
            model=pick("model") or None,
            temperature=float(temperature) if temperature is not None else None,
            proxy_url=pick("proxy_url", "proxyUrl") or None,
            proxy_enabled=bool(pick("proxy_enabled", "proxyEnabled", default=False)),
        )


@dataclass
class PromptConfig:
    """Custom prompt overrides. Empty strings mean "use the default template"."""
    chapter_summary_fiction: str = ""
    chapter_summary_non_fiction: str = ""
    mindmap_chapter: str = ""
    mindmap_arrow: str = ""
    mindmap_combined: str = ""
    connection_analysis: str = ""
    overall_summary: str = ""


@dataclass
class GenerationOptions:
    on_token_usage: Optional[Callable[[int], None]] = None
    max_retries: int = 3
    base_retry_delay_ms: int = 60000


@dataclass
class GenerationRequest:
    prompt: str
    output_language: str = "en"
    system_instruction: str = ""  # language instruction resolved from output_language


@dataclass
class GenerationResult:
    text: str
    token_count: Optional[int] = None


@dataclass
class RateLimitInfo:
    """Outcome of rate-limit classification for a failed attempt."""
    status: Optional[int] = None
    retry_after: Optional[float] = 10
    code: str = "rate_limit_exceeded"
    is_rate_limit: bool = True


@dataclass
class RetryState:
    """Per-call retry bookkeeping, discarded when the call completes."""
    max_retries: int
    base_retry_delay_ms: int
    attempt: int = 1

    @property
    def is_last_attempt(self) -> bool:
        return self.attempt >= self.max_retries

    def wait_ms(self, retry_after: Optional[float]) -> int:
        hint = retry_after if retry_after is not None else 10
        return max(self.base_retry_delay_ms, int(hint * 1000))


@dataclass
class Chapter:
    """A chapter as handed over by the extraction pipeline."""
    id: str
    title: str
    content: str
    summary: Optional[str] = None


@dataclass
class ProxyCheckResult:
    success: bool
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
