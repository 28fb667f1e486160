"""Abstract adapter layer for LLM providers.

Each concrete adapter ONLY knows its provider's request schema and where the
text and token usage live in the response. Retrying, prompt assembly, JSON
recovery and usage reporting are handled by higher-level components.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ebook_ai.exceptions import ProviderHTTPError, ProviderResponseError, RateLimitError
from ebook_ai.generation.retry import parse_rate_limit_body
from ebook_ai.generation.transport import HTTPTransport, TransportResponse
from ebook_ai.models import AIConfig, GenerationRequest, GenerationResult, Provider

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7


@dataclass
class ProviderCall:
    """A fully built provider request."""
    url: str
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=lambda: {"Content-Type": "application/json"})
    method: str = "POST"


def dig(data: Any, *path) -> Any:
    """Follow ``path`` through nested dicts/lists, returning None when any step is missing."""
    for key in path:
        try:
            data = data[key]
        except (KeyError, IndexError, TypeError):
            return None
    return data


class ProviderAdapter(ABC):
    """Abstract base class for provider adapters."""

    provider: Provider
    label: str = "AI"
    default_api_url: str = ""
    default_model: str = ""

    def __init__(self, config: AIConfig):
        self.config = config
        self.api_url = (config.api_url or self.default_api_url).rstrip("/")
        self.model = config.model or self.default_model

    @property
    def temperature(self) -> float:
        if self.config.temperature is None:
            return DEFAULT_TEMPERATURE
        return self.config.temperature

    @abstractmethod
    def build_request(self, request: GenerationRequest) -> ProviderCall:
        """Build the provider-specific HTTP request."""

    @abstractmethod
    def extract_text(self, data: Dict[str, Any]) -> str:
        """Return the reply text from a decoded success response ('' when absent)."""

    def extract_token_count(self, data: Dict[str, Any]) -> Optional[int]:
        """Return total tokens used if the provider reports them."""
        return None

    async def generate(self, request: GenerationRequest, transport: HTTPTransport,
                       cancel_event: Optional[asyncio.Event] = None) -> GenerationResult:
        call = self.build_request(request)
        logger.debug(f"{self.label} request to {self._redact(call.url)} (model={self.model})")
        response = await transport.request(
            call.method, call.url, headers=call.headers, json_body=call.body, cancel_event=cancel_event
        )
        if not response.ok:
            raise self._http_error(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(f"{self.label} API 响应解析失败: {e}") from e

        text = self.extract_text(data)
        return GenerationResult(text=text if isinstance(text, str) else "", token_count=self._token_count(data))

    def _token_count(self, data: Dict[str, Any]) -> Optional[int]:
        try:
            return self.extract_token_count(data)
        except Exception as e:
            logger.debug(f"Could not read token usage from {self.label} response: {e}")
            return None

    def _http_error(self, response: TransportResponse) -> ProviderHTTPError:
        reason = f" {response.reason}" if response.reason else ""
        message = f"{self.label} API请求失败: {response.status}{reason} - {response.body}"
        if response.status == 429:
            retry_after, code = parse_rate_limit_body(response.body)
            return RateLimitError(message, status=429, body=response.body, retry_after=retry_after, code=code)
        return ProviderHTTPError(message, status=response.status, body=response.body)

    def _redact(self, url: str) -> str:
        if self.config.api_key:
            return url.replace(self.config.api_key, "***")
        return url
