"""Factories for provider adapters and transports."""

import logging
from typing import Dict, Optional, Type

from ebook_ai.config import Config
from ebook_ai.exceptions import ConfigurationError
from ebook_ai.generation.clients import (
    ProviderAdapter,
    GeminiAdapter,
    OpenAICompatibleAdapter,
    AI302Adapter,
    OllamaAdapter,
)
from ebook_ai.generation.transport import TransportFactory, DEFAULT_REQUEST_TIMEOUT_SEC
from ebook_ai.models import AIConfig, Provider

logger = logging.getLogger(__name__)


class ProviderAdapterFactory:
    """Maps each supported provider to its adapter class."""

    ADAPTERS: Dict[Provider, Type[ProviderAdapter]] = {
        Provider.GEMINI: GeminiAdapter,
        Provider.OPENAI: OpenAICompatibleAdapter,
        Provider.AI302: AI302Adapter,
        Provider.OLLAMA: OllamaAdapter,
    }

    @classmethod
    def create(cls, config: AIConfig) -> ProviderAdapter:
        """Create the adapter for ``config.provider``."""
        adapter_cls = cls.ADAPTERS.get(config.provider)
        if adapter_cls is None:
            raise ConfigurationError(
                f"不支持的AI提供商: {config.provider.value}",
                suggestion=f"Use one of: {', '.join(p.value for p in cls.ADAPTERS)}"
            )
        adapter = adapter_cls(config)
        logger.debug(f"Using {adapter.label} adapter (model={adapter.model}, url={adapter.api_url})")
        return adapter


def create_transport_factory(config: Optional[Config] = None) -> TransportFactory:
    """Build the transport factory, honouring ``transport.request_timeout_sec``."""
    timeout = DEFAULT_REQUEST_TIMEOUT_SEC
    if config is not None:
        timeout = float(config.get('transport.request_timeout_sec', DEFAULT_REQUEST_TIMEOUT_SEC))
    if timeout <= 0:
        raise ConfigurationError(
            f"Request timeout must be positive, got: {timeout}",
            suggestion="Set transport.request_timeout_sec to a number of seconds, e.g. 120"
        )
    return TransportFactory(request_timeout=timeout)
