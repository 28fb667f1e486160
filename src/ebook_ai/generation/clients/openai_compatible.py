from __future__ import annotations

from typing import Any, Dict, Optional

from ebook_ai.models import GenerationRequest, Provider

from .base import ProviderAdapter, ProviderCall, dig


class OpenAICompatibleAdapter(ProviderAdapter):
    """Any API that speaks the OpenAI chat completions format."""

    provider = Provider.OPENAI
    label = "OpenAI"
    default_api_url = "https://api.openai.com/v1"
    default_model = "gpt-3.5-turbo"

    def build_request(self, request: GenerationRequest) -> ProviderCall:
        content = request.prompt
        if request.system_instruction:
            content = f"{content}\n\n{request.system_instruction}"
        return ProviderCall(
            url=f"{self.api_url}/chat/completions",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.config.api_key}",
            },
            body={
                "model": self.model,
                "messages": [{"role": "user", "content": content}],
                "temperature": self.temperature,
            },
        )

    def extract_text(self, data: Dict[str, Any]) -> str:
        return dig(data, "choices", 0, "message", "content") or ""

    def extract_token_count(self, data: Dict[str, Any]) -> Optional[int]:
        return dig(data, "usage", "total_tokens")


class AI302Adapter(OpenAICompatibleAdapter):
    """302.ai, an OpenAI-compatible gateway with its own default base URL."""

    provider = Provider.AI302
    default_api_url = "https://api.302.ai/v1"
