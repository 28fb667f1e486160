from __future__ import annotations

from typing import Any, Dict

from ebook_ai.models import GenerationRequest, Provider

from .base import ProviderAdapter, ProviderCall, dig


class OllamaAdapter(ProviderAdapter):
    """Local Ollama server via ``/api/chat`` (non-streaming)."""

    provider = Provider.OLLAMA
    label = "Ollama"
    default_api_url = "http://localhost:11434"
    default_model = "llama2"

    def build_request(self, request: GenerationRequest) -> ProviderCall:
        headers = {"Content-Type": "application/json"}
        # Ollama usually runs without auth
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return ProviderCall(
            url=f"{self.api_url}/api/chat",
            headers=headers,
            body={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": request.system_instruction},
                    {"role": "user", "content": request.prompt},
                ],
                "stream": False,
                "options": {"temperature": self.temperature},
            },
        )

    def extract_text(self, data: Dict[str, Any]) -> str:
        return dig(data, "message", "content") or ""
