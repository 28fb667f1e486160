from __future__ import annotations

from typing import Any, Dict, Optional

from ebook_ai.models import GenerationRequest, Provider

from .base import ProviderAdapter, ProviderCall, dig


class GeminiAdapter(ProviderAdapter):
    """Google Gemini ``generateContent`` REST API."""

    provider = Provider.GEMINI
    label = "Gemini"
    default_api_url = "https://generativelanguage.googleapis.com/v1beta"
    default_model = "gemini-1.5-flash"

    def build_request(self, request: GenerationRequest) -> ProviderCall:
        # No system role here; the language instruction is appended in bold
        text = request.prompt
        if request.system_instruction:
            text = f"{text}\n\n**{request.system_instruction}**"
        return ProviderCall(
            url=f"{self.api_url}/models/{self.model}:generateContent?key={self.config.api_key}",
            body={
                "contents": [{"parts": [{"text": text}]}],
                "generationConfig": {"temperature": self.temperature},
            },
        )

    def extract_text(self, data: Dict[str, Any]) -> str:
        return dig(data, "candidates", 0, "content", "parts", 0, "text") or ""

    def extract_token_count(self, data: Dict[str, Any]) -> Optional[int]:
        return dig(data, "usageMetadata", "totalTokenCount")
