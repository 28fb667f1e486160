import json

import httpx
import pytest

from ebook_ai.exceptions import ProviderHTTPError, ProviderResponseError, RateLimitError
from ebook_ai.generation.clients import (
    GeminiAdapter,
    OpenAICompatibleAdapter,
    AI302Adapter,
    OllamaAdapter,
)
from ebook_ai.generation.clients.base import dig
from ebook_ai.generation.transport import DirectTransport
from ebook_ai.models import AIConfig, GenerationRequest


def mock_transport(status=200, payload=None, text=None, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(request)
        if text is not None:
            return httpx.Response(status, text=text)
        return httpx.Response(status, json=payload)
    return DirectTransport(transport=httpx.MockTransport(handler))


def sent_body(request):
    return json.loads(request.content.decode("utf-8"))


REQUEST = GenerationRequest(prompt="总结本章", output_language="en", system_instruction="Please respond in English.")


class TestDig:
    """Test the dig helper."""

    def test_follows_nested_path(self):
        """Test dict and list steps."""
        # Act & Assert
        assert dig({"a": [{"b": "x"}]}, "a", 0, "b") == "x"

    @pytest.mark.parametrize("data", [{}, {"a": []}, {"a": None}, None])
    def test_missing_steps_return_none(self, data):
        """Test any missing step yields None."""
        # Act & Assert
        assert dig(data, "a", 0, "b") is None


class TestGeminiAdapter:
    """Test GeminiAdapter."""

    def test_build_request_defaults(self):
        """Test the default URL, model, temperature and bold language instruction."""
        # Arrange
        adapter = GeminiAdapter(AIConfig(provider="gemini", api_key="g-key"))

        # Act
        call = adapter.build_request(REQUEST)

        # Assert
        assert call.url == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent?key=g-key"
        )
        assert call.body == {
            "contents": [{"parts": [{"text": "总结本章\n\n**Please respond in English.**"}]}],
            "generationConfig": {"temperature": 0.7},
        }

    def test_custom_url_and_zero_temperature(self):
        """Test a custom base URL and an explicit temperature of 0."""
        # Arrange
        adapter = GeminiAdapter(AIConfig(
            provider="gemini", api_key="k", api_url="https://proxy.example.com/v1beta/", model="gemini-pro",
            temperature=0,
        ))

        # Act
        call = adapter.build_request(REQUEST)

        # Assert
        assert call.url.startswith("https://proxy.example.com/v1beta/models/gemini-pro:generateContent")
        assert call.body["generationConfig"]["temperature"] == 0

    @pytest.mark.asyncio
    async def test_generate_extracts_text_and_usage(self):
        """Test text and token usage come from their Gemini paths."""
        # Arrange
        adapter = GeminiAdapter(AIConfig(provider="gemini", api_key="k"))
        payload = {
            "candidates": [{"content": {"parts": [{"text": "章节总结"}]}}],
            "usageMetadata": {"totalTokenCount": 321},
        }

        # Act
        result = await adapter.generate(REQUEST, mock_transport(payload=payload))

        # Assert
        assert result.text == "章节总结"
        assert result.token_count == 321

    @pytest.mark.asyncio
    async def test_missing_text_path_yields_empty_string(self):
        """Test a reply without candidates is empty, not an error."""
        # Arrange
        adapter = GeminiAdapter(AIConfig(provider="gemini", api_key="k"))

        # Act
        result = await adapter.generate(REQUEST, mock_transport(payload={"candidates": []}))

        # Assert
        assert result.text == ""
        assert result.token_count is None


class TestOpenAICompatibleAdapter:
    """Test OpenAICompatibleAdapter and its 302.ai variant."""

    @pytest.mark.asyncio
    async def test_generate_sends_chat_completion(self):
        """Test the request shape and text extraction."""
        # Arrange
        seen = []
        adapter = OpenAICompatibleAdapter(AIConfig(provider="openai", api_key="sk-test", temperature=0.2))
        payload = {"choices": [{"message": {"content": "ok"}}], "usage": {"total_tokens": 12}}

        # Act
        result = await adapter.generate(REQUEST, mock_transport(payload=payload, seen=seen))

        # Assert
        assert result.text == "ok"
        assert result.token_count == 12
        request = seen[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert sent_body(request) == {
            "model": "gpt-3.5-turbo",
            "messages": [{"role": "user", "content": "总结本章\n\nPlease respond in English."}],
            "temperature": 0.2,
        }

    def test_302ai_default_url(self):
        """Test 302.ai uses its own base URL."""
        # Arrange
        adapter = AI302Adapter(AIConfig(provider="302.ai", api_key="k"))

        # Act
        call = adapter.build_request(REQUEST)

        # Assert
        assert call.url == "https://api.302.ai/v1/chat/completions"
        assert call.body["model"] == "gpt-3.5-turbo"

    @pytest.mark.asyncio
    async def test_rate_limit_raises_rate_limit_error(self):
        """Test a 429 becomes RateLimitError carrying the body hint."""
        # Arrange
        adapter = OpenAICompatibleAdapter(AIConfig(provider="openai", api_key="k"))
        body = {"error": {"message": "Rate limit reached", "code": "rate_limit_exceeded", "retry_after": 20}}

        # Act & Assert
        with pytest.raises(RateLimitError) as exc_info:
            await adapter.generate(REQUEST, mock_transport(status=429, payload=body))

        error = exc_info.value
        assert error.status == 429
        assert error.retry_after == 20
        assert error.code == "rate_limit_exceeded"
        assert error.message.startswith("OpenAI API请求失败: 429")
        assert "Rate limit reached" in error.message

    @pytest.mark.asyncio
    async def test_other_status_raises_provider_http_error(self):
        """Test non-429 failures keep status and body."""
        # Arrange
        adapter = OpenAICompatibleAdapter(AIConfig(provider="openai", api_key="bad"))

        # Act & Assert
        with pytest.raises(ProviderHTTPError) as exc_info:
            await adapter.generate(REQUEST, mock_transport(status=401, text="invalid api key"))

        assert not isinstance(exc_info.value, RateLimitError)
        assert exc_info.value.status == 401
        assert exc_info.value.body == "invalid api key"

    @pytest.mark.asyncio
    async def test_non_json_success_body(self):
        """Test an undecodable 2xx body is a response error."""
        # Arrange
        adapter = OpenAICompatibleAdapter(AIConfig(provider="openai", api_key="k"))

        # Act & Assert
        with pytest.raises(ProviderResponseError):
            await adapter.generate(REQUEST, mock_transport(text="<html>gateway</html>"))


class TestOllamaAdapter:
    """Test OllamaAdapter."""

    @pytest.mark.asyncio
    async def test_generate_without_api_key(self):
        """Test the local chat request and that no auth header is sent."""
        # Arrange
        seen = []
        adapter = OllamaAdapter(AIConfig(provider="ollama"))
        payload = {"message": {"role": "assistant", "content": "本章讲述了"}}

        # Act
        result = await adapter.generate(REQUEST, mock_transport(payload=payload, seen=seen))

        # Assert
        assert result.text == "本章讲述了"
        assert result.token_count is None
        request = seen[0]
        assert str(request.url) == "http://localhost:11434/api/chat"
        assert "Authorization" not in request.headers
        assert sent_body(request) == {
            "model": "llama2",
            "messages": [
                {"role": "system", "content": "Please respond in English."},
                {"role": "user", "content": "总结本章"},
            ],
            "stream": False,
            "options": {"temperature": 0.7},
        }

    def test_api_key_adds_auth_header(self):
        """Test an API key is sent when configured."""
        # Arrange
        adapter = OllamaAdapter(AIConfig(provider="ollama", api_key="secret", api_url="http://gpu-box:11434"))

        # Act
        call = adapter.build_request(REQUEST)

        # Assert
        assert call.headers["Authorization"] == "Bearer secret"
        assert call.url == "http://gpu-box:11434/api/chat"

    def test_does_not_mutate_config(self):
        """Test building requests leaves the config untouched."""
        # Arrange
        config = AIConfig(provider="ollama")
        adapter = OllamaAdapter(config)

        # Act
        adapter.build_request(REQUEST)

        # Assert
        assert config == AIConfig(provider="ollama")
