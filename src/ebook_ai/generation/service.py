"""High-level generation operations for chapters and whole books.

``AIService`` turns chapter text into summaries and mind-map JSON. Every
operation follows the same path: build the prompt, resolve the provider adapter
and transport from the config in effect *now*, run the call through the retry
executor, report token usage, and (for structured outputs) recover the JSON
document from the reply. Failures surface as a single ``GenerationError`` whose
message carries the operation prefix.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Callable, Optional, Sequence, Union

from ebook_ai.config import ConfigProvider, as_config_provider
from ebook_ai.core.llm_factory import ProviderAdapterFactory
from ebook_ai.exceptions import EbookAIError, EmptyResponseError, GenerationError
from ebook_ai.generation.output_parser import StructuredOutputParser
from ebook_ai.generation.retry import RetryExecutor
from ebook_ai.generation.token_usage import TokenUsageRecorder
from ebook_ai.generation.transport import TransportFactory
from ebook_ai.models import (
    AIConfig,
    Chapter,
    GenerationOptions,
    GenerationRequest,
    PromptConfig,
    ProxyCheckResult,
)
from ebook_ai.utils.prompt_loader import PromptLoader, get_prompt_loader

logger = logging.getLogger(__name__)

CHAPTER_SEPARATOR = "\n\n ------------- \n\n"
COMBINED_MINDMAP_LANGUAGE = "en"
NO_SUMMARY = "无总结"

CONNECTION_SUCCESS_PATTERNS = (
    'ok',
    '连接成功',
    '成功',
    'success',
    'connected',
    '正常',
    '可用',
    'ready',
    'working',
    '测试成功',
    '连接正常',
)
# keeps ASCII word characters, whitespace and CJK unified ideographs
_NON_WORD_RE = re.compile(r"[^\w\s\u4e00-\u9fa5]", re.ASCII)

PromptConfigSource = Union[PromptConfig, Callable[[], PromptConfig], None]


def _supplement(custom_prompt: Optional[str]) -> str:
    if custom_prompt and custom_prompt.strip():
        return f"\n\n补充要求：{custom_prompt.strip()}"
    return ""


def _cause_message(exc: BaseException) -> str:
    if isinstance(exc, EbookAIError):
        return exc.message
    return str(exc) or type(exc).__name__


class AIService:
    """Facade over provider adapters, transports, retries and output parsing."""

    def __init__(self, config: Union[AIConfig, Callable[[], AIConfig], ConfigProvider],
                 prompt_config: PromptConfigSource = None,
                 options: Optional[GenerationOptions] = None,
                 transport_factory: Optional[TransportFactory] = None,
                 prompt_loader: Optional[PromptLoader] = None,
                 retry_executor: Optional[RetryExecutor] = None):
        """
        Args:
            config: The AI config, or an accessor returning the config in effect.
                    Accessors are read once at the start of every operation.
            prompt_config: Custom prompt overrides, as a value or an accessor.
            options: Retry settings and the token usage callback.
            transport_factory: Shared transport factory (one per service by default).
            prompt_loader: Prompt template library (the global loader by default).
            retry_executor: Overrides the executor built from ``options``.
        """
        self._config_provider = as_config_provider(config)
        self._prompt_config = prompt_config
        self.options = options or GenerationOptions()
        self.transport_factory = transport_factory or TransportFactory()
        self.prompt_loader = prompt_loader or get_prompt_loader()
        self.retry_executor = retry_executor or RetryExecutor(
            max_retries=self.options.max_retries,
            base_retry_delay_ms=self.options.base_retry_delay_ms,
        )
        self.token_usage = TokenUsageRecorder(self.options.on_token_usage)
        self.parser = StructuredOutputParser()

    async def __aenter__(self) -> "AIService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.transport_factory.aclose()

    @property
    def config(self) -> AIConfig:
        """The config currently in effect."""
        return self._config_provider.current()

    @property
    def prompt_config(self) -> PromptConfig:
        source = self._prompt_config
        if source is None:
            return PromptConfig()
        if callable(source):
            return source() or PromptConfig()
        return source

    async def summarize_chapter(self, title: str, content: str, book_type: str = "non-fiction",
                                output_language: str = "en", custom_prompt: Optional[str] = None,
                                *, cancel_event: Optional[asyncio.Event] = None) -> str:
        try:
            prompts = self.prompt_config
            override = prompts.chapter_summary_fiction if book_type == "fiction" \
                else prompts.chapter_summary_non_fiction
            prompt = self.prompt_loader.get_chapter_summary_prompt(
                title, content, book_type, custom_template=custom_prompt or override
            )
            prompt += _supplement(custom_prompt)

            summary = await self._generate_content(
                prompt, output_language, "summarize_chapter", cancel_event, context={"title": title}
            )
            if not summary or not summary.strip():
                raise EmptyResponseError("AI返回了空的总结")
            return summary.strip()
        except Exception as e:
            raise self._wrap("章节总结失败", "summarize_chapter", e) from e

    async def analyze_connections(self, chapters: Sequence[Chapter], output_language: str = "en",
                                  *, cancel_event: Optional[asyncio.Event] = None) -> str:
        try:
            chapter_summaries = "\n\n".join(
                f"{chapter.title}:\n{chapter.summary or NO_SUMMARY}" for chapter in chapters
            )
            prompt = self.prompt_loader.get_connection_analysis_prompt(
                chapter_summaries, custom_template=self.prompt_config.connection_analysis
            )

            connections = await self._generate_content(
                prompt, output_language, "analyze_connections", cancel_event,
                context={"chapters": len(chapters)}
            )
            if not connections or not connections.strip():
                raise EmptyResponseError("AI返回了空的关联分析")
            return connections.strip()
        except Exception as e:
            raise self._wrap("章节关联分析失败", "analyze_connections", e) from e

    async def generate_overall_summary(self, book_title: str, chapters: Sequence[Chapter], connections: str,
                                       output_language: str = "en",
                                       *, cancel_event: Optional[asyncio.Event] = None) -> str:
        try:
            chapter_info = "\n".join(
                f"第{index + 1}章：{chapter.title}，内容：{chapter.summary or NO_SUMMARY}"
                for index, chapter in enumerate(chapters)
            )
            prompt = self.prompt_loader.get_overall_summary_prompt(
                book_title, chapter_info, connections, custom_template=self.prompt_config.overall_summary
            )

            summary = await self._generate_content(
                prompt, output_language, "generate_overall_summary", cancel_event,
                context={"book_title": book_title}
            )
            if not summary or not summary.strip():
                raise EmptyResponseError("AI返回了空的全书总结")
            return summary.strip()
        except Exception as e:
            raise self._wrap("全书总结生成失败", "generate_overall_summary", e) from e

    async def generate_chapter_mind_map(self, content: str, output_language: str = "en",
                                        custom_prompt: Optional[str] = None,
                                        *, cancel_event: Optional[asyncio.Event] = None) -> Any:
        try:
            base_prompt = self.prompt_loader.get_mindmap_prompt(
                "chapter", custom_template=custom_prompt or self.prompt_config.mindmap_chapter
            )
            prompt = base_prompt + f"章节内容：\n{content}" + _supplement(custom_prompt)

            reply = await self._generate_content(prompt, output_language, "generate_chapter_mind_map", cancel_event)
            if not reply or not reply.strip():
                raise EmptyResponseError("AI返回了空的思维导图数据")
            return self.parser.parse(reply, context="思维导图数据")
        except Exception as e:
            raise self._wrap("章节思维导图生成失败", "generate_chapter_mind_map", e) from e

    async def generate_mind_map_arrows(self, mind_map_data: Any, output_language: str = "en",
                                       *, cancel_event: Optional[asyncio.Event] = None) -> Any:
        try:
            base_prompt = self.prompt_loader.get_mindmap_prompt(
                "arrow", custom_template=self.prompt_config.mindmap_arrow
            )
            prompt = base_prompt + "\n\n当前思维导图数据：\n" + json.dumps(mind_map_data, indent=2, ensure_ascii=False)

            reply = await self._generate_content(prompt, output_language, "generate_mind_map_arrows", cancel_event)
            if not reply or not reply.strip():
                raise EmptyResponseError("AI返回了空的箭头数据")
            return self.parser.parse(reply, context="箭头数据")
        except Exception as e:
            raise self._wrap("思维导图箭头生成失败", "generate_mind_map_arrows", e) from e

    async def generate_combined_mind_map(self, book_title: str, chapters: Sequence[Chapter],
                                         custom_prompt: Optional[str] = None,
                                         *, cancel_event: Optional[asyncio.Event] = None) -> Any:
        """Mind map for the whole book. The reply language is always English."""
        try:
            # the chapter template is the default base; a configured combined template replaces it
            base_prompt = self.prompt_loader.get_mindmap_prompt(
                "chapter", custom_template=self.prompt_config.mindmap_combined
            )
            chapters_content = CHAPTER_SEPARATOR.join(chapter.content for chapter in chapters)
            prompt = (
                f"{base_prompt}\n"
                f"        请为整本书《{book_title}》生成一个完整的思维导图，将所有章节的内容整合在一起。\n"
                f"        章节内容：\n{chapters_content}"
            )
            prompt += _supplement(custom_prompt)

            reply = await self._generate_content(
                prompt, COMBINED_MINDMAP_LANGUAGE, "generate_combined_mind_map", cancel_event,
                context={"book_title": book_title, "chapters": len(chapters)}
            )
            if not reply or not reply.strip():
                raise EmptyResponseError("AI返回了空的思维导图数据")
            return self.parser.parse(reply, context="思维导图数据")
        except Exception as e:
            raise self._wrap("整书思维导图生成失败", "generate_combined_mind_map", e) from e

    async def test_connection(self, *, cancel_event: Optional[asyncio.Event] = None) -> bool:
        """Send the fixed test prompt and look for an affirmative reply."""
        try:
            text = await self._generate_content(
                self.prompt_loader.get_test_connection_prompt(), None, "test_connection", cancel_event
            )
        except Exception as e:
            logger.warning(f"AI connection test failed: {e}")
            return False

        logger.debug(f"AI connection test raw reply: {text!r}")
        clean_text = _NON_WORD_RE.sub("", text.strip().lower())
        matched = next((pattern for pattern in CONNECTION_SUCCESS_PATTERNS if pattern in clean_text), None)
        logger.info(f"AI connection test result: success={matched is not None}, matched={matched!r}")
        return matched is not None

    async def test_proxy_connection(self, *, cancel_event: Optional[asyncio.Event] = None) -> ProxyCheckResult:
        """Check the proxy itself, then the provider API through it."""
        config = self.config
        if not config.use_proxy:
            return ProxyCheckResult(success=False, message="代理未启用")

        try:
            result = await self.transport_factory.check_proxy(config.proxy_url, cancel_event=cancel_event)
            if not result.success:
                return result

            if await self.test_connection(cancel_event=cancel_event):
                return ProxyCheckResult(success=True, message="代理连接成功，AI API 可用", details=result.details)
            return ProxyCheckResult(success=False, message="代理连接成功，但 AI API 不可用", details=result.details)
        except Exception as e:
            logger.error(f"Proxy test failed: {e}")
            return ProxyCheckResult(success=False, message=f"代理测试失败: {_cause_message(e)}")

    async def _generate_content(self, prompt: str, output_language: Optional[str], operation_name: str,
                                cancel_event: Optional[asyncio.Event] = None,
                                context: Optional[dict] = None) -> str:
        """Run one provider call with retries against the config in effect right now."""
        config = self._config_provider.current()
        adapter = ProviderAdapterFactory.create(config)
        transport = self.transport_factory.for_config(config)
        language = output_language or "en"
        request = GenerationRequest(
            prompt=prompt,
            output_language=language,
            system_instruction=self.prompt_loader.get_language_instruction(language),
        )

        call_context = {"provider": config.provider.value, "model": adapter.model, **(context or {})}
        result = await self.retry_executor.execute(
            lambda: adapter.generate(request, transport, cancel_event=cancel_event),
            operation_name,
            context=call_context,
            cancel_event=cancel_event,
        )
        self.token_usage.record(result.token_count)
        return result.text

    def _wrap(self, prefix: str, operation: str, exc: BaseException) -> GenerationError:
        return GenerationError(
            f"{prefix}: {_cause_message(exc)}",
            operation=operation,
            cause=exc,
            suggestion=getattr(exc, "suggestion", None),
        )

