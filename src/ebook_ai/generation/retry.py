"""Bounded, rate-limit-aware retry loop for provider calls."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from ebook_ai.generation.cancellation import cancellable_sleep, raise_if_cancelled
from ebook_ai.models import RateLimitInfo, RetryState

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_AFTER_SEC = 10
DEFAULT_RATE_LIMIT_CODE = "rate_limit_exceeded"

RATE_LIMIT_KEYWORDS = (
    "token_quota_exceeded",
    "rate_limit_exceeded",
    "too many requests",
    "tokens per minute limit",
    "rate limit",
    "quota exceeded",
    "too many tokens",
)


def parse_rate_limit_body(body: Any) -> Tuple[float, str]:
    """Read ``(retry_after, code)`` from a 429 body, falling back to the defaults."""
    data = body
    if isinstance(body, (str, bytes)):
        try:
            data = json.loads(body)
        except ValueError:
            data = None

    retry_after: Optional[Any] = None
    code: Optional[Any] = None
    if isinstance(data, dict):
        candidates = [data]
        if isinstance(data.get("error"), dict):
            candidates.append(data["error"])
        for section in candidates:
            if retry_after is None:
                retry_after = section.get("retry_after", section.get("retryAfter"))
            if code is None:
                code = section.get("code")

    try:
        retry_after = float(retry_after) if retry_after is not None else DEFAULT_RETRY_AFTER_SEC
    except (TypeError, ValueError):
        retry_after = DEFAULT_RETRY_AFTER_SEC
    # NaN, Infinity and overflowing literals are all valid to json.loads
    if not math.isfinite(retry_after):
        retry_after = DEFAULT_RETRY_AFTER_SEC
    return retry_after, str(code) if code else DEFAULT_RATE_LIMIT_CODE


def classify_rate_limit(error: BaseException) -> Optional[RateLimitInfo]:
    """Return rate-limit details when ``error`` is retryable, otherwise None."""
    status = getattr(error, "status", None)
    if status == 429:
        retry_after, code = parse_rate_limit_body(getattr(error, "body", None))
        return RateLimitInfo(status=429, retry_after=retry_after, code=code)

    message = (getattr(error, "message", None) or str(error)).lower()
    for keyword in RATE_LIMIT_KEYWORDS:
        if keyword in message:
            return RateLimitInfo(status=status, retry_after=DEFAULT_RETRY_AFTER_SEC)
    return None


class RetryExecutor:
    """Runs an async operation up to ``max_retries`` times, retrying only rate limits.

    ``max_retries`` is the total number of attempts. Between attempts the executor
    waits ``max(base_retry_delay_ms, retry_after * 1000)`` milliseconds.
    """

    def __init__(self, max_retries: int = 3, base_retry_delay_ms: int = 60000,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if base_retry_delay_ms < 0:
            raise ValueError("base_retry_delay_ms must be >= 0")
        self.max_retries = max_retries
        self.base_retry_delay_ms = base_retry_delay_ms
        self._sleep = sleep

    async def execute(self, operation: Callable[[], Awaitable[T]], operation_name: str = "operation",
                      context: Optional[Dict[str, Any]] = None,
                      cancel_event: Optional[asyncio.Event] = None) -> T:
        state = RetryState(max_retries=self.max_retries, base_retry_delay_ms=self.base_retry_delay_ms)
        context = context or {}

        while True:
            extra = {
                "operation": operation_name,
                "attempt": state.attempt,
                "max_retries": state.max_retries,
                "context": context,
            }
            logger.info(f"{operation_name}: attempt {state.attempt}/{state.max_retries}", extra=extra)
            try:
                result = await operation()
            except Exception as exc:
                info = classify_rate_limit(exc)
                if info is None:
                    logger.error(f"{operation_name}: attempt {state.attempt} failed (not retryable): {exc}",
                                 extra=extra)
                    raise
                if state.is_last_attempt:
                    logger.error(f"{operation_name}: rate limited on final attempt {state.attempt}, giving up",
                                 extra=extra)
                    raise

                wait_ms = state.wait_ms(info.retry_after)
                logger.warning(
                    f"{operation_name}: rate limited (status={info.status}, code={info.code}, "
                    f"retry_after={info.retry_after}s), waiting {wait_ms}ms before attempt {state.attempt + 1}",
                    extra={**extra, "wait_ms": wait_ms},
                )
                await self._wait(wait_ms / 1000, cancel_event)
                state.attempt += 1
                continue

            logger.info(f"{operation_name}: succeeded on attempt {state.attempt}", extra=extra)
            return result

    async def _wait(self, seconds: float, cancel_event: Optional[asyncio.Event]) -> None:
        if self._sleep is None:
            await cancellable_sleep(seconds, cancel_event)
            return
        raise_if_cancelled(cancel_event, "wait")
        await self._sleep(seconds)
        raise_if_cancelled(cancel_event, "wait")
