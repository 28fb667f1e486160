"""Token usage reporting for provider calls."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def _noop_sink(tokens: int) -> None:
    return None


class TokenUsageRecorder:
    """Best-effort observer: forwards positive token counts to a sink, never raises."""

    def __init__(self, sink: Optional[Callable[[int], None]] = None):
        self.sink = sink or _noop_sink

    def record(self, token_count: Any) -> None:
        try:
            if token_count is None:
                return
            tokens = int(token_count)
            if tokens <= 0:
                return
            self.sink(tokens)
        except Exception as e:
            logger.debug(f"Ignoring token usage report failure: {e}")


class TokenUsageLog:
    """Keeps a per-call record of reported token usage."""

    def __init__(self, model_name: str = ""):
        self.model_name = model_name
        self.token_usage_log: List[Dict[str, Any]] = []

    def __call__(self, tokens: int) -> None:
        self.log_token_usage(tokens)

    def log_token_usage(self, tokens: int, model: Optional[str] = None) -> Dict[str, Any]:
        entry = {
            'timestamp': datetime.now().isoformat(),
            'model': model or self.model_name,
            'tokens': tokens,
        }
        self.token_usage_log.append(entry)
        logger.info(f"Token usage - Model: {entry['model']}, Tokens: {tokens}")
        return entry

    @property
    def total_tokens(self) -> int:
        return sum(entry['tokens'] for entry in self.token_usage_log)

    def get_usage_summary(self) -> Dict[str, Any]:
        """Summary of the calls recorded so far."""
        calls = len(self.token_usage_log)
        return {
            'calls': calls,
            'total_tokens': self.total_tokens,
            'average_tokens_per_call': self.total_tokens / calls if calls else 0,
        }
