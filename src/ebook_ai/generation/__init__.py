"""Generation components.

``AIService`` lives in ``ebook_ai.generation.service``; it is not re-exported
here because it depends on ``ebook_ai.core``, which imports the adapters below.
"""

from .output_parser import StructuredOutputParser, parse_structured_output
from .retry import RetryExecutor, classify_rate_limit
from .token_usage import TokenUsageRecorder, TokenUsageLog
from .transport import TransportFactory, TransportResponse, DirectTransport, ProxyTunnelTransport

__all__ = [
    "StructuredOutputParser",
    "parse_structured_output",
    "RetryExecutor",
    "classify_rate_limit",
    "TokenUsageRecorder",
    "TokenUsageLog",
    "TransportFactory",
    "TransportResponse",
    "DirectTransport",
    "ProxyTunnelTransport",
]
