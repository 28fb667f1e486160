"""Custom exception classes for ebook-ai."""

from typing import Any, Optional


class EbookAIError(Exception):
    """Base exception for all ebook-ai errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def __str__(self):
        result = self.message
        if self.suggestion:
            result += f"\n\nSuggestion: {self.suggestion}"
        return result


class ConfigurationError(EbookAIError):
    """Raised when there are configuration-related issues."""
    pass


class ProviderHTTPError(EbookAIError):
    """Raised when a provider answers with a non-2xx status."""

    def __init__(self, message: str, status: int, body: str = "", suggestion: Optional[str] = None):
        super().__init__(message, suggestion)
        self.status = status
        self.body = body


class RateLimitError(ProviderHTTPError):
    """Raised when a provider answers 429 Too Many Requests."""

    def __init__(self, message: str, status: int = 429, body: str = "",
                 retry_after: Optional[float] = None, code: str = "rate_limit_exceeded",
                 suggestion: Optional[str] = None):
        super().__init__(message, status, body, suggestion)
        self.retry_after = retry_after
        self.code = code

    @property
    def is_rate_limit(self) -> bool:
        return True


class ProviderResponseError(EbookAIError):
    """Raised when a 2xx provider response cannot be decoded."""
    pass


class TransportError(EbookAIError):
    """Raised when the HTTP request itself fails (DNS, connect, read)."""
    pass


class ProxyConnectionError(TransportError):
    """Raised when a request tunneled through the proxy fails."""
    pass


class ProxyTimeoutError(TransportError):
    """Raised when a request tunneled through the proxy times out."""
    pass


class OperationCancelledError(EbookAIError):
    """Raised when the caller's cancel event fires during a wait or request."""
    pass


class ParseError(EbookAIError):
    """Raised when no JSON document can be recovered from a model reply."""

    def __init__(self, message: str, context: Optional[str] = None, suggestion: Optional[str] = None):
        super().__init__(message, suggestion)
        self.context = context


class EmptyResponseError(EbookAIError):
    """Raised when the model returned blank text where content was required."""
    pass


class GenerationError(EbookAIError):
    """Terminal error of a public generation operation, wrapping its cause."""

    def __init__(self, message: str, operation: Optional[str] = None, cause: Optional[BaseException] = None,
                 suggestion: Optional[str] = None):
        super().__init__(message, suggestion)
        self.operation = operation
        self.cause = cause

    @property
    def details(self) -> Any:
        """Status/body of the underlying provider error, when there is one."""
        if isinstance(self.cause, ProviderHTTPError):
            return {"status": self.cause.status, "body": self.cause.body}
        return None
