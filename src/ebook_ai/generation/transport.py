"""HTTP execution for provider calls: direct requests or requests tunneled through a proxy.

Whether this runtime can tunnel at all is decided once, by ``TransportFactory``.
Browser-like runtimes (Pyodide/Emscripten) have no raw sockets and always use the
direct transport. If the proxy dispatcher cannot be built (e.g. a ``socks5://``
proxy without the optional ``socksio`` package) the factory logs a warning and
falls back to the direct transport instead of failing the call.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import httpx

from ebook_ai.exceptions import (
    OperationCancelledError,
    ProxyConnectionError,
    ProxyTimeoutError,
    TransportError,
)
from ebook_ai.generation.cancellation import run_cancellable
from ebook_ai.models import AIConfig, ProxyCheckResult

logger = logging.getLogger(__name__)

USER_AGENT = "ebook-to-mindmap/1.0"
PROXY_TIMEOUT_SEC = 30.0
PROXY_CHECK_URL = "https://httpbin.org/ip"
PROXY_CHECK_TIMEOUT_SEC = 10.0
DEFAULT_REQUEST_TIMEOUT_SEC = 120.0


@dataclass
class TransportResponse:
    """Fully buffered HTTP response, identical in shape for both transports."""
    status: int
    body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    reason: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body

    def json(self) -> Any:
        return json.loads(self.body)

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "TransportResponse":
        return cls(
            status=response.status_code,
            body=response.text,
            headers=dict(response.headers),
            reason=response.reason_phrase,
        )


def is_browser_runtime() -> bool:
    """True when running inside a browser (Pyodide), where sockets are unavailable."""
    return sys.platform == "emscripten"


def build_proxy_dispatcher(proxy_url: str) -> httpx.AsyncBaseTransport:
    """Create the connection pool that tunnels through ``proxy_url``.

    Raises ImportError when the proxy scheme needs an optional package that is not
    installed, and ValueError/httpx.InvalidURL for unusable proxy URLs.
    """
    return httpx.AsyncHTTPTransport(proxy=proxy_url)


def _encode_body(json_body: Optional[Any]) -> Optional[bytes]:
    if json_body is None:
        return None
    return json.dumps(json_body, ensure_ascii=False).encode("utf-8")


class HTTPTransport(ABC):
    """Executes one HTTP request and returns a buffered response."""

    @abstractmethod
    async def request(self, method: str, url: str, *, headers: Optional[Dict[str, str]] = None,
                      json_body: Optional[Any] = None,
                      cancel_event: Optional[asyncio.Event] = None) -> TransportResponse:
        """Send the request; raise TransportError on network failure."""

    async def aclose(self) -> None:
        return None


class DirectTransport(HTTPTransport):
    """Plain request without a proxy."""

    def __init__(self, timeout: float = DEFAULT_REQUEST_TIMEOUT_SEC,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    async def request(self, method, url, *, headers=None, json_body=None, cancel_event=None):
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await run_cancellable(
                    client.request(method, url, headers=headers, content=_encode_body(json_body)),
                    cancel_event,
                )
            except httpx.TimeoutException as e:
                raise TransportError(f"请求超时: {e}") from e
            except httpx.HTTPError as e:
                raise TransportError(f"网络请求失败: {e}") from e
        return TransportResponse.from_httpx(response)


class ProxyTunnelTransport(HTTPTransport):
    """Request tunneled through a forward proxy with a fixed 30s timeout."""

    def __init__(self, proxy_url: str, dispatcher: httpx.AsyncBaseTransport):
        self.proxy_url = proxy_url
        self._client = httpx.AsyncClient(transport=dispatcher, timeout=PROXY_TIMEOUT_SEC)

    async def request(self, method, url, *, headers=None, json_body=None, cancel_event=None):
        request_headers = dict(headers or {})
        request_headers["User-Agent"] = USER_AGENT
        try:
            response = await run_cancellable(
                self._client.request(method, url, headers=request_headers, content=_encode_body(json_body)),
                cancel_event,
            )
        except httpx.TimeoutException as e:
            raise ProxyTimeoutError("代理请求超时") from e
        except httpx.HTTPError as e:
            raise ProxyConnectionError(f"代理连接失败: {e}") from e
        return TransportResponse.from_httpx(response)

    async def aclose(self) -> None:
        await self._client.aclose()


class TransportFactory:
    """Decides once per process/service how requests leave this machine."""

    def __init__(self, request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SEC,
                 browser_runtime: Optional[bool] = None,
                 direct_transport: Optional[HTTPTransport] = None,
                 dispatcher_builder: Callable[[str], httpx.AsyncBaseTransport] = build_proxy_dispatcher):
        self.browser_runtime = is_browser_runtime() if browser_runtime is None else browser_runtime
        self._direct = direct_transport or DirectTransport(timeout=request_timeout)
        self._dispatcher_builder = dispatcher_builder
        self._tunnels: Dict[str, ProxyTunnelTransport] = {}
        self._unavailable: Dict[str, str] = {}

    @property
    def can_tunnel(self) -> bool:
        return not self.browser_runtime

    @property
    def direct(self) -> HTTPTransport:
        return self._direct

    def for_config(self, config: AIConfig) -> HTTPTransport:
        """Pick the transport for one call."""
        if not config.use_proxy or not self.can_tunnel:
            return self._direct
        tunnel = self._tunnel(config.proxy_url)
        return tunnel if tunnel is not None else self._direct

    def _tunnel(self, proxy_url: str) -> Optional[ProxyTunnelTransport]:
        if proxy_url in self._tunnels:
            return self._tunnels[proxy_url]
        if proxy_url in self._unavailable:
            return None
        dispatcher = self._load_dispatcher(proxy_url)
        if dispatcher is None:
            return None
        tunnel = ProxyTunnelTransport(proxy_url, dispatcher)
        self._tunnels[proxy_url] = tunnel
        return tunnel

    def _load_dispatcher(self, proxy_url: str) -> Optional[httpx.AsyncBaseTransport]:
        try:
            return self._dispatcher_builder(proxy_url)
        except (ImportError, ValueError, httpx.InvalidURL) as e:
            logger.warning(f"代理模块不可用，使用直接连接: {e}")
            self._unavailable[proxy_url] = str(e)
            return None

    async def check_proxy(self, proxy_url: str,
                          cancel_event: Optional[asyncio.Event] = None) -> ProxyCheckResult:
        """Probe basic proxy connectivity against httpbin. Never raises."""
        if not self.can_tunnel:
            return ProxyCheckResult(success=False, message="浏览器环境不支持代理功能")

        dispatcher = self._load_dispatcher(proxy_url)
        if dispatcher is None:
            return ProxyCheckResult(success=False, message="代理模块不可用")

        try:
            async with httpx.AsyncClient(transport=dispatcher, timeout=PROXY_CHECK_TIMEOUT_SEC) as client:
                response = await run_cancellable(
                    client.get(PROXY_CHECK_URL, headers={"User-Agent": USER_AGENT}),
                    cancel_event,
                )
        except httpx.TimeoutException:
            return ProxyCheckResult(success=False, message="代理连接超时")
        except OperationCancelledError:
            return ProxyCheckResult(success=False, message="代理测试已取消")
        except Exception as e:
            return ProxyCheckResult(success=False, message=f"代理连接失败: {e}")

        if response.status_code != 200:
            return ProxyCheckResult(
                success=False,
                message=f"代理服务器返回错误: {response.status_code}",
                details={"body": response.text},
            )
        try:
            origin = response.json().get("origin")
        except (ValueError, AttributeError):
            return ProxyCheckResult(success=False, message="代理响应解析失败")
        return ProxyCheckResult(
            success=True,
            message="代理连接成功",
            details={"proxy_ip": origin, "status_code": response.status_code},
        )

    async def aclose(self) -> None:
        for tunnel in self._tunnels.values():
            await tunnel.aclose()
        self._tunnels.clear()
        await self._direct.aclose()
