"""Resilient request execution against the LayerEdge API.

One logical request = up to ``max_attempts`` network attempts, each bounded by
the per-attempt timeout, with a fixed pause between attempts.  There is
deliberately no exponential backoff.  When every attempt fails, the caller
gets a failed :class:`RequestOutcome` back instead of an exception; a failed
request never stops the sweep.

Classes:
    RequestConfig: Immutable description of one logical request.
    RequestOutcome: Result handed back to the caller.
    AiohttpTransport: Performs a single attempt with ``aiohttp``.
    ResilientHttpClient: Retry loop around a transport.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

import aiohttp
from aiohttp_socks import ProxyConnector

from nodekeeper.config import RetryPolicy
from nodekeeper.events import EventSink, NullEventSink
from nodekeeper.proxy_pool import ProxyEndpoint

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: Dict[str, str] = {
    "Accept": "application/json, text/plain, */*",
    "Content-Type": "application/json",
}


@dataclass(frozen=True)
class RequestConfig:
    """Everything needed to issue one logical request.

    Attributes:
        method: HTTP method (``GET`` / ``POST``).
        url: Absolute URL.
        body: JSON body, or ``None``.
        proxy: Proxy the wallet is bound to, or ``None`` for direct.
        timeout_ms: Timeout for each individual attempt.
    """

    method: str
    url: str
    body: Optional[Dict[str, Any]] = None
    proxy: Optional[ProxyEndpoint] = None
    timeout_ms: int = 60000


@dataclass
class RequestOutcome:
    """Outcome of one logical request.

    Attributes:
        succeeded: Whether any attempt returned a 2xx response.
        payload: Decoded JSON body (or raw text if the body is not JSON).
        error: Last error message when ``succeeded`` is ``False``.
        attempts_used: Number of attempts performed.
    """

    succeeded: bool
    payload: Any = None
    error: Optional[str] = None
    attempts_used: int = 0


class Transport(Protocol):
    async def send(self, config: RequestConfig) -> Any:
        ...


def _describe_error(error: BaseException) -> str:
    message = str(error)
    return message if message else error.__class__.__name__


class AiohttpTransport:
    """Single-attempt transport built on ``aiohttp``.

    A fresh session is opened per attempt so each attempt gets a fresh
    proxy tunnel.  Proxies (HTTP CONNECT, SOCKS4, SOCKS5) are wired through
    :class:`aiohttp_socks.ProxyConnector`.
    """

    def __init__(self, headers: Optional[Dict[str, str]] = None):
        self.headers = dict(DEFAULT_HEADERS)
        if headers:
            self.headers.update(headers)

    @staticmethod
    def _connector(proxy: Optional[ProxyEndpoint]):
        if proxy is None or not proxy.supported:
            return None
        return ProxyConnector.from_url(proxy.uri)

    async def send(self, config: RequestConfig) -> Any:
        """Issue one attempt.

        Raises:
            aiohttp.ClientError: On connection errors or non-2xx status.
            asyncio.TimeoutError: When the attempt exceeds its timeout.
        """
        timeout = aiohttp.ClientTimeout(total=config.timeout_ms / 1000)
        async with aiohttp.ClientSession(
            connector=self._connector(config.proxy),
            timeout=timeout,
            headers=self.headers,
        ) as session:
            async with session.request(
                config.method, config.url, json=config.body,
            ) as response:
                response.raise_for_status()
                text = await response.text()

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text


class ResilientHttpClient:
    """Execute requests with a bounded, fixed-interval retry loop.

    Args:
        policy: Timeout and retry ceiling.
        sink: Receives ``attempt_failed``, ``request_failed`` and
            ``proxy_unsupported`` events.
        transport: Object with an async ``send(config)``; defaults to
            :class:`AiohttpTransport`.
        sleep: Awaitable sleep used between attempts.
    """

    def __init__(
        self,
        policy: RetryPolicy = RetryPolicy(),
        sink: Optional[EventSink] = None,
        transport: Optional[Transport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policy = policy
        self.sink = sink or NullEventSink()
        self.transport = transport or AiohttpTransport()
        self.sleep = sleep

    def build(
        self,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]] = None,
        proxy: Optional[ProxyEndpoint] = None,
    ) -> RequestConfig:
        return RequestConfig(
            method=method.upper(),
            url=url,
            body=body,
            proxy=proxy,
            timeout_ms=self.policy.timeout_ms,
        )

    async def request(
        self,
        method: str,
        url: str,
        body: Optional[Dict[str, Any]] = None,
        proxy: Optional[ProxyEndpoint] = None,
    ) -> RequestOutcome:
        return await self.execute(self.build(method, url, body, proxy))

    def _resolve_proxy(self, config: RequestConfig) -> RequestConfig:
        # Unsupported schemes degrade to a direct connection
        if config.proxy is not None and not config.proxy.supported:
            self.sink.emit("proxy_unsupported", uri=config.proxy.masked())
            return replace(config, proxy=None)
        return config

    async def execute(self, config: RequestConfig) -> RequestOutcome:
        """Run *config* until it succeeds or the retry ceiling is reached.

        Returns:
            A successful outcome with the payload of the first attempt
            that succeeded, or a failed outcome after ``max_attempts``.
        """
        config = self._resolve_proxy(config)
        max_attempts = self.policy.max_attempts
        last_error: Optional[str] = None

        for attempt in range(1, max_attempts + 1):
            try:
                payload = await self.transport.send(config)
                return RequestOutcome(
                    succeeded=True, payload=payload, attempts_used=attempt,
                )
            except Exception as e:
                last_error = _describe_error(e)
                self.sink.emit(
                    "attempt_failed",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=last_error,
                    url=config.url,
                )
                if attempt < max_attempts:
                    await self.sleep(self.policy.retry_interval_seconds)

        self.sink.emit(
            "request_failed",
            attempts=max_attempts,
            error=last_error,
            url=config.url,
            proxy=config.proxy.masked() if config.proxy else None,
        )
        return RequestOutcome(
            succeeded=False, error=last_error, attempts_used=max_attempts,
        )
