"""httpx transports that send every request through a circuit breaker."""

from __future__ import annotations

import httpx

from resilience_core.circuit_breaker.breaker import CircuitBreaker
from resilience_core.circuit_breaker.sync import run_sync


class AsyncCircuitBreakerTransport(httpx.AsyncBaseTransport):
    """Route every request of an ``httpx.AsyncClient`` through a breaker.

    Only exceptions raised by the wrapped transport count as failures. Any
    HTTP response, whatever its status code, is returned as a success.
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Wrap ``transport`` (default ``httpx.AsyncHTTPTransport()``)."""
        self._breaker = breaker
        self._transport = (
            httpx.AsyncHTTPTransport() if transport is None else transport
        )

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._breaker.run(self._transport.handle_async_request, request)

    async def aclose(self) -> None:
        await self._transport.aclose()


class CircuitBreakerTransport(httpx.BaseTransport):
    """Route every request of a blocking ``httpx.Client`` through a breaker.

    The transport hook is synchronous, so each request goes through
    ``run_sync`` and blocks the calling thread for its duration.
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Wrap ``transport`` (default ``httpx.HTTPTransport()``)."""
        self._breaker = breaker
        self._transport = httpx.HTTPTransport() if transport is None else transport

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        return run_sync(self._breaker, self._transport.handle_request, request)

    def close(self) -> None:
        self._transport.close()
