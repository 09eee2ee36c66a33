"""Blocking adapter over ``CircuitBreaker.run``.

For call sites that cannot await (for example a synchronous transport hook),
``run_sync`` blocks the calling thread on a private event loop until the
breaker call completes. Admission and outcome reporting stay in the breaker;
this module only changes how the caller waits.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Coroutine
from concurrent.futures import ThreadPoolExecutor
from typing import Any, ParamSpec, TypeVar, cast

from resilience_core.circuit_breaker.breaker import CircuitBreaker
from resilience_core.circuit_breaker.state import BreakerStats, CircuitState

T = TypeVar("T")
P = ParamSpec("P")


def _has_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def _run_blocking(coro: Coroutine[Any, Any, T]) -> T:
    """Run ``coro`` to completion on a fresh loop and block until it finishes.

    A thread that already drives a loop cannot start another one, so the
    private loop then lives on a worker thread while the caller waits.
    """
    if not _has_running_loop():
        return asyncio.run(coro)
    with ThreadPoolExecutor(
        max_workers=1,
        thread_name_prefix="circuit-breaker-sync",
    ) as pool:
        return pool.submit(asyncio.run, coro).result()


def run_sync(
    breaker: CircuitBreaker,
    func: Callable[P, T] | Callable[P, Awaitable[T]],
    *args: P.args,
    **kwargs: P.kwargs,
) -> T:
    """Run ``func`` under ``breaker`` and block until it completes.

    When the calling thread is already running an event loop, that loop is
    blocked for the duration of the call. An awaitable returned by ``func``
    must therefore not depend on the caller's loop.

    Args:
        breaker: Breaker guarding the call.
        func: Blocking callable, or callable returning an awaitable.
        *args: Positional arguments forwarded to ``func``.
        **kwargs: Keyword arguments forwarded to ``func``.

    Returns:
        The result of ``func``.

    Raises:
        CircuitOpenError: When the breaker rejects the call.
        Exception: The original exception raised by ``func``.
    """

    async def _operation() -> T:
        result = func(*args, **kwargs)
        if inspect.isawaitable(result):
            return await cast(Awaitable[T], result)
        return cast(T, result)

    _operation.__qualname__ = getattr(func, "__qualname__", _operation.__qualname__)
    return _run_blocking(breaker.run(_operation))


class SyncCircuitBreaker:
    """Blocking facade over one ``CircuitBreaker``."""

    def __init__(self, breaker: CircuitBreaker) -> None:
        self._breaker = breaker

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def name(self) -> str:
        return self._breaker.name

    @property
    def state(self) -> CircuitState:
        return self._breaker.state

    @property
    def failure_count(self) -> int:
        return self._breaker.failure_count

    def stats(self) -> BreakerStats:
        return self._breaker.stats()

    def reset(self) -> None:
        self._breaker.reset()

    def run(
        self,
        func: Callable[P, T] | Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Run ``func`` under the wrapped breaker, blocking the caller."""
        return run_sync(self._breaker, func, *args, **kwargs)
