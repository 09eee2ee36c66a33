"""Core circuit breaker implementation."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import ParamSpec, TypeVar

from resilience_core.circuit_breaker.engine import (
    BreakerEngine,
    CircuitBreakerConfig,
    Clock,
    Reject,
    Transition,
)
from resilience_core.circuit_breaker.exceptions import CircuitOpenError
from resilience_core.circuit_breaker.metrics import BreakerListener
from resilience_core.circuit_breaker.state import BreakerStats, CircuitState
from resilience_core.logging import (
    StructuredLogger,
    get_logger,
    log_debug,
    log_error,
    log_warning,
)

T = TypeVar("T")
P = ParamSpec("P")


class CircuitBreaker:
    """Stateful proxy around a dangerous async operation."""

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        clock: Clock | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Unique breaker name used for stats, logs and metrics.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
            clock: Time source for failure timestamps. Defaults to UTC
                wall-clock time.
            logger: Structured logger. Defaults to this module's logger.
        """
        self.name = name
        self._logger = get_logger(__name__) if logger is None else logger
        self._engine = BreakerEngine(
            name, config=config, clock=clock, logger=self._logger
        )
        self.config = self._engine.config
        self._listeners = tuple(listeners) if listeners is not None else ()

    @property
    def state(self) -> CircuitState:
        """Return the current circuit state."""
        return self._engine.snapshot().state

    @property
    def failure_count(self) -> int:
        """Return the current failure count."""
        return self._engine.snapshot().failure_count

    def stats(self) -> BreakerStats:
        """Return a consistent point-in-time copy of the breaker internals."""
        return self._engine.snapshot()

    def reset(self) -> None:
        """Manually close the circuit and clear all counters."""
        self._engine.reset()

    async def _emit(self, hook: str, *args: object) -> None:
        for listener in self._listeners:
            try:
                await getattr(listener, hook)(self.name, *args)
            except Exception as exc:
                log_warning(
                    self._logger,
                    "circuit_breaker.listener_failed",
                    breaker=self.name,
                    hook=hook,
                    listener=listener.__class__.__qualname__,
                    error_type=exc.__class__.__name__,
                )

    async def _emit_transition(self, transition: Transition | None) -> None:
        if transition is None:
            return
        await self._emit("on_state_change", transition.old, transition.new)

    def _name_current_task(self, func: Callable[..., object]) -> None:
        task = asyncio.current_task()
        if task is None:
            return
        callable_name = getattr(func, "__qualname__", None)
        if callable_name is None:
            callable_name = getattr(func, "__name__", None)
        if callable_name is None:
            callable_name = func.__class__.__qualname__
        task.set_name(f"circuit_breaker:{self.name}:{str(callable_name)}")

    async def run(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            func: Dangerous async callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when admitted and successful.

        Raises:
            CircuitOpenError: When the call is rejected; ``func`` was not
                invoked.
            Exception: The original exception from ``func``, unchanged, after
                it has been recorded as a failure. Cancellation is recorded
                the same way and re-raised.
        """
        self._name_current_task(func)

        decision = self._engine.admit()
        if isinstance(decision, Reject):
            log_debug(
                self._logger,
                "circuit_breaker.call_rejected",
                breaker=self.name,
                reason=str(decision.reason),
                retry_after=decision.retry_after,
            )
            await self._emit("on_call_rejected", decision.reason)
            raise CircuitOpenError(
                self.name,
                reason=decision.reason,
                retry_after=decision.retry_after,
            )
        # Admission may have taken a probe slot; every exit past this point
        # must report an outcome, including cancellation inside a listener.
        start = time.monotonic()
        try:
            await self._emit_transition(decision.transition)
            start = time.monotonic()
            result = await func(*args, **kwargs)
        except (Exception, asyncio.CancelledError) as exc:
            elapsed = max(time.monotonic() - start, 0.0)
            transition = self._engine.report_failure()
            log_failure = log_error if decision.probe else log_warning
            log_failure(
                self._logger,
                "circuit_breaker.call_failed",
                breaker=self.name,
                probe=decision.probe,
                error_type=exc.__class__.__name__,
                elapsed=elapsed,
            )
            await self._emit("on_call_failed", exc, elapsed)
            await self._emit_transition(transition)
            raise
        else:
            elapsed = max(time.monotonic() - start, 0.0)
            transition = self._engine.report_success()
            await self._emit_transition(transition)
            await self._emit("on_call_succeeded", elapsed)
            return result
