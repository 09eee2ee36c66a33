"""Observability hooks for circuit breakers."""

from typing import Protocol

from resilience_core.circuit_breaker.state import CircuitState, RejectReason


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        Listeners observe; they must not call ``reset()`` or otherwise mutate
        the breaker they are attached to. ``on_state_change(OPEN → HALF_OPEN)``
        is emitted once per half-open episode, by the call admitted as its
        first probe.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, name: str, reason: RejectReason) -> None:
        """Handle call rejection while the circuit is not admitting calls."""

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    async def on_call_failed(
        self, name: str, exc: BaseException, elapsed: float
    ) -> None:
        """Handle failed or cancelled protected call completion."""
