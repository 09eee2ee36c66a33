"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected by the breaker (``CircuitOpenError``); the protected
    operation did not run.
  - Any other exception, which is the protected operation's own failure and is
    re-raised unchanged.
"""

from resilience_core.circuit_breaker.state import RejectReason


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is not admitting calls.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        reason: Why the call was rejected.
        retry_after: Seconds until a half-open probe may be attempted, or
            ``None`` when no estimate is available.
    """

    def __init__(
        self,
        breaker_name: str,
        *,
        reason: RejectReason,
        retry_after: float | None,
    ) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            reason: Rejection reason.
            retry_after: Seconds until the next probe window opens, if known.
        """
        self.breaker_name = breaker_name
        self.reason = reason
        self.retry_after = retry_after
        retry_text = "unknown" if retry_after is None else f"{retry_after:g}s"
        super().__init__(
            f"circuit_open: {breaker_name} reason={reason} retry_after={retry_text}"
        )
