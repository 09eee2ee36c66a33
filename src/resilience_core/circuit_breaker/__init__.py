"""Framework-agnostic async circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - Decide and execute are separate. Admission and outcome bookkeeping run
    under one lock per breaker; the protected call itself never holds it.
  - Half-open probing admits up to ``half_open_max_attempts`` probes per
    episode. The budget is consumed at admission, so concurrent callers can
    never exceed it, and a single failed probe reopens the circuit at once.
  - Cancellation of a protected call counts as a failure.
  - State is in-memory and per instance. Use ``BreakerRegistry`` for one
    breaker per named dependency.
"""

from resilience_core.circuit_breaker.breaker import CircuitBreaker
from resilience_core.circuit_breaker.engine import (
    BreakerEngine,
    BreakerEvent,
    CircuitBreakerConfig,
    Decision,
    Proceed,
    Reject,
    Transition,
    next_state,
)
from resilience_core.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from resilience_core.circuit_breaker.metrics import BreakerListener
from resilience_core.circuit_breaker.registry import BreakerRegistry
from resilience_core.circuit_breaker.state import (
    BreakerState,
    BreakerStats,
    CircuitState,
    RejectReason,
)
from resilience_core.circuit_breaker.sync import SyncCircuitBreaker, run_sync

__all__ = [
    "BreakerEngine",
    "BreakerEvent",
    "BreakerListener",
    "BreakerRegistry",
    "BreakerState",
    "BreakerStats",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "Decision",
    "Proceed",
    "Reject",
    "RejectReason",
    "SyncCircuitBreaker",
    "Transition",
    "next_state",
    "run_sync",
]
