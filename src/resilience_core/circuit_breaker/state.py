"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class RejectReason(StrEnum):
    """Machine-readable reasons for rejecting a call without running it."""

    OPEN = "open"
    PROBE_BUDGET_EXHAUSTED = "probe-budget-exhausted"


@dataclass(slots=True)
class BreakerState:
    """Mutable breaker internals, owned by exactly one ``BreakerEngine``.

    Attributes:
        state: Current circuit state.
        failure_count: Consecutive failures counted while ``CLOSED``.
        last_failure_at: Timestamp of the most recent recorded failure.
        half_open_attempts: Probes admitted since entering ``HALF_OPEN``.
    """

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_at: datetime | None = None
    half_open_attempts: int = 0


@dataclass(frozen=True)
class BreakerStats:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Circuit state at capture time.
        failure_count: Failures counted since the last success or reset.
        failure_threshold: Failures required while ``CLOSED`` before opening.
        last_failure_at: Timestamp of the last recorded failure, if any.
        half_open_attempts: Probes admitted in the current half-open episode.
    """

    name: str
    state: CircuitState
    failure_count: int
    failure_threshold: int
    last_failure_at: datetime | None
    half_open_attempts: int
