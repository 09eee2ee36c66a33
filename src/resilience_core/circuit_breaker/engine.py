"""Breaker state machine.

The engine owns one ``BreakerState`` and is the only code allowed to mutate
it. Every public method runs under a single ``threading.Lock`` and never awaits,
so the same engine can be shared by asyncio tasks and OS threads. The protected
operation itself is never run here; see ``CircuitBreaker.run``.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from resilience_core.circuit_breaker.state import (
    BreakerState,
    BreakerStats,
    CircuitState,
    RejectReason,
)
from resilience_core.logging import (
    StructuredLogger,
    get_logger,
    log_info,
    log_warning,
)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Failures required while ``CLOSED`` before opening.
        reset_timeout: Seconds after the last failure before a probe is allowed.
        half_open_max_attempts: Probes admitted per half-open episode.
    """

    failure_threshold: int = 5
    reset_timeout: float = 60.0
    half_open_max_attempts: int = 3

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")
        if self.half_open_max_attempts < 1:
            raise ValueError("half_open_max_attempts must be >= 1")


class BreakerEvent(StrEnum):
    """Inputs to the transition function."""

    SUCCESS = "success"
    FAILURE = "failure"
    RESET_TIMEOUT_ELAPSED = "reset_timeout_elapsed"
    RESET = "reset"


def next_state(
    state: CircuitState,
    event: BreakerEvent,
    *,
    failure_count: int = 0,
    failure_threshold: int = 1,
) -> CircuitState:
    """Return the state reached from ``state`` on ``event``.

    ``failure_count`` is the count after the failure being applied and only
    matters for ``FAILURE`` while ``CLOSED``.
    """
    if event == BreakerEvent.RESET:
        return CircuitState.CLOSED
    if state == CircuitState.CLOSED:
        if event == BreakerEvent.FAILURE and failure_count >= failure_threshold:
            return CircuitState.OPEN
        return CircuitState.CLOSED
    if state == CircuitState.OPEN:
        if event == BreakerEvent.RESET_TIMEOUT_ELAPSED:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN
    if event == BreakerEvent.SUCCESS:
        return CircuitState.CLOSED
    if event == BreakerEvent.FAILURE:
        return CircuitState.OPEN
    return CircuitState.HALF_OPEN


@dataclass(frozen=True, slots=True)
class Transition:
    """A state change caused by one engine operation."""

    old: CircuitState
    new: CircuitState


@dataclass(frozen=True, slots=True)
class Proceed:
    """Admission granted.

    Attributes:
        probe: True when the call was admitted as a half-open probe.
        transition: ``OPEN -> HALF_OPEN`` when this admission caused it.
    """

    probe: bool = False
    transition: Transition | None = None


@dataclass(frozen=True, slots=True)
class Reject:
    """Admission refused; the operation must not run."""

    reason: RejectReason
    retry_after: float | None


Decision = Proceed | Reject


class BreakerEngine:
    """Serialized state machine for one logical dependency."""

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        clock: Clock | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build an engine in the ``CLOSED`` state with zeroed counters.

        Args:
            name: Breaker name used in stats and log events.
            config: Thresholds and timeouts. Defaults to
                ``CircuitBreakerConfig()``.
            clock: Returns the current time for failure timestamps and
                reset-timeout checks. Defaults to UTC wall-clock time.
            logger: Structured logger for transition events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._clock = _utcnow if clock is None else clock
        self._logger = get_logger(__name__) if logger is None else logger
        self._state = BreakerState()
        self._lock = threading.Lock()

    def _elapsed_and_retry_after(self, now: datetime) -> tuple[float, float]:
        last_failure_at = (
            now if self._state.last_failure_at is None else self._state.last_failure_at
        )
        elapsed = max((now - last_failure_at).total_seconds(), 0.0)
        return elapsed, max(self.config.reset_timeout - elapsed, 0.0)

    def _enter_closed(self) -> None:
        self._state.state = CircuitState.CLOSED
        self._state.failure_count = 0
        self._state.half_open_attempts = 0

    def _log_transition(self, transition: Transition | None, **fields: object) -> None:
        if transition is None:
            return
        log_info(
            self._logger,
            "circuit_breaker.state_changed",
            breaker=self.name,
            old_state=str(transition.old),
            new_state=str(transition.new),
            **fields,
        )

    def admit(self) -> Decision:
        """Decide whether one call may run now.

        An elapsed reset timeout moves ``OPEN`` to ``HALF_OPEN`` and admits the
        first probe in the same critical section. Probes are counted against
        the budget here, at admission, not when they complete.
        """
        transition: Transition | None = None
        with self._lock:
            state = self._state
            if state.state == CircuitState.OPEN:
                now = self._clock()
                elapsed, retry_after = self._elapsed_and_retry_after(now)
                if elapsed < self.config.reset_timeout:
                    return Reject(reason=RejectReason.OPEN, retry_after=retry_after)
                state.state = next_state(
                    CircuitState.OPEN, BreakerEvent.RESET_TIMEOUT_ELAPSED
                )
                state.half_open_attempts = 0
                transition = Transition(CircuitState.OPEN, CircuitState.HALF_OPEN)

            if state.state == CircuitState.CLOSED:
                return Proceed()

            if state.half_open_attempts >= self.config.half_open_max_attempts:
                return Reject(
                    reason=RejectReason.PROBE_BUDGET_EXHAUSTED,
                    retry_after=None,
                )
            state.half_open_attempts += 1
            attempt = state.half_open_attempts

        self._log_transition(transition, probe_attempt=attempt)
        return Proceed(probe=True, transition=transition)

    def report_success(self) -> Transition | None:
        """Record a successful call and return the transition it caused."""
        with self._lock:
            old = self._state.state
            if old == CircuitState.OPEN:
                failure_count = self._state.failure_count
                anomalous = True
            else:
                if next_state(old, BreakerEvent.SUCCESS) == CircuitState.CLOSED:
                    self._enter_closed()
                anomalous = False
            new = self._state.state

        if anomalous:
            log_warning(
                self._logger,
                "circuit_breaker.unexpected_success",
                breaker=self.name,
                state=str(old),
                failure_count=failure_count,
            )
            return None
        transition = Transition(old, new) if old != new else None
        self._log_transition(transition)
        return transition

    def report_failure(self) -> Transition | None:
        """Record a failed call and return the transition it caused.

        The half-open probe budget is not touched: a probe was already counted
        when it was admitted.
        """
        with self._lock:
            state = self._state
            old = state.state
            state.failure_count += 1
            state.last_failure_at = self._clock()
            state.state = next_state(
                old,
                BreakerEvent.FAILURE,
                failure_count=state.failure_count,
                failure_threshold=self.config.failure_threshold,
            )
            new = state.state
            failure_count = state.failure_count

        transition = Transition(old, new) if old != new else None
        self._log_transition(
            transition,
            failure_count=failure_count,
            failure_threshold=self.config.failure_threshold,
        )
        return transition

    def reset(self) -> Transition | None:
        """Force the breaker back to a healthy ``CLOSED`` state."""
        with self._lock:
            old = self._state.state
            self._enter_closed()
            self._state.last_failure_at = None

        log_info(self._logger, "circuit_breaker.reset", breaker=self.name)
        if old == CircuitState.CLOSED:
            return None
        transition = Transition(old, CircuitState.CLOSED)
        self._log_transition(transition)
        return transition

    def snapshot(self) -> BreakerStats:
        """Return a consistent copy of the breaker internals."""
        with self._lock:
            return BreakerStats(
                name=self.name,
                state=self._state.state,
                failure_count=self._state.failure_count,
                failure_threshold=self.config.failure_threshold,
                last_failure_at=self._state.last_failure_at,
                half_open_attempts=self._state.half_open_attempts,
            )
