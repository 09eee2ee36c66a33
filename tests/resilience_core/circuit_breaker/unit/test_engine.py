from __future__ import annotations

import pytest

from resilience_core.circuit_breaker import (
    BreakerEngine,
    BreakerEvent,
    CircuitBreakerConfig,
    CircuitState,
    Proceed,
    Reject,
    RejectReason,
    Transition,
    next_state,
)
from tests.resilience_core.support.fakes import FakeClock, FakeLogger


def _engine(
    clock: FakeClock,
    logger: FakeLogger | None = None,
    *,
    failure_threshold: int = 3,
    reset_timeout: float = 1.0,
    half_open_max_attempts: int = 2,
) -> BreakerEngine:
    return BreakerEngine(
        "svc",
        config=CircuitBreakerConfig(
            failure_threshold=failure_threshold,
            reset_timeout=reset_timeout,
            half_open_max_attempts=half_open_max_attempts,
        ),
        clock=clock.now,
        logger=FakeLogger() if logger is None else logger,
    )


def _open(engine: BreakerEngine) -> None:
    for _ in range(engine.config.failure_threshold):
        assert isinstance(engine.admit(), Proceed)
        engine.report_failure()
    assert engine.snapshot().state == CircuitState.OPEN


@pytest.mark.parametrize(
    ("state", "event", "failure_count", "expected"),
    [
        (CircuitState.CLOSED, BreakerEvent.SUCCESS, 0, CircuitState.CLOSED),
        (CircuitState.CLOSED, BreakerEvent.FAILURE, 2, CircuitState.CLOSED),
        (CircuitState.CLOSED, BreakerEvent.FAILURE, 3, CircuitState.OPEN),
        (
            CircuitState.CLOSED,
            BreakerEvent.RESET_TIMEOUT_ELAPSED,
            0,
            CircuitState.CLOSED,
        ),
        (CircuitState.OPEN, BreakerEvent.SUCCESS, 3, CircuitState.OPEN),
        (CircuitState.OPEN, BreakerEvent.FAILURE, 4, CircuitState.OPEN),
        (
            CircuitState.OPEN,
            BreakerEvent.RESET_TIMEOUT_ELAPSED,
            3,
            CircuitState.HALF_OPEN,
        ),
        (CircuitState.HALF_OPEN, BreakerEvent.SUCCESS, 3, CircuitState.CLOSED),
        (CircuitState.HALF_OPEN, BreakerEvent.FAILURE, 1, CircuitState.OPEN),
        (CircuitState.CLOSED, BreakerEvent.RESET, 2, CircuitState.CLOSED),
        (CircuitState.OPEN, BreakerEvent.RESET, 3, CircuitState.CLOSED),
        (CircuitState.HALF_OPEN, BreakerEvent.RESET, 3, CircuitState.CLOSED),
    ],
)
def test_next_state_transition_table(
    state: CircuitState,
    event: BreakerEvent,
    failure_count: int,
    expected: CircuitState,
) -> None:
    assert (
        next_state(state, event, failure_count=failure_count, failure_threshold=3)
        == expected
    )


def test_initial_state_is_closed_with_zero_counters(fake_clock: FakeClock) -> None:
    stats = _engine(fake_clock).snapshot()

    assert stats.name == "svc"
    assert stats.state == CircuitState.CLOSED
    assert stats.failure_count == 0
    assert stats.failure_threshold == 3
    assert stats.last_failure_at is None
    assert stats.half_open_attempts == 0


def test_closed_always_proceeds_without_counting_probes(
    fake_clock: FakeClock,
) -> None:
    engine = _engine(fake_clock)

    for _ in range(10):
        decision = engine.admit()
        assert decision == Proceed()

    assert engine.snapshot().half_open_attempts == 0


def test_success_while_closed_clears_failure_count(fake_clock: FakeClock) -> None:
    engine = _engine(fake_clock)
    engine.report_failure()
    engine.report_failure()

    assert engine.report_success() is None
    stats = engine.snapshot()
    assert stats.state == CircuitState.CLOSED
    assert stats.failure_count == 0
    assert stats.last_failure_at == fake_clock.now()


def test_threshold_failure_opens_and_returns_transition(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    engine = _engine(fake_clock, fake_logger)

    assert engine.report_failure() is None
    assert engine.report_failure() is None
    transition = engine.report_failure()

    assert transition == Transition(CircuitState.CLOSED, CircuitState.OPEN)
    assert engine.snapshot().failure_count == 3
    assert ("info", "circuit_breaker.state_changed") in [
        (level, event) for level, event, _ in fake_logger.calls
    ]


def test_open_rejects_with_remaining_timeout(fake_clock: FakeClock) -> None:
    engine = _engine(fake_clock)
    _open(engine)
    fake_clock.advance(0.25)

    decision = engine.admit()

    assert decision == Reject(reason=RejectReason.OPEN, retry_after=0.75)


def test_open_transitions_to_half_open_and_admits_first_probe_atomically(
    fake_clock: FakeClock,
) -> None:
    engine = _engine(fake_clock)
    _open(engine)
    fake_clock.advance(1.0)

    decision = engine.admit()

    assert decision == Proceed(
        probe=True,
        transition=Transition(CircuitState.OPEN, CircuitState.HALF_OPEN),
    )
    stats = engine.snapshot()
    assert stats.state == CircuitState.HALF_OPEN
    assert stats.half_open_attempts == 1


def test_half_open_budget_is_consumed_at_admission(fake_clock: FakeClock) -> None:
    engine = _engine(fake_clock)
    _open(engine)
    fake_clock.advance(1.0)

    first = engine.admit()
    second = engine.admit()
    third = engine.admit()

    assert isinstance(first, Proceed) and first.transition is not None
    assert second == Proceed(probe=True)
    assert third == Reject(
        reason=RejectReason.PROBE_BUDGET_EXHAUSTED,
        retry_after=None,
    )
    assert engine.snapshot().half_open_attempts == 2


def test_probe_success_closes_and_resets_counters(fake_clock: FakeClock) -> None:
    engine = _engine(fake_clock)
    _open(engine)
    fake_clock.advance(1.0)
    engine.admit()

    transition = engine.report_success()

    assert transition == Transition(CircuitState.HALF_OPEN, CircuitState.CLOSED)
    stats = engine.snapshot()
    assert stats.state == CircuitState.CLOSED
    assert stats.failure_count == 0
    assert stats.half_open_attempts == 0


def test_probe_failure_reopens_and_counts_the_probe_once(
    fake_clock: FakeClock,
) -> None:
    engine = _engine(fake_clock)
    _open(engine)
    fake_clock.advance(1.0)
    engine.admit()
    probe_failed_at = fake_clock.now()

    transition = engine.report_failure()

    assert transition == Transition(CircuitState.HALF_OPEN, CircuitState.OPEN)
    stats = engine.snapshot()
    assert stats.state == CircuitState.OPEN
    assert stats.failure_count == 4
    assert stats.last_failure_at == probe_failed_at
    # One admitted probe, one unit of budget: failure reporting never adds a
    # second increment for the same probe.
    assert stats.half_open_attempts == 1


def test_probe_failure_restarts_reset_timeout(fake_clock: FakeClock) -> None:
    engine = _engine(fake_clock)
    _open(engine)
    fake_clock.advance(5.0)
    engine.admit()
    engine.report_failure()

    decision = engine.admit()

    assert decision == Reject(reason=RejectReason.OPEN, retry_after=1.0)


def test_failure_while_open_updates_timestamp_and_counter_only(
    fake_clock: FakeClock,
) -> None:
    engine = _engine(fake_clock)
    _open(engine)
    fake_clock.advance(0.5)

    assert engine.report_failure() is None

    stats = engine.snapshot()
    assert stats.state == CircuitState.OPEN
    assert stats.failure_count == 4
    assert stats.last_failure_at == fake_clock.now()


def test_success_while_open_is_a_logged_no_op(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    engine = _engine(fake_clock, fake_logger)
    _open(engine)
    before = engine.snapshot()

    assert engine.report_success() is None

    assert engine.snapshot() == before
    level, event, fields = fake_logger.calls[-1]
    assert (level, event) == ("warning", "circuit_breaker.unexpected_success")
    assert fields["breaker"] == "svc"
    assert fields["state"] == "open"


def test_reentering_half_open_starts_a_fresh_probe_budget(
    fake_clock: FakeClock,
) -> None:
    engine = _engine(fake_clock)
    _open(engine)
    fake_clock.advance(1.0)
    engine.admit()
    engine.report_failure()
    fake_clock.advance(1.0)

    first = engine.admit()
    second = engine.admit()

    assert isinstance(first, Proceed) and first.probe
    assert isinstance(second, Proceed) and second.probe
    assert engine.snapshot().half_open_attempts == 2


@pytest.mark.parametrize("target", ["closed", "open", "half_open"])
def test_reset_from_any_state_yields_closed_with_zero_counters(
    fake_clock: FakeClock,
    target: str,
) -> None:
    engine = _engine(fake_clock)
    if target == "closed":
        engine.report_failure()
    else:
        _open(engine)
    if target == "half_open":
        fake_clock.advance(1.0)
        engine.admit()
        assert engine.snapshot().state == CircuitState.HALF_OPEN

    transition = engine.reset()

    if target == "closed":
        assert transition is None
    else:
        assert transition == Transition(CircuitState(target), CircuitState.CLOSED)
    stats = engine.snapshot()
    assert stats.state == CircuitState.CLOSED
    assert stats.failure_count == 0
    assert stats.half_open_attempts == 0
    assert stats.last_failure_at is None


def test_zero_reset_timeout_probes_on_next_admission(fake_clock: FakeClock) -> None:
    engine = _engine(fake_clock, reset_timeout=0.0, failure_threshold=1)
    engine.report_failure()

    decision = engine.admit()

    assert isinstance(decision, Proceed) and decision.probe


def test_clock_moving_backwards_caps_retry_after(fake_clock: FakeClock) -> None:
    engine = _engine(fake_clock)
    _open(engine)
    fake_clock.advance(-10.0)

    decision = engine.admit()

    assert decision == Reject(reason=RejectReason.OPEN, retry_after=1.0)


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"failure_threshold": 0}, "failure_threshold"),
        ({"reset_timeout": -1.0}, "reset_timeout"),
        ({"half_open_max_attempts": 0}, "half_open_max_attempts"),
    ],
)
def test_config_rejects_invalid_values(
    overrides: dict[str, float],
    message: str,
) -> None:
    with pytest.raises(ValueError, match=message):
        CircuitBreakerConfig(**overrides)  # type: ignore[arg-type]
