from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Protocol

from resilience_core.circuit_breaker import BreakerStats, CircuitState

REASON_READY = "ready"
REASON_CIRCUIT_OPEN = "circuit_open"
REASON_CIRCUIT_HALF_OPEN = "circuit_half_open"

ReadinessCheck = Callable[[], Awaitable["CheckResult"]]


class _StatsSource(Protocol):
    """Anything exposing read-only breaker stats."""

    def stats(self) -> BreakerStats:
        """Return a breaker stats snapshot."""


@dataclass(frozen=True)
class CheckResult:
    """Readiness of one breaker-guarded dependency."""

    name: str
    ok: bool
    reason: str | None = None
    detail: str = ""
    data: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))


@dataclass(frozen=True)
class ReadinessSnapshot:
    """Readiness across several breakers at one point in time."""

    status: str
    ready: bool
    reason: str
    detail: str
    last_checked_at: float
    check_results: tuple[CheckResult, ...]


def check_breaker_stats(
    stats: BreakerStats,
    *,
    name: str | None = None,
) -> CheckResult:
    """Map one stats snapshot to a result; only ``CLOSED`` counts as ready."""
    last_failure_at = stats.last_failure_at
    data = {
        "state": str(stats.state),
        "failure_count": stats.failure_count,
        "failure_threshold": stats.failure_threshold,
        "half_open_attempts": stats.half_open_attempts,
        "last_failure_at": (
            None if last_failure_at is None else last_failure_at.isoformat()
        ),
    }
    check_name = stats.name if name is None else name
    if stats.state == CircuitState.CLOSED:
        return CheckResult(name=check_name, ok=True, data=data)
    if stats.state == CircuitState.HALF_OPEN:
        reason = REASON_CIRCUIT_HALF_OPEN
        detail = f"probing recovery attempts={stats.half_open_attempts}"
    else:
        reason = REASON_CIRCUIT_OPEN
        detail = (
            f"failures={stats.failure_count} threshold={stats.failure_threshold}"
        )
    return CheckResult(
        name=check_name, ok=False, reason=reason, detail=detail, data=data
    )


def make_circuit_breaker_check(
    breaker: _StatsSource,
    *,
    name: str | None = None,
) -> ReadinessCheck:
    """Build an async readiness probe for a health endpoint."""

    async def _check() -> CheckResult:
        return check_breaker_stats(breaker.stats(), name=name)

    _check.__name__ = breaker.stats().name if name is None else name
    return _check


def summarize_readiness(
    stats: Iterable[BreakerStats],
    *,
    now_fn: Callable[[], float] = time.time,
) -> ReadinessSnapshot:
    """Combine breaker stats (for example ``BreakerRegistry.stats()``).

    The snapshot is ready only when every breaker is closed; otherwise its
    reason and detail come from the first breaker that is not.
    """
    results = tuple(check_breaker_stats(item) for item in stats)
    first_failure = next((result for result in results if not result.ok), None)
    if first_failure is None:
        return ReadinessSnapshot(
            status="ok",
            ready=True,
            reason=REASON_READY,
            detail="",
            last_checked_at=now_fn(),
            check_results=results,
        )
    return ReadinessSnapshot(
        status="degraded",
        ready=False,
        reason=first_failure.reason or REASON_CIRCUIT_OPEN,
        detail=first_failure.detail,
        last_checked_at=now_fn(),
        check_results=results,
    )
