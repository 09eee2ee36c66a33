"""Named breakers owned by the composition root.

One breaker per downstream dependency. The registry only serializes creation;
each breaker keeps its own lock and nothing is shared between entries.
"""

import threading
from collections.abc import Sequence

from resilience_core.circuit_breaker.breaker import CircuitBreaker
from resilience_core.circuit_breaker.engine import CircuitBreakerConfig, Clock
from resilience_core.circuit_breaker.metrics import BreakerListener
from resilience_core.circuit_breaker.state import BreakerStats


class BreakerRegistry:
    """Map breaker names to independent ``CircuitBreaker`` instances."""

    def __init__(
        self,
        *,
        default_config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Create an empty registry.

        Args:
            default_config: Config used when ``get_or_create`` gets none.
            listeners: Listener hooks attached to every breaker created here.
            clock: Time source shared by created breakers.
        """
        self._default_config = (
            CircuitBreakerConfig() if default_config is None else default_config
        )
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Return the breaker for ``name``, creating it on first use.

        ``config`` only applies when the breaker is created; an existing
        breaker keeps the config it was built with.
        """
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name,
                    config=self._default_config if config is None else config,
                    listeners=self._listeners,
                    clock=self._clock,
                )
                self._breakers[name] = breaker
            return breaker

    def get(self, name: str) -> CircuitBreaker:
        """Return an existing breaker or raise ``KeyError``."""
        with self._lock:
            return self._breakers[name]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._breakers

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakers)

    def names(self) -> tuple[str, ...]:
        """Return registered breaker names in sorted order."""
        with self._lock:
            return tuple(sorted(self._breakers))

    def stats(self) -> tuple[BreakerStats, ...]:
        """Return one stats snapshot per breaker, sorted by name."""
        with self._lock:
            breakers = [self._breakers[name] for name in sorted(self._breakers)]
        return tuple(breaker.stats() for breaker in breakers)

    def reset_all(self) -> None:
        """Reset every registered breaker."""
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()
