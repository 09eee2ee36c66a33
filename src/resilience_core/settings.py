from __future__ import annotations

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilience_core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from resilience_core.circuit_breaker.metrics import BreakerListener
from resilience_core.logging import get_log_level_value


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Environment-driven configuration for one circuit breaker."""

    model_config = prefixed_settings_config("CIRCUIT_BREAKER_")

    name: str = "default"
    failure_threshold: int = 5
    reset_timeout_seconds: float = 60.0
    half_open_max_attempts: int = 3
    log_level: str = "INFO"

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be non-empty")
        return normalized

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        get_log_level_value(value)
        return value.strip().upper()

    @model_validator(mode="after")
    def _validate_breaker_settings(self) -> BreakerSettings:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.reset_timeout_seconds < 0:
            raise ValueError("reset_timeout_seconds must be >= 0")
        if self.half_open_max_attempts < 1:
            raise ValueError("half_open_max_attempts must be >= 1")
        return self

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the immutable breaker config from these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            reset_timeout=self.reset_timeout_seconds,
            half_open_max_attempts=self.half_open_max_attempts,
        )

    def build_breaker(
        self,
        *,
        listeners: list[BreakerListener] | None = None,
    ) -> CircuitBreaker:
        """Build a named breaker configured from these settings."""
        return CircuitBreaker(
            self.name,
            config=self.breaker_config(),
            listeners=listeners,
        )
