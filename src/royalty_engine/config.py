"""Configuration for the royalty engine.

Two layers:

1. ``Settings`` - process settings loaded from the environment (and a
   ``.env`` file when present): database URL, bind address, log level.
2. ``EngineConfig`` - explicit, immutable behaviour configuration for the
   distribution engine itself. It is passed to the engine, never read from
   globals, so that nothing that moves money depends on a hidden default.

Pattern:
    engine = RoyaltyEngine(
        catalog=catalog,
        records=records,
        ports={PaymentRail.CARD: card_port},
        config=EngineConfig(
            validator=ValidatorConfig(),
            execution=ExecutionConfig(port_timeout_seconds=10),
        ),
    )
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    host: str
    port: int
    debug: bool
    log_level: str
    port_timeout_seconds: float
    default_currency: str

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv(
                "DATABASE_URL",
                "sqlite+aiosqlite:///./royalty_engine.db",
            ),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port_timeout_seconds=float(os.getenv("PORT_TIMEOUT_SECONDS", "30")),
            default_currency=os.getenv("DEFAULT_CURRENCY", "USD").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()


@dataclass(frozen=True)
class ValidatorConfig:
    """
    Split validation rules.

    Attributes:
        sum_tolerance: Allowed deviation of the percentage total from 100.
        producer_min_percentage: Producer shares below this are flagged.
        label_max_percentage: Label shares above this are flagged.
        sum_mismatch_penalty: Score deduction for a bad total (forces invalid).
        out_of_range_penalty: Score deduction per percentage outside [0, 100].
        blank_name_penalty: Score deduction per blank recipient name.
        advisory_penalty: Score deduction per advisory flag.
    """

    sum_tolerance: Decimal = Decimal("0.01")
    producer_min_percentage: Decimal = Decimal("5")
    label_max_percentage: Decimal = Decimal("50")
    sum_mismatch_penalty: int = 100
    out_of_range_penalty: int = 20
    blank_name_penalty: int = 10
    advisory_penalty: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.sum_tolerance < 0 or self.sum_tolerance >= 1:
            raise ValueError("sum_tolerance must be in [0, 1)")
        if not (0 <= self.producer_min_percentage <= 100):
            raise ValueError("producer_min_percentage must be in [0, 100]")
        if not (0 <= self.label_max_percentage <= 100):
            raise ValueError("label_max_percentage must be in [0, 100]")


@dataclass(frozen=True)
class ExecutionConfig:
    """
    Payment execution configuration.

    Attributes:
        port_timeout_seconds: Upper bound for a single Port call. A call
            that does not resolve in time is recorded as a failed line.
        outcome_write_attempts: Attempts at storing line outcomes once the
            Port calls have returned. If all fail, every outcome is logged.
        outcome_retry_delay_seconds: Delay before the second attempt; it
            grows linearly with each further attempt.
        wait_timeout_seconds: How long a caller waits for a disbursement
            running elsewhere before getting the record as it stands.
        wait_poll_interval_seconds: Store polling interval while waiting.
    """

    port_timeout_seconds: float = 30.0
    outcome_write_attempts: int = 3
    outcome_retry_delay_seconds: float = 0.5
    wait_timeout_seconds: float = 60.0
    wait_poll_interval_seconds: float = 0.05

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.port_timeout_seconds <= 0:
            raise ValueError("port_timeout_seconds must be positive")
        if self.port_timeout_seconds > 600:
            raise ValueError("port_timeout_seconds cannot exceed 600")
        if self.outcome_write_attempts < 1:
            raise ValueError("outcome_write_attempts must be >= 1")
        if self.outcome_retry_delay_seconds < 0:
            raise ValueError("outcome_retry_delay_seconds must be >= 0")
        if self.wait_timeout_seconds <= 0 or self.wait_poll_interval_seconds <= 0:
            raise ValueError("wait timeout and poll interval must be positive")


@dataclass(frozen=True)
class NotificationConfig:
    """
    Notification dispatch configuration.

    Attributes:
        enabled: If False, no recipient notifications are queued.
        queue_size: Maximum queued notifications; 0 means unbounded.
            When full, new notifications are dropped and logged.
    """

    enabled: bool = True
    queue_size: int = 1000

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.queue_size < 0:
            raise ValueError("queue_size must be >= 0")


@dataclass(frozen=True)
class EngineConfig:
    """Complete distribution engine configuration."""

    validator: ValidatorConfig = field(default_factory=ValidatorConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineConfig:
        """Build engine configuration from process settings."""
        return cls(
            execution=ExecutionConfig(port_timeout_seconds=settings.port_timeout_seconds),
        )
