"""Configuration snapshot for the analysis client.

Loads configuration from environment variables using Pydantic models.
Provides sensible defaults for all queue, retry and breaker tunables while
allowing override via environment or explicit construction. The
orchestrator only reads a Config; a change is applied by handing it a new
snapshot.

Provides:
- Config: Pydantic model with all client settings
- load_config: Factory function to create Config instance
"""

import os
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from codeguard.core.errors import AnalysisError
from codeguard.core.resilience.circuit_breaker import CircuitBreakerOptions


class Config(BaseModel):
    """Client configuration.

    All durations are in seconds.

    Attributes:
        api_endpoint: Base URL of the analysis backend (CODEGUARD_API_ENDPOINT)
        api_key: Bearer token sent with every request (CODEGUARD_API_KEY)
        database_url: SQLAlchemy URL of the local result cache
        analysis_mode: Default backend mode (quick | deep | full)
        request_timeout: Per-request timeout enforced by the HTTP client
        health_check_timeout: Upper bound for the health probe timeout
        max_concurrent_requests: Requests in flight at once
        max_queue_size: Pending requests accepted before submit() refuses
        max_attempts: Attempts per request including the first
        retry_initial_delay / retry_max_delay / retry_backoff_multiplier: Backoff curve
        breaker_*: Circuit breaker thresholds and timings
        retention_seconds: How long finished requests stay in bookkeeping
        cache_ttl_seconds: Lifetime of cached results
    """

    # Backend
    api_endpoint: str = Field(
        default_factory=lambda: os.getenv("CODEGUARD_API_ENDPOINT", "")
    )
    api_key: str = Field(
        default_factory=lambda: os.getenv("CODEGUARD_API_KEY", "")
    )
    analysis_mode: str = Field(default="full")
    request_timeout: float = Field(default=60.0, gt=0)
    health_check_timeout: float = Field(default=15.0, gt=0)

    # Queue
    max_concurrent_requests: int = Field(default=3, ge=1)
    max_queue_size: int = Field(default=50, ge=1)
    retention_seconds: float = Field(default=300.0, ge=0)

    # Retry
    max_attempts: int = Field(default=3, ge=1)
    retry_initial_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1)

    # Circuit breaker
    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_success_threshold: int = Field(default=2, ge=1)
    breaker_timeout: float = Field(default=60.0, ge=0)
    breaker_window: float = Field(default=60.0, gt=0)

    # Result cache
    database_url: str = Field(
        default_factory=lambda: os.getenv(
            "CODEGUARD_DATABASE_URL", "sqlite+aiosqlite:///codeguard.db"
        )
    )
    cache_ttl_seconds: float = Field(default=1800.0, gt=0)

    @property
    def normalized_endpoint(self) -> str:
        """Endpoint without trailing slash (also the breaker key)."""
        return self.api_endpoint.rstrip("/")

    def validate_endpoint(self) -> str:
        """Check the endpoint before any request is attempted.

        Returns:
            The normalized endpoint

        Raises:
            AnalysisError: CONFIGURATION when missing or not an http(s) URL
        """
        if not self.api_endpoint:
            raise AnalysisError.configuration(
                "API endpoint not configured. Set CODEGUARD_API_ENDPOINT."
            )
        parsed = urlparse(self.api_endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise AnalysisError.configuration(
                f"Invalid API endpoint '{self.api_endpoint}': expected an http(s) URL",
                endpoint=self.api_endpoint,
            )
        return self.normalized_endpoint

    def breaker_options(self) -> CircuitBreakerOptions:
        return CircuitBreakerOptions(
            failure_threshold=self.breaker_failure_threshold,
            success_threshold=self.breaker_success_threshold,
            timeout=self.breaker_timeout,
            window_size=self.breaker_window,
        )

    def retry_options(self) -> dict:
        """Keyword arguments for run_with_retry()."""
        return {
            "max_attempts": self.max_attempts,
            "initial_delay": self.retry_initial_delay,
            "max_delay": self.retry_max_delay,
            "backoff_multiplier": self.retry_backoff_multiplier,
        }


def load_config(**overrides) -> Config:
    """Load configuration from the environment.

    Creates a Config instance with values from environment variables,
    falling back to defaults for any unset values. Keyword arguments
    override both.

    Returns:
        Populated Config instance
    """
    return Config(**overrides)
