"""Per-endpoint circuit breaker and registry.

Stops calling a failing backend for a cooldown period, then admits trial
calls before fully resuming. Failures are counted inside a sliding time
window so that sparse failures never add up to an open circuit.

Provides:
- CircuitBreakerOptions: Thresholds and timings for one breaker
- CircuitBreakerStats: Snapshot of a breaker's record
- CircuitBreaker: Three-state breaker (CLOSED -> OPEN -> HALF_OPEN -> CLOSED)
- CircuitBreakerRegistry: One breaker per endpoint key, created lazily
"""

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from codeguard.core.errors import AnalysisError, CircuitState

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class CircuitBreakerOptions:
    """Breaker configuration. Durations are in seconds."""

    failure_threshold: int = 5
    success_threshold: int = 2
    timeout: float = 60.0
    window_size: float = 60.0


@dataclass
class CircuitBreakerStats:
    """Point-in-time view of a breaker."""

    state: CircuitState
    failures: int
    successes: int
    last_failure_time: float | None = None
    last_success_time: float | None = None
    next_attempt_time: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize, omitting timestamps that were never set."""
        data = asdict(self)
        data["state"] = self.state.value
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class _BreakerRecord:
    state: CircuitState = CircuitState.CLOSED
    successes: int = 0
    failure_timestamps: list[float] = field(default_factory=list)
    last_failure_time: float | None = None
    last_success_time: float | None = None
    next_attempt_time: float | None = None
    trial_in_flight: bool = False


class CircuitBreaker:
    """Three-state circuit breaker guarding one endpoint.

    The record is mutated only by ``execute`` and ``reset``; the state is
    exposed read-only. In HALF_OPEN at most one trial call runs at a time:
    concurrent callers are refused with a CIRCUIT_OPEN error until the
    trial settles.

    Args:
        name: Endpoint key, used in logs and error messages
        options: Thresholds and timings
        clock: Returns the current time in epoch seconds
    """

    def __init__(
        self,
        name: str,
        options: CircuitBreakerOptions | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.options = options or CircuitBreakerOptions()
        self._clock = clock
        self._record = _BreakerRecord()
        self.log = logger.bind(breaker=name)

    @property
    def state(self) -> CircuitState:
        return self._record.state

    def is_open(self) -> bool:
        return self._record.state == CircuitState.OPEN

    def is_closed(self) -> bool:
        return self._record.state == CircuitState.CLOSED

    def is_half_open(self) -> bool:
        return self._record.state == CircuitState.HALF_OPEN

    async def execute(self, work: Callable[[], Awaitable[T]]) -> T:
        """Run ``work`` under breaker protection.

        Args:
            work: Zero-argument coroutine function performing the call

        Returns:
            Whatever ``work`` returns

        Raises:
            AnalysisError: CIRCUIT_OPEN when the call is refused
            Exception: Any exception raised by ``work`` (after recording it)
        """
        record = self._record

        if record.state == CircuitState.OPEN:
            now = self._clock()
            if record.next_attempt_time is not None and now >= record.next_attempt_time:
                record.state = CircuitState.HALF_OPEN
                record.successes = 0
                self.log.info("circuit_half_open")
            else:
                raise AnalysisError.circuit_open(self.name, record.next_attempt_time)

        is_trial = record.state == CircuitState.HALF_OPEN
        if is_trial:
            if record.trial_in_flight:
                raise AnalysisError.circuit_open(self.name, None, CircuitState.HALF_OPEN)
            record.trial_in_flight = True

        try:
            result = await work()
        except Exception:
            self._on_failure()
            raise
        finally:
            if is_trial:
                record.trial_in_flight = False

        self._on_success()
        return result

    def _on_success(self) -> None:
        record = self._record
        record.last_success_time = self._clock()

        if record.state == CircuitState.HALF_OPEN:
            record.successes += 1
            if record.successes >= self.options.success_threshold:
                self._close()
        elif record.state == CircuitState.CLOSED:
            record.failure_timestamps.clear()

    def _on_failure(self) -> None:
        record = self._record
        now = self._clock()
        record.last_failure_time = now
        record.failure_timestamps.append(now)
        self._prune(now)

        if record.state == CircuitState.HALF_OPEN:
            self.log.warning("circuit_reopened")
            self._open(now)
        elif record.state == CircuitState.CLOSED:
            if len(record.failure_timestamps) >= self.options.failure_threshold:
                self.log.warning(
                    "circuit_opened",
                    failures=len(record.failure_timestamps),
                    timeout=self.options.timeout,
                )
                self._open(now)

    def _prune(self, now: float) -> None:
        cutoff = now - self.options.window_size
        self._record.failure_timestamps = [
            ts for ts in self._record.failure_timestamps if ts > cutoff
        ]

    def _open(self, now: float) -> None:
        self._record.state = CircuitState.OPEN
        self._record.next_attempt_time = now + self.options.timeout

    def _close(self) -> None:
        record = self._record
        record.state = CircuitState.CLOSED
        record.successes = 0
        record.failure_timestamps = []
        record.next_attempt_time = None
        self.log.info("circuit_closed")

    def get_stats(self) -> CircuitBreakerStats:
        """Snapshot the record; the failure count is taken after pruning."""
        self._prune(self._clock())
        record = self._record
        return CircuitBreakerStats(
            state=record.state,
            failures=len(record.failure_timestamps),
            successes=record.successes,
            last_failure_time=record.last_failure_time,
            last_success_time=record.last_success_time,
            next_attempt_time=record.next_attempt_time,
        )

    def reset(self) -> None:
        """Force CLOSED and clear every counter and timestamp."""
        self._record = _BreakerRecord()
        self.log.info("circuit_reset")


class CircuitBreakerRegistry:
    """Owns exactly one CircuitBreaker per endpoint key."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, endpoint: str, options: CircuitBreakerOptions | None = None) -> CircuitBreaker:
        """Return the breaker for ``endpoint``, creating it on first access.

        ``options`` only applies when the breaker is created.
        """
        breaker = self._breakers.get(endpoint)
        if breaker is None:
            breaker = CircuitBreaker(endpoint, options, clock=self._clock)
            self._breakers[endpoint] = breaker
        return breaker

    async def execute(
        self,
        endpoint: str,
        work: Callable[[], Awaitable[T]],
        options: CircuitBreakerOptions | None = None,
    ) -> T:
        return await self.get(endpoint, options).execute(work)

    def get_stats(self, endpoint: str) -> CircuitBreakerStats | None:
        breaker = self._breakers.get(endpoint)
        return breaker.get_stats() if breaker else None

    def get_all_stats(self) -> dict[str, CircuitBreakerStats]:
        return {endpoint: b.get_stats() for endpoint, b in self._breakers.items()}

    def reset(self, endpoint: str) -> None:
        breaker = self._breakers.get(endpoint)
        if breaker:
            breaker.reset()

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()

    def __contains__(self, endpoint: str) -> bool:
        return endpoint in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
