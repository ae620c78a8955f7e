"""Error taxonomy for the analysis pipeline.

Every failure raised by the pipeline is an AnalysisError tagged with an
ErrorKind. The kind alone decides retryability, so callers branch on
``error.kind`` instead of on exception subclasses.

Provides:
- ErrorKind: Enum of failure categories
- CircuitState: Enum of circuit breaker states (carried by CIRCUIT_OPEN errors)
- AnalysisError: Tagged exception with constructors for each failure category
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure categories.

    TRANSIENT: network, timeout, HTTP 429 and 5xx (retryable)
    PERMANENT_REQUEST: auth and validation failures (HTTP 4xx)
    CIRCUIT_OPEN: breaker refused the call, never retried
    CANCELLED: request was cancelled by the caller
    CONFIGURATION: missing or invalid endpoint, raised before any call
    """

    TRANSIENT = "transient"
    PERMANENT_REQUEST = "permanent_request"
    CIRCUIT_OPEN = "circuit_open"
    CANCELLED = "cancelled"
    CONFIGURATION = "configuration"


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class AnalysisError(Exception):
    """Tagged pipeline error.

    Attributes:
        message: Technical description
        kind: Failure category
        status_code: HTTP status when the backend answered
        next_attempt_time: Epoch seconds when an open circuit admits a trial
        circuit_state: Breaker state at the time of refusal
        user_message: Short explanation suitable for end users
        details: Extra structured context
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        *,
        status_code: int | None = None,
        next_attempt_time: float | None = None,
        circuit_state: CircuitState | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.next_attempt_time = next_attempt_time
        self.circuit_state = circuit_state
        self.user_message = user_message or message
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage on a request outcome."""
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
        }
        if self.status_code is not None:
            data["status_code"] = self.status_code
        if self.next_attempt_time is not None:
            data["next_attempt_time"] = self.next_attempt_time
        if self.circuit_state is not None:
            data["circuit_state"] = self.circuit_state.value
        if self.details:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"AnalysisError(kind={self.kind.value!r}, message={self.message!r})"

    @classmethod
    def network(cls, message: str) -> "AnalysisError":
        return cls(
            message,
            ErrorKind.TRANSIENT,
            user_message="Unable to connect to the analysis service.",
        )

    @classmethod
    def timeout(cls, message: str, timeout: float) -> "AnalysisError":
        return cls(
            message,
            ErrorKind.TRANSIENT,
            user_message=(
                f"The analysis request timed out after {timeout}s. "
                "Try analyzing a smaller code selection."
            ),
            details={"timeout": timeout},
        )

    @classmethod
    def rate_limit(cls, message: str, retry_after: float | None = None) -> "AnalysisError":
        return cls(
            message,
            ErrorKind.TRANSIENT,
            status_code=429,
            user_message="Rate limit exceeded. Please wait a moment and try again.",
            details={"retry_after": retry_after} if retry_after is not None else None,
        )

    @classmethod
    def server(cls, message: str, status_code: int) -> "AnalysisError":
        return cls(
            message,
            ErrorKind.TRANSIENT if status_code >= 500 else ErrorKind.PERMANENT_REQUEST,
            status_code=status_code,
            user_message="The analysis service encountered an error. Please try again later.",
        )

    @classmethod
    def authentication(cls, message: str, status_code: int = 401) -> "AnalysisError":
        return cls(
            message,
            ErrorKind.PERMANENT_REQUEST,
            status_code=status_code,
            user_message="Authentication failed. Please check your API key.",
        )

    @classmethod
    def validation(cls, message: str, status_code: int | None = 400) -> "AnalysisError":
        return cls(
            message,
            ErrorKind.PERMANENT_REQUEST,
            status_code=status_code,
            user_message="The analysis service rejected the request.",
        )

    @classmethod
    def circuit_open(
        cls,
        endpoint: str,
        next_attempt_time: float | None,
        state: CircuitState = CircuitState.OPEN,
    ) -> "AnalysisError":
        """Refusal by a breaker that is OPEN, or HALF_OPEN with a trial running."""
        if state == CircuitState.HALF_OPEN:
            message = f"Circuit breaker is HALF_OPEN for {endpoint}. A trial request is in progress"
            next_attempt_time = None
        else:
            when = datetime.fromtimestamp(next_attempt_time or 0, tz=timezone.utc).isoformat()
            message = f"Circuit breaker is OPEN for {endpoint}. Next attempt at {when}"
        return cls(
            message,
            ErrorKind.CIRCUIT_OPEN,
            next_attempt_time=next_attempt_time,
            circuit_state=state,
            user_message="The analysis service is failing. Requests are paused briefly.",
            details={"endpoint": endpoint},
        )

    @classmethod
    def cancelled(cls, request_id: str) -> "AnalysisError":
        return cls(
            f"Request {request_id} was cancelled",
            ErrorKind.CANCELLED,
            user_message="Analysis cancelled.",
            details={"request_id": request_id},
        )

    @classmethod
    def configuration(cls, message: str, **details: Any) -> "AnalysisError":
        return cls(
            message,
            ErrorKind.CONFIGURATION,
            user_message="Configuration error. Please check your settings.",
            details=details or None,
        )

    @classmethod
    def from_status(cls, status_code: int, message: str, url: str = "") -> "AnalysisError":
        """Map an HTTP status from the backend to an error kind.

        Args:
            status_code: HTTP status code
            message: Error message reported by the backend (or reason phrase)
            url: Requested URL, included in 404 messages

        Returns:
            AnalysisError with the matching kind
        """
        text = f"API Error ({status_code}): {message}"
        if status_code == 429:
            return cls.rate_limit(text)
        if status_code >= 500:
            return cls.server(text, status_code)
        if status_code in (401, 403):
            return cls.authentication(text, status_code)
        if status_code == 404:
            return cls.validation(
                f"API endpoint not found (404). URL attempted: {url}", status_code
            )
        return cls.validation(text, status_code)
