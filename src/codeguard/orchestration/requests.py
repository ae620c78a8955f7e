"""Request records tracked by the orchestrator.

Provides:
- RequestState: Lifecycle of a submitted request
- AnalysisRequest: Bookkeeping record for one submission
- QueueStatus: Counts of requests by state
- generate_request_id: Unique request identifier
"""

import asyncio
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from uuid import uuid4

from codeguard.core.models import AnalysisPayload, AnalysisResult
from codeguard.core.queue import Priority


class RequestState(str, Enum):
    """pending -> active -> completed | failed; cancelled from pending or active."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({RequestState.COMPLETED, RequestState.FAILED, RequestState.CANCELLED})


def generate_request_id() -> str:
    """Return an id like ``req_1718000000000_3f9a1c2b7``."""
    return f"req_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


@dataclass
class AnalysisRequest:
    """One submitted analysis and its outcome.

    Attributes:
        id: Request identifier
        payload: Code or file set to analyze
        priority: Scheduling tier
        created_at: Submission time (epoch seconds)
        state: Current lifecycle state
        attempts: Backend attempts consumed so far
        result: Curated result once completed
        error: Last error once failed or cancelled
        cancel_requested: Set when cancelled while active
        started_at / finished_at: Dispatch and settle times
    """

    id: str
    payload: AnalysisPayload
    priority: Priority
    created_at: float
    state: RequestState = RequestState.PENDING
    attempts: int = 0
    result: AnalysisResult | None = None
    error: Exception | None = None
    cancel_requested: bool = False
    started_at: float | None = None
    finished_at: float | None = None
    done: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def is_project(self) -> bool:
        return self.payload.is_project


@dataclass
class QueueStatus:
    pending: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)
