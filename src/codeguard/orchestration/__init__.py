"""Request orchestration: priority queueing, dispatch, retry and curation."""

from .orchestrator import RequestOrchestrator
from .requests import AnalysisRequest, QueueStatus, RequestState, generate_request_id

__all__ = [
    "RequestOrchestrator",
    "AnalysisRequest",
    "QueueStatus",
    "RequestState",
    "generate_request_id",
]
