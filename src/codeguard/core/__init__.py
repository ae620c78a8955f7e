"""Core analysis pipeline functionality.

Provides:
- Error taxonomy (AnalysisError tagged with ErrorKind)
- Configuration snapshot loaded from the environment
- Payload, finding and report models
- Priority queue for pending requests
- Response validation and CVSS helpers
"""

from .errors import AnalysisError, CircuitState, ErrorKind
from .config import Config, load_config
from .models import AnalysisPayload, AnalysisReport, AnalysisResult, Finding, HealthCheckResult
from .queue import Priority, PriorityQueue

__all__ = [
    "AnalysisError",
    "CircuitState",
    "ErrorKind",
    "Config",
    "load_config",
    "AnalysisPayload",
    "AnalysisReport",
    "AnalysisResult",
    "Finding",
    "HealthCheckResult",
    "Priority",
    "PriorityQueue",
]
