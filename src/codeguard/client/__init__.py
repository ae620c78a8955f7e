"""Analysis backend protocol and its HTTP implementation."""

from .backend import AnalysisBackend
from .http_backend import HttpAnalysisBackend

__all__ = [
    "AnalysisBackend",
    "HttpAnalysisBackend",
]
