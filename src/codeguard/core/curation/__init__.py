"""Curation of enhanced reports: false-positive filtering, quality gate, prioritization."""

from .false_positives import (
    KNOWN_FALSE_POSITIVES,
    FalsePositiveDetector,
    FalsePositivePattern,
    FalsePositiveResult,
    FilterResult,
)
from .prioritizer import IntelligencePrioritizer, PrioritizationConfig
from .quality_gate import QualityGate, QualityGateConfig

__all__ = [
    "KNOWN_FALSE_POSITIVES",
    "FalsePositiveDetector",
    "FalsePositivePattern",
    "FalsePositiveResult",
    "FilterResult",
    "IntelligencePrioritizer",
    "PrioritizationConfig",
    "QualityGate",
    "QualityGateConfig",
]
