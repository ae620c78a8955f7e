"""Pydantic models for analysis payloads, findings and curated reports.

The backend speaks camelCase JSON; every model accepts both the wire
aliases and the Python field names, and dumps with aliases when asked
(``model_dump(by_alias=True)``).

Provides:
- AnalysisPayload / ProjectFile: What gets submitted to the backend
- Finding and its parts: A single reported vulnerability
- AnalysisReport: Enhanced report carrying findings plus a summary
- PriorityFactors / PrioritizedFinding: Output of threat-intel prioritization
- QualityMetrics / QualityReport: Output of the quality gate
- IntelligenceSummary, CuratedReport, AnalysisResult, HealthCheckResult
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged with the backend."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Severity(str, Enum):
    """Finding severity."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PriorityLevel(str, Enum):
    """Priority bucket derived from a 0-100 priority score."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# Payload


class ProjectFile(WireModel):
    """One file of a multi-file submission."""

    path: str
    content: str
    language: str = ""


class AnalysisPayload(WireModel):
    """Code submitted for analysis: either a snippet or a file set.

    Attributes:
        code: Source text for single-file analysis
        files: File set for project analysis
        language: Language hint for ``code``
        options: Backend options (e.g. {"mode": "deep"})
    """

    code: str | None = None
    files: list[ProjectFile] | None = None
    language: str = ""
    options: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "AnalysisPayload":
        if (self.code is None) == (self.files is None):
            raise ValueError("payload needs exactly one of 'code' or 'files'")
        return self

    @property
    def is_project(self) -> bool:
        return self.files is not None


# Finding


class PrimaryIssue(WireModel):
    type: str = ""
    title: str = ""
    description: str = ""


class RelatedConcerns(WireModel):
    architectural: str | None = None
    performance: str | None = None
    business_logic: str | None = None
    best_practices: str | None = None


class AffectedCode(WireModel):
    lines: list[int] = Field(default_factory=list)
    snippet: str = ""
    file: str | None = None


class Evidence(WireModel):
    patterns: list[str] = Field(default_factory=list)
    indicators: list[str] = Field(default_factory=list)


class Standards(WireModel):
    cwe: str | None = None
    owasp: str | None = None
    cvss: str | None = None  # CVSS v3 vector string


class FixDetail(WireModel):
    language: str = ""
    language_confidence: float | None = None
    quick_summary: str = ""
    detailed_explanation: list[str] = Field(default_factory=list)
    vulnerable_code: str = ""
    secure_code: str = ""


class Impact(WireModel):
    security: str = ""
    business: str | None = None


class CisaKev(WireModel):
    known_exploited: bool = False
    date_added: str | None = None
    description: str | None = None


class NvdData(WireModel):
    cve_id: str = ""
    description: str = ""
    base_score: float | None = None
    severity: str = ""


class ThreatIntelligence(WireModel):
    cisa_kev: CisaKev | None = Field(default=None, alias="cisaKEV")
    epss_score: float | None = Field(default=None, ge=0.0, le=1.0)
    nvd_data: NvdData | None = None


class Finding(WireModel):
    """A vulnerability reported by the backend.

    Attributes:
        id: Backend identifier (used for user suppressions)
        severity: critical | high | medium | low (lower-cased; other values kept)
        confidence: 0-1 confidence reported by the backend
        confidence_level: Optional discrete level (HIGH | MEDIUM | LOW)
        primary_issue: Classification (type doubles as category)
        affected_code: Reported lines and snippet
        evidence: Matched patterns and evidence indicators
        standards: CWE / OWASP references and CVSS vector
        fix: Language-specific fix detail
        intelligence: CISA KEV, EPSS and NVD data
    """

    id: str = ""
    severity: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    confidence_level: str | None = None
    primary_issue: PrimaryIssue = Field(default_factory=PrimaryIssue)
    related_concerns: RelatedConcerns = Field(default_factory=RelatedConcerns)
    affected_code: AffectedCode | None = None
    evidence: Evidence = Field(default_factory=Evidence)
    standards: Standards = Field(default_factory=Standards)
    fix: FixDetail | None = None
    impact: Impact = Field(default_factory=Impact)
    intelligence: ThreatIntelligence | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def _lower_severity(cls, value: Any) -> str:
        return str(value).lower()

    @field_validator("confidence_level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> str | None:
        return str(value).upper() if value is not None else None

    @property
    def category(self) -> str:
        return self.primary_issue.type

    @property
    def issue_type(self) -> str:
        """Type, or title when the backend left the type empty."""
        return self.primary_issue.type or self.primary_issue.title

    @property
    def snippet(self) -> str:
        return self.affected_code.snippet if self.affected_code else ""

    @property
    def fix_language(self) -> str:
        return self.fix.language if self.fix else ""

    @property
    def epss_score(self) -> float | None:
        return self.intelligence.epss_score if self.intelligence else None

    @property
    def known_exploited(self) -> bool:
        return bool(
            self.intelligence
            and self.intelligence.cisa_kev
            and self.intelligence.cisa_kev.known_exploited
        )


class PriorityFactors(WireModel):
    """Contributions to a finding's priority score."""

    severity_score: float = 0.0
    cisa_kev_boost: float = 0.0
    epss_boost: float = 0.0
    exploit_available_boost: float = 0.0
    confidence_boost: float = 0.0
    context_boost: float = 0.0
    total: float = 0.0


class PrioritizedFinding(Finding):
    """Finding annotated by the intelligence prioritizer."""

    priority_score: float = Field(ge=0.0, le=100.0)
    priority_level: PriorityLevel
    priority_factors: PriorityFactors
    urgency_reason: str | None = None


# Report


class ReportSummary(WireModel):
    total_vulnerabilities: int = 0
    critical_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    average_confidence: float | None = None
    detected_language: str | None = None


class ReportRecommendations(WireModel):
    immediate: list[str] = Field(default_factory=list)
    short_term: list[str] = Field(default_factory=list)
    long_term: list[str] = Field(default_factory=list)


class AnalysisReport(WireModel):
    """Enhanced report: a batch of findings plus summary metadata."""

    summary: ReportSummary = Field(default_factory=ReportSummary)
    vulnerabilities: list[Finding] = Field(default_factory=list)
    recommendations: ReportRecommendations = Field(default_factory=ReportRecommendations)
    compliance_impact: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


# Curation output


class QualityMetrics(WireModel):
    overall_accuracy: float = 0.0
    language_detection_score: float = 0.0
    confidence_consistency: float = 0.0
    misclassification_risk: float = 0.0
    line_accuracy_score: float = 0.0
    pattern_quality: float = 0.0


class QualityReport(WireModel):
    """Diagnostic view of a quality gate evaluation."""

    metrics: QualityMetrics
    passed: bool
    issues: list[str] = Field(default_factory=list)


class IntelligenceSummary(WireModel):
    total_vulns: int = 0
    cisa_kev_count: int = 0
    high_epss_count: int = 0
    exploit_available_count: int = 0
    critical_priority_count: int = 0
    high_priority_count: int = 0
    average_priority_score: int = 0


class SuppressedFinding(WireModel):
    finding: Finding
    reason: str


class CuratedReport(WireModel):
    """Findings that passed the quality gate, ranked by priority."""

    findings: list[PrioritizedFinding] = Field(default_factory=list)
    removed: list[SuppressedFinding] = Field(default_factory=list)
    warned: list[SuppressedFinding] = Field(default_factory=list)
    quality: QualityReport
    intelligence: IntelligenceSummary


class AnalysisResult(WireModel):
    """Backend result after validation and curation.

    ``prioritized_issues``/``recommendations``/``summary`` are the basic
    result and are always present. ``report`` holds the enhanced report
    when the backend sent one; ``curated`` is set only when that report
    passed the quality gate.
    """

    prioritized_issues: list[dict[str, Any]] = Field(default_factory=list)
    recommendations: list[dict[str, Any]] = Field(default_factory=list)
    summary: dict[str, Any] = Field(default_factory=dict)
    request_id: str | None = None
    cached: bool = False
    files_analyzed: int | None = None
    files_skipped: int | None = None
    report: AnalysisReport | None = None
    curated: CuratedReport | None = None


class HealthCheckResult(WireModel):
    healthy: bool
    message: str
    response_time: float | None = None
    version: str | None = None
