"""Validation and normalization of backend responses.

A malformed response body is not fatal: it is sanitized into the basic
result shape with safe defaults and a warning is logged.

Provides:
- ValidationError: Raised by the validate_* checks
- validate_analysis_result / validate_project_analysis_result
- sanitize_analysis_result / sanitize_project_analysis_result
- normalize_recommendations: Turn bare strings into recommendation records
- extract_report: Enhanced report carried by a response, if any
- parse_analysis_result: Raw response data -> AnalysisResult
"""

from typing import Any

import structlog
from pydantic import ValidationError as ModelValidationError

from codeguard.core.models import AnalysisReport, AnalysisResult, Finding

logger = structlog.get_logger()

_SUMMARY_COUNTS = ("totalIssues", "criticalIssues", "highIssues", "mediumIssues", "lowIssues")


class ValidationError(ValueError):
    """Response body does not have the expected shape.

    Attributes:
        field: Offending field, when known
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_analysis_result(data: Any) -> None:
    """Check the basic result shape.

    Raises:
        ValidationError: When a required field is missing or mistyped
    """
    if not isinstance(data, dict):
        raise ValidationError("Analysis result must be an object")
    if not isinstance(data.get("prioritizedIssues"), list):
        raise ValidationError("prioritizedIssues must be an array", "prioritizedIssues")
    if not isinstance(data.get("recommendations"), list):
        raise ValidationError("recommendations must be an array", "recommendations")
    if not isinstance(data.get("summary"), dict):
        raise ValidationError("summary must be an object", "summary")


def validate_project_analysis_result(data: Any) -> None:
    validate_analysis_result(data)
    if not _is_number(data.get("filesAnalyzed")):
        raise ValidationError("filesAnalyzed must be a number", "filesAnalyzed")
    if not _is_number(data.get("filesSkipped")):
        raise ValidationError("filesSkipped must be a number", "filesSkipped")


def sanitize_analysis_result(data: Any) -> dict[str, Any]:
    """Coerce a response into the basic result shape with defaults."""
    data = data if isinstance(data, dict) else {}
    summary = data.get("summary") if isinstance(data.get("summary"), dict) else {}

    clean_summary: dict[str, Any] = {key: summary.get(key) or 0 for key in _SUMMARY_COUNTS}
    clean_summary["overallScore"] = summary.get("overallScore")
    clean_summary["analysisTime"] = summary.get("analysisTime")

    return {
        "prioritizedIssues": data.get("prioritizedIssues") if isinstance(data.get("prioritizedIssues"), list) else [],
        "recommendations": data.get("recommendations") if isinstance(data.get("recommendations"), list) else [],
        "summary": clean_summary,
        "requestId": data.get("requestId"),
        "cached": bool(data.get("cached")),
    }


def sanitize_project_analysis_result(data: Any) -> dict[str, Any]:
    sanitized = sanitize_analysis_result(data)
    data = data if isinstance(data, dict) else {}
    sanitized["filesAnalyzed"] = data.get("filesAnalyzed") or 0
    sanitized["filesSkipped"] = data.get("filesSkipped") or 0
    return sanitized


def normalize_recommendations(recommendations: list[Any]) -> list[Any]:
    """Replace string recommendations with {title, description, category}."""
    return [
        {"title": rec, "description": rec, "category": "general"} if isinstance(rec, str) else rec
        for rec in recommendations
    ]


def extract_report(data: dict[str, Any]) -> AnalysisReport | None:
    """Enhanced report in a response: nested ``v2Report`` or inline ``vulnerabilities``.

    Findings are validated one at a time and malformed ones are dropped
    with a warning. A report whose envelope does not parse is dropped as a
    whole; the basic result is still usable without it.
    """
    raw = data.get("v2Report")
    if raw is None and isinstance(data.get("vulnerabilities"), list):
        raw = {
            "vulnerabilities": data["vulnerabilities"],
            "summary": data.get("summary") or {},
            "metadata": data.get("metadata") or {},
        }
    if not isinstance(raw, dict):
        return None

    entries = raw.get("vulnerabilities")
    if not isinstance(entries, list):
        entries = []

    try:
        report = AnalysisReport.model_validate({**raw, "vulnerabilities": []})
    except ModelValidationError as e:
        logger.warning("enhanced_report_invalid", errors=e.error_count())
        return None

    for index, entry in enumerate(entries):
        try:
            report.vulnerabilities.append(Finding.model_validate(entry))
        except ModelValidationError as e:
            logger.warning(
                "enhanced_finding_invalid",
                index=index,
                errors=e.error_count(),
                fields=sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()}),
            )
    return report


def parse_analysis_result(
    data: Any,
    request_id: str | None = None,
    *,
    project: bool = False,
    file_count: int = 0,
) -> AnalysisResult:
    """Validate a backend payload and build an AnalysisResult.

    Args:
        data: The ``data`` member of the backend envelope
        request_id: Request identifier to attach
        project: Apply project-result rules (file counts)
        file_count: Submitted file count, the default for filesAnalyzed

    Returns:
        AnalysisResult with the enhanced report attached when present
    """
    body = dict(data) if isinstance(data, dict) else {}

    if isinstance(body.get("recommendations"), list):
        body["recommendations"] = normalize_recommendations(body["recommendations"])

    if project:
        body["filesAnalyzed"] = body.get("filesAnalyzed") or file_count
        body["filesSkipped"] = body.get("filesSkipped") or 0

    validate = validate_project_analysis_result if project else validate_analysis_result
    try:
        validate(body)
        basic = body
    except ValidationError as e:
        logger.warning("response_validation_failed", error=str(e), field=e.field)
        basic = sanitize_project_analysis_result(body) if project else sanitize_analysis_result(body)

    return AnalysisResult(
        prioritized_issues=[i for i in basic["prioritizedIssues"] if isinstance(i, dict)],
        recommendations=[r for r in basic["recommendations"] if isinstance(r, dict)],
        summary=basic["summary"],
        request_id=request_id,
        cached=bool(basic.get("cached")),
        files_analyzed=basic.get("filesAnalyzed") if project else None,
        files_skipped=basic.get("filesSkipped") if project else None,
        report=extract_report(body),
    )
