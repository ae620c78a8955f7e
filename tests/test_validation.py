"""Tests for backend response validation and sanitization.

Tests cover:
- Shape checks for single-file and project results
- Sanitization of malformed responses into safe defaults
- Recommendation normalization
- Enhanced report extraction
"""

import pytest

from codeguard.core.validation import (
    ValidationError,
    extract_report,
    normalize_recommendations,
    parse_analysis_result,
    sanitize_analysis_result,
    validate_analysis_result,
    validate_project_analysis_result,
)


def valid_body(**overrides):
    body = {
        "prioritizedIssues": [{"title": "SQL injection in login", "severity": "high"}],
        "recommendations": [{"title": "Use bound parameters", "description": "...", "category": "sql"}],
        "summary": {"totalIssues": 1, "highIssues": 1, "overallScore": 72, "analysisTime": 1.4},
    }
    body.update(overrides)
    return body


def enhanced_finding(**overrides):
    finding = {
        "id": "vuln-1",
        "severity": "HIGH",
        "confidence": 0.9,
        "primaryIssue": {"type": "sql_injection", "title": "SQL Injection"},
        "affectedCode": {"lines": [3], "snippet": 'db.execute("SELECT " + q)'},
    }
    finding.update(overrides)
    return finding


# Validation Tests


def test_valid_body_passes():
    validate_analysis_result(valid_body())


def test_empty_summary_is_valid():
    validate_analysis_result(valid_body(summary={}))


@pytest.mark.parametrize(
    "body,field",
    [
        (valid_body(prioritizedIssues=None), "prioritizedIssues"),
        (valid_body(recommendations="none"), "recommendations"),
        (valid_body(summary=[]), "summary"),
    ],
)
def test_invalid_fields_reported(body, field):
    with pytest.raises(ValidationError) as exc_info:
        validate_analysis_result(body)
    assert exc_info.value.field == field


def test_non_object_rejected():
    with pytest.raises(ValidationError):
        validate_analysis_result(["not", "an", "object"])


def test_project_requires_numeric_counts():
    with pytest.raises(ValidationError) as exc_info:
        validate_project_analysis_result(valid_body(filesAnalyzed="3", filesSkipped=0))
    assert exc_info.value.field == "filesAnalyzed"

    with pytest.raises(ValidationError):
        validate_project_analysis_result(valid_body(filesAnalyzed=3, filesSkipped=True))

    validate_project_analysis_result(valid_body(filesAnalyzed=3, filesSkipped=0))


# Sanitization Tests


def test_sanitize_fills_defaults():
    """Test that missing counts become 0 and scores become None."""
    sanitized = sanitize_analysis_result({"summary": {"criticalIssues": 2}, "requestId": "req_1"})

    assert sanitized["prioritizedIssues"] == []
    assert sanitized["recommendations"] == []
    assert sanitized["summary"] == {
        "totalIssues": 0,
        "criticalIssues": 2,
        "highIssues": 0,
        "mediumIssues": 0,
        "lowIssues": 0,
        "overallScore": None,
        "analysisTime": None,
    }
    assert sanitized["requestId"] == "req_1"
    assert sanitized["cached"] is False


def test_sanitize_garbage():
    assert sanitize_analysis_result("garbage")["summary"]["totalIssues"] == 0


def test_normalize_recommendations():
    recs = normalize_recommendations(["Rotate keys", {"title": "Pin deps", "category": "supply"}])

    assert recs == [
        {"title": "Rotate keys", "description": "Rotate keys", "category": "general"},
        {"title": "Pin deps", "category": "supply"},
    ]


# parse_analysis_result Tests


def test_parse_valid_body():
    result = parse_analysis_result(valid_body(), "req_1")

    assert result.request_id == "req_1"
    assert result.summary["overallScore"] == 72
    assert result.prioritized_issues[0]["title"] == "SQL injection in login"
    assert result.files_analyzed is None
    assert result.report is None


def test_parse_malformed_body_is_sanitized():
    """Test that a malformed body yields the basic shape instead of failing."""
    result = parse_analysis_result({"prioritizedIssues": "oops", "summary": {"totalIssues": 4}})

    assert result.prioritized_issues == []
    assert result.recommendations == []
    assert result.summary["totalIssues"] == 4


def test_parse_drops_non_object_entries():
    result = parse_analysis_result(valid_body(
        prioritizedIssues=[{"title": "ok"}, "stray", None],
        recommendations=["Use HTTPS"],
    ))

    assert result.prioritized_issues == [{"title": "ok"}]
    assert result.recommendations == [
        {"title": "Use HTTPS", "description": "Use HTTPS", "category": "general"}
    ]


def test_parse_project_defaults_file_counts():
    result = parse_analysis_result(valid_body(), project=True, file_count=4)

    assert result.files_analyzed == 4
    assert result.files_skipped == 0


def test_parse_project_keeps_reported_counts():
    result = parse_analysis_result(valid_body(filesAnalyzed=2, filesSkipped=1), project=True, file_count=3)

    assert result.files_analyzed == 2
    assert result.files_skipped == 1


# Report Extraction Tests


def test_extract_nested_report():
    report = extract_report({
        "v2Report": {
            "summary": {"totalVulnerabilities": 1, "detectedLanguage": "python"},
            "vulnerabilities": [enhanced_finding()],
        }
    })

    assert report.summary.detected_language == "python"
    finding = report.vulnerabilities[0]
    assert finding.severity == "high"
    assert finding.affected_code.lines == [3]


def test_extract_inline_vulnerabilities():
    report = extract_report({
        "vulnerabilities": [enhanced_finding()],
        "summary": {"totalVulnerabilities": 1},
        "metadata": {"model": "v2"},
    })

    assert len(report.vulnerabilities) == 1
    assert report.metadata == {"model": "v2"}


def test_extract_invalid_report_is_dropped():
    assert extract_report({"v2Report": {"summary": "not a summary", "vulnerabilities": [enhanced_finding()]}}) is None
    assert extract_report({"v2Report": "not a report"}) is None
    assert extract_report(valid_body()) is None


@pytest.mark.parametrize(
    "malformed",
    [
        enhanced_finding(id="vuln-bad", confidence=None),
        {"id": "vuln-bad", "confidence": 0.8},
        enhanced_finding(id="vuln-bad", intelligence={"epssScore": 1.7}),
        "not a finding",
    ],
)
def test_extract_drops_only_malformed_findings(malformed):
    """Test that one bad finding does not discard the rest of the report."""
    report = extract_report({
        "v2Report": {
            "summary": {"detectedLanguage": "python"},
            "vulnerabilities": [enhanced_finding(), malformed, enhanced_finding(id="vuln-2")],
        }
    })

    assert report is not None
    assert [f.id for f in report.vulnerabilities] == ["vuln-1", "vuln-2"]
    assert report.summary.detected_language == "python"


def test_extract_report_without_valid_findings():
    report = extract_report({"v2Report": {"vulnerabilities": [{"confidence": 7}]}})

    assert report is not None
    assert report.vulnerabilities == []


def test_parse_keeps_report_with_malformed_finding():
    result = parse_analysis_result(valid_body(
        v2Report={"vulnerabilities": [enhanced_finding(), enhanced_finding(id="vuln-bad", confidence=None)]}
    ))

    assert result.report is not None
    assert [f.id for f in result.report.vulnerabilities] == ["vuln-1"]


def test_parse_attaches_report():
    result = parse_analysis_result(valid_body(v2Report={"vulnerabilities": [enhanced_finding()]}))
    assert result.report.vulnerabilities[0].id == "vuln-1"
