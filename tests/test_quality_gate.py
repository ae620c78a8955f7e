"""Tests for the enhanced report quality gate.

Tests cover:
- Individual quality metrics
- Weighted overall accuracy
- Accept/reject decisions and diagnostic issue strings
"""

import pytest

from codeguard.core.curation import QualityGate, QualityGateConfig
from codeguard.core.models import AnalysisReport, Finding


def make_finding(**overrides) -> Finding:
    data = {
        "severity": "high",
        "confidence": 0.9,
        "primaryIssue": {"type": "sql_injection", "title": "SQL Injection"},
        "affectedCode": {
            "lines": [12, 13],
            "snippet": 'cursor.execute("SELECT * FROM users WHERE id = " + user_id)',
        },
        "evidence": {"patterns": ["string concatenation in query"]},
        "standards": {"cwe": "CWE-89", "owasp": "A03:2021"},
        "fix": {
            "language": "python",
            "languageConfidence": 0.9,
            "vulnerableCode": 'cursor.execute("... " + user_id)',
            "secureCode": 'cursor.execute("... = %s", (user_id,))',
        },
        "impact": {"security": "Attacker can read or modify any row in the users table"},
    }
    data.update(overrides)
    return Finding.model_validate(data)


def make_report(*findings: Finding, language: str | None = "python") -> AnalysisReport:
    return AnalysisReport(
        summary={"totalVulnerabilities": len(findings), "detectedLanguage": language},
        vulnerabilities=list(findings),
    )


def logging_false_positive() -> Finding:
    """High-confidence SQL injection on a print statement."""
    return make_finding(
        confidence=0.95,
        affectedCode={"snippet": 'print("SELECT * FROM users WHERE id=" + user_id)'},
        evidence={"patterns": ["string concatenation"]},
        standards={"cwe": "CWE-89"},
        fix={"language": "python"},
        impact={"security": "SQL injection"},
    )


@pytest.fixture
def gate():
    return QualityGate()


# Metric Tests


def test_language_score_without_detected_language(gate):
    """Test that a missing or unknown detected language scores 0.2."""
    assert gate.language_detection_score(make_report(make_finding(), language=None)) == 0.2
    assert gate.language_detection_score(make_report(make_finding(), language="unknown")) == 0.2


def test_language_score_averages_fix_confidence(gate):
    """Test the average fix language confidence is used."""
    report = make_report(
        make_finding(fix={"language": "python", "languageConfidence": 0.8}),
        make_finding(fix={"language": "python", "languageConfidence": 0.6}),
    )
    assert gate.language_detection_score(report) == pytest.approx(0.7)


def test_language_score_without_confidences_is_neutral(gate):
    report = make_report(make_finding(fix={"language": "python"}))
    assert gate.language_detection_score(report) == 0.5


def test_language_score_penalizes_mixed_languages(gate):
    """Test that more than two fix languages costs 0.2."""
    report = make_report(
        make_finding(fix={"language": "python", "languageConfidence": 0.9}),
        make_finding(fix={"language": "java", "languageConfidence": 0.9}),
        make_finding(fix={"language": "go", "languageConfidence": 0.9}),
    )
    assert gate.language_detection_score(report) == pytest.approx(0.7)


def test_confidence_consistency(gate):
    """Test single-finding default and variance-based consistency."""
    assert gate.confidence_consistency([make_finding()]) == 0.7
    assert gate.confidence_consistency([make_finding(confidence=0.8)] * 3) == pytest.approx(1.0)

    spread = [make_finding(confidence=0.5), make_finding(confidence=0.9)]
    assert gate.confidence_consistency(spread) == pytest.approx(0.6)


def test_misclassification_risk_for_logging_statement(gate):
    """Test that a print statement flagged with high confidence is maximally suspicious."""
    assert gate.misclassification_risk([logging_false_positive()]) == 1.0


def test_misclassification_risk_requires_language_match(gate):
    """Test that a python-only signature ignores java findings."""
    finding = make_finding(
        confidence=0.7,
        affectedCode={"snippet": 'cursor.execute("SELECT * FROM t WHERE id = %s", (uid,))'},
        fix={"language": "java"},
    )
    assert gate.misclassification_risk([finding]) == 0.0

    finding = make_finding(
        confidence=0.7,
        affectedCode={"snippet": 'cursor.execute("SELECT * FROM t WHERE id = %s", (uid,))'},
    )
    assert gate.misclassification_risk([finding, make_finding(confidence=0.7)]) == 0.5


def test_line_accuracy(gate):
    """Test valid, out-of-range and widely spread line numbers."""
    assert gate.line_accuracy_score([make_finding(affectedCode={"snippet": "x"})]) == 0.3

    findings = [
        make_finding(),
        make_finding(affectedCode={"lines": [0], "snippet": "x"}),
        make_finding(affectedCode={"lines": [1, 200], "snippet": "x"}),
        make_finding(affectedCode={"lines": [40, 89], "snippet": "x"}),
    ]
    assert gate.line_accuracy_score(findings) == 0.5


def test_pattern_quality(gate):
    """Test that completeness of supporting evidence raises quality."""
    assert gate.pattern_quality([make_finding()]) == 1.0

    bare = make_finding(evidence={}, standards={}, fix=None, impact={})
    assert gate.pattern_quality([bare]) == 0.5

    # Indicators count the same as patterns
    indicators_only = make_finding(evidence={"indicators": ["user input reaches query"]}, standards={}, fix=None, impact={})
    assert gate.pattern_quality([indicators_only]) == pytest.approx(0.65)


# Overall Decision Tests


def test_well_supported_report_is_displayed(gate):
    """Test that a consistent, well-evidenced report passes."""
    report = make_report(make_finding())

    metrics = gate.calculate_report_quality(report)

    assert metrics.overall_accuracy == pytest.approx(0.935)
    assert metrics.misclassification_risk == 0.0
    assert gate.should_display(report)
    assert gate.get_quality_report(report).passed


def test_logging_false_positive_report_is_rejected(gate):
    """Test that a likely misclassified report scores 0.40 and is hidden."""
    report = make_report(logging_false_positive())

    metrics = gate.calculate_report_quality(report)

    assert metrics.language_detection_score == 0.5
    assert metrics.confidence_consistency == 0.7
    assert metrics.misclassification_risk == 1.0
    assert metrics.line_accuracy_score == 0.3
    assert metrics.pattern_quality == pytest.approx(0.75)
    assert metrics.overall_accuracy == pytest.approx(0.40)
    assert not gate.should_display(report)


def test_quality_report_issue_strings(gate):
    """Test the diagnostic reasons for a rejected report."""
    quality = gate.get_quality_report(make_report(logging_false_positive()))

    assert not quality.passed
    assert quality.issues == [
        "Overall accuracy (40.0%) below threshold (65.0%)",
        "High misclassification risk (100.0%)",
        "Line accuracy issues detected (30.0%)",
    ]


def test_low_language_confidence_rejected(gate):
    """Test rejection on language detection even with good accuracy."""
    report = make_report(make_finding(fix={
        "language": "python",
        "languageConfidence": 0.3,
        "vulnerableCode": "a",
        "secureCode": "b",
    }))

    assert not gate.should_display(report)
    assert "Language detection confidence (30.0%) below threshold" in gate.get_quality_report(report).issues


def test_empty_and_missing_reports_rejected(gate):
    """Test that no findings or no report is never displayed."""
    empty = make_report()

    assert not gate.should_display(None)
    assert not gate.should_display(empty)
    metrics = gate.calculate_report_quality(empty)
    assert metrics.overall_accuracy == 0.0
    assert metrics.misclassification_risk == 1.0


def test_custom_thresholds():
    """Test that a lenient configuration accepts the rejected report."""
    gate = QualityGate(QualityGateConfig(min_overall_accuracy=0.3, max_misclassification_risk=1.0))
    assert gate.should_display(make_report(logging_false_positive()))
