"""Tests for IntelligencePrioritizer and CVSS helpers.

Tests cover:
- Priority factors from severity, CISA KEV, EPSS, exploit heuristics and context
- Priority levels and urgency reasons
- Report-level ordering and intelligence summary
- CVSS vector scoring
"""

import pytest

from codeguard.core.curation import IntelligencePrioritizer
from codeguard.core.models import AnalysisReport, Finding, PriorityLevel
from codeguard.core.severity import cvss_base_score, reference_cvss_score, severity_label

CRITICAL_VECTOR = "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"


def make_finding(severity: str = "medium", title: str = "", **extra) -> Finding:
    return Finding.model_validate({
        "severity": severity,
        "primaryIssue": {"type": "sql_injection", "title": title},
        **extra,
    })


@pytest.fixture
def prioritizer():
    return IntelligencePrioritizer()


# Factor Tests


def test_base_severity_scores(prioritizer):
    assert prioritizer.get_base_severity_score("CRITICAL") == 40
    assert prioritizer.get_base_severity_score("high") == 30
    assert prioritizer.get_base_severity_score("medium") == 20
    assert prioritizer.get_base_severity_score("low") == 10
    assert prioritizer.get_base_severity_score("info") == 10


def test_known_exploited_critical(prioritizer):
    """Test that a KEV-listed critical finding hits the 100 cap."""
    finding = make_finding("critical", intelligence={"cisaKEV": {"knownExploited": True}})

    result = prioritizer.prioritize(finding)

    assert result.priority_score == 100
    assert result.priority_level == PriorityLevel.CRITICAL
    assert result.priority_factors.cisa_kev_boost == 60
    assert result.urgency_reason == (
        "CISA KEV: Actively exploited in the wild | Critical severity requires immediate attention"
    )


def test_kev_date_in_urgency(prioritizer):
    finding = make_finding(
        "high",
        intelligence={"cisaKEV": {"knownExploited": True, "dateAdded": "2024-01-10"}},
    )
    assert prioritizer.prioritize(finding).urgency_reason == "CISA KEV: Active exploitation since 2024-01-10"


def test_high_epss(prioritizer):
    """Test that EPSS above 0.9 adds 80% of the base score."""
    finding = make_finding("high", intelligence={"epssScore": 0.92})

    result = prioritizer.prioritize(finding)

    assert result.priority_score == pytest.approx(54)
    assert result.priority_level == PriorityLevel.MEDIUM
    assert result.urgency_reason == "EPSS: 92% exploitation probability (very high)"


def test_medium_epss(prioritizer):
    finding = make_finding("medium", intelligence={"epssScore": 0.5})

    result = prioritizer.prioritize(finding)

    assert result.priority_factors.epss_boost == pytest.approx(6)
    assert result.urgency_reason == "EPSS: 50% exploitation probability"


def test_low_epss_adds_nothing(prioritizer):
    result = prioritizer.prioritize(make_finding("medium", intelligence={"epssScore": 0.1}))
    assert result.priority_factors.epss_boost == 0
    assert result.urgency_reason is None


def test_very_high_epss_implies_public_exploit(prioritizer):
    """Test EPSS >= 0.95 counts both as high EPSS and as exploit available."""
    finding = make_finding("high", intelligence={"epssScore": 0.97})

    factors = prioritizer.calculate_priority_factors(finding)

    assert factors.epss_boost == pytest.approx(24)
    assert factors.exploit_available_boost == pytest.approx(15)
    assert factors.total == pytest.approx(69)


def test_critical_cvss_vector_implies_public_exploit(prioritizer):
    """Test that a 9.8 CVSS vector triggers the exploit heuristic."""
    finding = make_finding("medium", standards={"cvss": CRITICAL_VECTOR})

    result = prioritizer.prioritize(finding)

    assert result.priority_factors.exploit_available_boost == pytest.approx(10)
    assert result.priority_score == pytest.approx(30)
    assert result.priority_level == PriorityLevel.MEDIUM
    assert result.urgency_reason == "Public exploit likely available"


def test_nvd_score_preferred_over_vector(prioritizer):
    finding = make_finding(
        "medium",
        standards={"cvss": CRITICAL_VECTOR},
        intelligence={"nvdData": {"cveId": "CVE-2024-0001", "baseScore": 5.0}},
    )
    assert reference_cvss_score(finding) == 5.0
    assert not prioritizer.has_public_exploit(finding)


def test_exploit_keywords_in_indicators(prioritizer):
    finding = make_finding("low", evidence={"indicators": ["Metasploit module available"]})
    assert prioritizer.has_public_exploit(finding)


def test_confidence_boost(prioritizer):
    """Test that numeric or discrete high confidence adds 20%."""
    numeric = make_finding("high", confidence=0.9)
    discrete = make_finding("high", confidenceLevel="high")

    assert prioritizer.calculate_priority_factors(numeric).confidence_boost == pytest.approx(6)
    assert prioritizer.calculate_priority_factors(discrete).confidence_boost == pytest.approx(6)


def test_context_bonus(prioritizer):
    finding = make_finding(
        "low",
        relatedConcerns={"businessLogic": "Refund flow", "architectural": "Shared DB user"},
    )

    result = prioritizer.prioritize(finding)

    assert result.priority_factors.context_boost == 8
    assert result.priority_score == 18
    assert result.priority_level == PriorityLevel.LOW


@pytest.mark.parametrize(
    "score,level",
    [
        (100, PriorityLevel.CRITICAL),
        (80, PriorityLevel.CRITICAL),
        (79.9, PriorityLevel.HIGH),
        (55, PriorityLevel.HIGH),
        (54.9, PriorityLevel.MEDIUM),
        (30, PriorityLevel.MEDIUM),
        (29.9, PriorityLevel.LOW),
        (0, PriorityLevel.LOW),
    ],
)
def test_priority_levels(score, level):
    assert IntelligencePrioritizer.get_priority_level(score) == level


# Report Tests


def test_prioritize_report_orders_by_score(prioritizer):
    """Test descending order with stable ties."""
    report = AnalysisReport(vulnerabilities=[
        make_finding("low", title="first-low"),
        make_finding("critical", title="critical"),
        make_finding("low", title="second-low"),
        make_finding("high", title="high", intelligence={"epssScore": 0.92}),
    ])

    ranked = prioritizer.prioritize_report(report)

    assert [f.primary_issue.title for f in ranked] == ["high", "critical", "first-low", "second-low"]
    assert len(ranked) == len(report.vulnerabilities)


def test_reprioritizing_is_idempotent(prioritizer):
    finding = make_finding("critical", intelligence={"cisaKEV": {"knownExploited": True}})
    once = prioritizer.prioritize(finding)
    twice = prioritizer.prioritize(once)

    assert twice.priority_score == once.priority_score
    assert twice.urgency_reason == once.urgency_reason


def test_intelligence_summary(prioritizer):
    ranked = prioritizer.prioritize_report([
        make_finding("critical", intelligence={"cisaKEV": {"knownExploited": True}}),
        make_finding("high", intelligence={"epssScore": 0.92}),
        make_finding("low"),
    ])

    summary = prioritizer.get_intelligence_summary(ranked)

    assert summary.total_vulns == 3
    assert summary.cisa_kev_count == 1
    assert summary.high_epss_count == 1
    assert summary.critical_priority_count == 1
    assert summary.high_priority_count == 0
    # (100 + 54 + 10) / 3 = 54.67
    assert summary.average_priority_score == 55


def test_empty_summary(prioritizer):
    summary = prioritizer.get_intelligence_summary([])
    assert summary.total_vulns == 0
    assert summary.average_priority_score == 0


def test_immediate_action_and_top_priority(prioritizer):
    ranked = prioritizer.prioritize_report([
        make_finding("low"),
        make_finding("high", intelligence={"epssScore": 0.92}),
        make_finding("critical", intelligence={"cisaKEV": {"knownExploited": True}}),
        make_finding("medium", intelligence={"epssScore": 0.6}),
    ])

    urgent = prioritizer.get_immediate_action(ranked)

    assert [f.severity for f in urgent] == ["critical", "high"]
    assert len(prioritizer.get_top_priority(ranked, n=2)) == 2


def test_priority_explanation(prioritizer):
    result = prioritizer.prioritize(
        make_finding("critical", intelligence={"cisaKEV": {"knownExploited": True}})
    )

    assert prioritizer.format_priority_score(result) == "🚨 Priority: 100/100"
    assert prioritizer.get_priority_explanation(result) == [
        "Priority Score: 100/100 (CRITICAL)",
        "- Base Severity (CRITICAL): +40",
        "- CISA KEV (Known Exploited): +60",
        "Urgency: CISA KEV: Actively exploited in the wild | Critical severity requires immediate attention",
    ]


# CVSS Tests


def test_cvss_base_score():
    assert cvss_base_score(CRITICAL_VECTOR) == 9.8
    assert cvss_base_score("CVSS:3.1/AV:N/AC:L/PR:N/UI:R/S:C/C:L/I:L/A:N") == 6.1


@pytest.mark.parametrize("vector", [None, "", "AV:N/AC:L/Au:N/C:P/I:P/A:P", "CVSS:3.1/AV:X"])
def test_cvss_base_score_invalid(vector):
    assert cvss_base_score(vector) is None


def test_severity_label():
    assert severity_label(0.0) == "info"
    assert severity_label(3.9) == "low"
    assert severity_label(6.9) == "medium"
    assert severity_label(8.9) == "high"
    assert severity_label(9.8) == "critical"
