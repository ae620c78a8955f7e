"""Quality gate for enhanced analysis reports.

Decides whether an enhanced report is reliable enough to show. The score
blends five metrics:

    language detection      20%
    confidence consistency  15%
    1 - misclassification   30%
    line accuracy           15%
    pattern quality         20%

A rejected report is not an error; callers fall back to the basic result.

Provides:
- QualityGateConfig: Acceptance thresholds
- KNOWN_MISCLASSIFICATIONS: Signatures of commonly misclassified code
- QualityGate: should_display / calculate_report_quality / get_quality_report
"""

import re
from dataclasses import dataclass

import structlog

from codeguard.core.models import AnalysisReport, Finding, QualityMetrics, QualityReport

logger = structlog.get_logger()


@dataclass(frozen=True)
class QualityGateConfig:
    min_overall_accuracy: float = 0.65
    min_language_confidence: float = 0.50
    max_misclassification_risk: float = 0.35
    min_vulnerability_count: int = 1


@dataclass(frozen=True)
class Misclassification:
    """Code idiom a backend tends to flag as a given vulnerability type."""

    indicator: re.Pattern
    types: tuple[str, ...]
    language: str
    correct_classification: str


KNOWN_MISCLASSIFICATIONS: tuple[Misclassification, ...] = (
    Misclassification(
        re.compile(r"jdbcTemplate\s*\.\s*(?:query|update|execute)", re.IGNORECASE),
        ("sql_injection", "SQL Injection"),
        "java",
        "JDBC Template Usage (Parameterized)",
    ),
    Misclassification(
        re.compile(r"(?:print|console\.log|logger\.|System\.out\.print)", re.IGNORECASE),
        ("sql_injection", "SQL Injection"),
        "any",
        "Logging Statement",
    ),
    Misclassification(
        re.compile(r"ast\.literal_eval", re.IGNORECASE),
        ("code_injection", "eval()", "Code Injection"),
        "python",
        "Safe Literal Evaluation",
    ),
    Misclassification(
        re.compile(r"subprocess\.(?:run|Popen|call)\s*\([^)]*shell\s*=\s*False", re.IGNORECASE),
        ("command_injection", "Command Injection"),
        "python",
        "Safe Subprocess Call",
    ),
    Misclassification(
        re.compile(r"\.textContent\s*=", re.IGNORECASE),
        ("xss", "XSS", "Cross-Site Scripting"),
        "javascript",
        "Safe Text Content Assignment",
    ),
    Misclassification(
        re.compile(r"cursor\.execute\s*\([^,]+,\s*[\(\[]", re.IGNORECASE),
        ("sql_injection", "SQL Injection"),
        "python",
        "Parameterized Query",
    ),
    Misclassification(
        re.compile(r"Path\s*\([^)]+\)\.resolve\(\)", re.IGNORECASE),
        ("path_traversal", "Path Traversal"),
        "python",
        "Safe Path Resolution",
    ),
)

# High-confidence findings on these are half-suspicious
BENIGN_KEYWORDS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"print\s*\(",
        r"console\.\w+",
        r"logger\.",
        r"log\s*\(",
        r"\.textContent",
        r"literal_eval",
        r"shell\s*=\s*False",
    )
)

MAX_LINE_NUMBER = 100_000
MAX_LINE_SPREAD = 50
CONSISTENCY_VARIANCE_LIMIT = 0.1


def _pct(value: float) -> str:
    return f"{value * 100:.1f}%"


class QualityGate:
    """Accepts or rejects enhanced reports.

    Args:
        config: Acceptance thresholds (defaults to QualityGateConfig())
    """

    def __init__(self, config: QualityGateConfig | None = None):
        self.config = config or QualityGateConfig()

    def should_display(self, report: AnalysisReport | None) -> bool:
        """Return True when the report meets every threshold."""
        if report is None:
            return False

        cfg = self.config
        if len(report.vulnerabilities) < cfg.min_vulnerability_count:
            logger.info("quality_gate_rejected", reason="insufficient_vulnerabilities")
            return False

        metrics = self.calculate_report_quality(report)

        if metrics.overall_accuracy < cfg.min_overall_accuracy:
            logger.info(
                "quality_gate_rejected",
                reason="accuracy",
                value=_pct(metrics.overall_accuracy),
                threshold=_pct(cfg.min_overall_accuracy),
            )
            return False
        if metrics.language_detection_score < cfg.min_language_confidence:
            logger.info(
                "quality_gate_rejected",
                reason="language_detection",
                value=_pct(metrics.language_detection_score),
                threshold=_pct(cfg.min_language_confidence),
            )
            return False
        if metrics.misclassification_risk > cfg.max_misclassification_risk:
            logger.info(
                "quality_gate_rejected",
                reason="misclassification_risk",
                value=_pct(metrics.misclassification_risk),
                threshold=_pct(cfg.max_misclassification_risk),
            )
            return False

        logger.info("quality_gate_accepted", accuracy=_pct(metrics.overall_accuracy))
        return True

    def calculate_report_quality(self, report: AnalysisReport) -> QualityMetrics:
        """Compute all quality metrics for a report.

        An empty report scores zero everywhere with maximal risk.
        """
        findings = report.vulnerabilities
        if not findings:
            return QualityMetrics(misclassification_risk=1.0)

        language = self.language_detection_score(report)
        consistency = self.confidence_consistency(findings)
        risk = self.misclassification_risk(findings)
        lines = self.line_accuracy_score(findings)
        patterns = self.pattern_quality(findings)

        overall = (
            language * 0.2
            + consistency * 0.15
            + (1 - risk) * 0.3
            + lines * 0.15
            + patterns * 0.2
        )

        return QualityMetrics(
            overall_accuracy=max(0.0, min(1.0, overall)),
            language_detection_score=language,
            confidence_consistency=consistency,
            misclassification_risk=risk,
            line_accuracy_score=lines,
            pattern_quality=patterns,
        )

    def language_detection_score(self, report: AnalysisReport) -> float:
        detected = report.summary.detected_language
        if not detected or detected == "unknown":
            return 0.2

        findings = report.vulnerabilities
        if not findings:
            return 0.5

        confidences = [
            f.fix.language_confidence
            for f in findings
            if f.fix is not None and f.fix.language_confidence is not None
        ]
        if not confidences:
            return 0.5

        average = sum(confidences) / len(confidences)
        languages = {f.fix.language for f in findings if f.fix is not None and f.fix.language}
        penalty = 0.2 if len(languages) > 2 else 0.0
        return max(0.0, average - penalty)

    def confidence_consistency(self, findings: list[Finding]) -> float:
        confidences = [f.confidence for f in findings]
        if len(confidences) < 2:
            return 0.7

        mean = sum(confidences) / len(confidences)
        variance = sum((c - mean) ** 2 for c in confidences) / len(confidences)
        return 1 - min(1.0, variance / CONSISTENCY_VARIANCE_LIMIT)

    def misclassification_risk(self, findings: list[Finding]) -> float:
        if not findings:
            return 0.0

        suspicion = 0.0
        for finding in findings:
            snippet = finding.snippet
            finding_type = finding.issue_type.lower()
            language = finding.fix_language.lower()

            for signature in KNOWN_MISCLASSIFICATIONS:
                if not signature.indicator.search(snippet):
                    continue
                type_match = any(t.lower() in finding_type for t in signature.types)
                lang_match = signature.language == "any" or language == signature.language
                if type_match and lang_match:
                    suspicion += 1
                    break

            if finding.confidence >= 0.9 and any(kw.search(snippet) for kw in BENIGN_KEYWORDS):
                suspicion += 0.5

        return min(1.0, suspicion / len(findings))

    def line_accuracy_score(self, findings: list[Finding]) -> float:
        with_lines = [f for f in findings if f.affected_code and f.affected_code.lines]
        if not with_lines:
            return 0.3

        valid = 0
        for finding in with_lines:
            lines = finding.affected_code.lines
            in_range = all(0 < line < MAX_LINE_NUMBER for line in lines)
            if in_range and max(lines) - min(lines) < MAX_LINE_SPREAD:
                valid += 1
        return valid / len(with_lines)

    def pattern_quality(self, findings: list[Finding]) -> float:
        if not findings:
            return 0.0

        total = 0.0
        for finding in findings:
            quality = 0.5
            if finding.evidence.patterns or finding.evidence.indicators:
                quality += 0.15
            if finding.standards.cwe:
                quality += 0.1
            if finding.standards.owasp:
                quality += 0.1
            if finding.fix and finding.fix.vulnerable_code and finding.fix.secure_code:
                quality += 0.15
            if len(finding.impact.security) > 20:
                quality += 0.1
            total += min(1.0, quality)
        return total / len(findings)

    def get_quality_report(self, report: AnalysisReport) -> QualityReport:
        """Metrics plus human-readable reasons, for diagnostics."""
        cfg = self.config
        metrics = self.calculate_report_quality(report)
        issues = []

        if metrics.overall_accuracy < cfg.min_overall_accuracy:
            issues.append(
                f"Overall accuracy ({_pct(metrics.overall_accuracy)}) below threshold "
                f"({_pct(cfg.min_overall_accuracy)})"
            )
        if metrics.language_detection_score < cfg.min_language_confidence:
            issues.append(
                f"Language detection confidence ({_pct(metrics.language_detection_score)}) "
                "below threshold"
            )
        if metrics.misclassification_risk > cfg.max_misclassification_risk:
            issues.append(f"High misclassification risk ({_pct(metrics.misclassification_risk)})")
        if metrics.line_accuracy_score < 0.5:
            issues.append(f"Line accuracy issues detected ({_pct(metrics.line_accuracy_score)})")

        return QualityReport(metrics=metrics, passed=not issues, issues=issues)
