"""Threat-intelligence prioritization of findings.

Scores each finding 0-100 from its severity plus boosts for CISA KEV
listing, EPSS probability, likely public exploit availability, backend
confidence and business/architectural context, then buckets the score
into a priority level.

Provides:
- PrioritizationConfig: Base scores, multipliers and EPSS thresholds
- IntelligencePrioritizer: prioritize / prioritize_report / summaries
"""

import math
from dataclasses import dataclass

import structlog

from codeguard.core.models import (
    AnalysisReport,
    Finding,
    IntelligenceSummary,
    PrioritizedFinding,
    PriorityFactors,
    PriorityLevel,
)
from codeguard.core.severity import reference_cvss_score

logger = structlog.get_logger()

EXPLOIT_KEYWORDS = ("exploit", "poc", "metasploit", "nuclei", "burp")

# Re-prioritizing an already annotated finding replaces these
_PRIORITY_FIELDS = {"priority_score", "priority_level", "priority_factors", "urgency_reason"}

PRIORITY_ICONS = {
    PriorityLevel.CRITICAL: "🚨",
    PriorityLevel.HIGH: "🔴",
    PriorityLevel.MEDIUM: "🟠",
    PriorityLevel.LOW: "🟢",
}


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class PrioritizationConfig:
    """Scoring parameters.

    A multiplier ``m`` contributes ``severity_score * (m - 1)`` on top of
    the base score, so boosts are additive rather than compounding.
    """

    critical_base_score: float = 40
    high_base_score: float = 30
    medium_base_score: float = 20
    low_base_score: float = 10

    cisa_kev_multiplier: float = 2.5
    epss_high_threshold: float = 0.9
    epss_high_multiplier: float = 1.8
    epss_medium_threshold: float = 0.5
    epss_medium_multiplier: float = 1.3
    exploit_available_multiplier: float = 1.5
    high_confidence_multiplier: float = 1.2

    high_confidence_threshold: float = 0.85
    critical_cvss_threshold: float = 9.0
    very_high_epss_threshold: float = 0.95
    business_logic_bonus: float = 5
    architectural_bonus: float = 3


class IntelligencePrioritizer:
    """Ranks findings by exploitation likelihood and impact.

    Example:
        >>> prioritizer = IntelligencePrioritizer()
        >>> ranked = prioritizer.prioritize_report(report)
        >>> urgent = prioritizer.get_immediate_action(ranked)
    """

    def __init__(self, config: PrioritizationConfig | None = None):
        self.config = config or PrioritizationConfig()

    def prioritize_report(self, report: AnalysisReport | list[Finding]) -> list[PrioritizedFinding]:
        """Prioritize every finding and sort by descending priority score.

        The sort is stable, so equal scores keep the backend's order.
        """
        findings = report.vulnerabilities if isinstance(report, AnalysisReport) else report
        prioritized = [self.prioritize(finding) for finding in findings]
        prioritized.sort(key=lambda f: f.priority_score, reverse=True)
        return prioritized

    def prioritize(self, finding: Finding) -> PrioritizedFinding:
        """Annotate one finding with its priority score, level and reasons."""
        factors = self.calculate_priority_factors(finding)
        score = min(100.0, factors.total)

        return PrioritizedFinding(
            **finding.model_dump(exclude=_PRIORITY_FIELDS),
            priority_score=score,
            priority_level=self.get_priority_level(score),
            priority_factors=factors,
            urgency_reason=self.get_urgency_reason(finding, factors),
        )

    def calculate_priority_factors(self, finding: Finding) -> PriorityFactors:
        cfg = self.config
        severity_score = self.get_base_severity_score(finding.severity)

        cisa_kev_boost = 0.0
        if finding.known_exploited:
            cisa_kev_boost = severity_score * (cfg.cisa_kev_multiplier - 1)

        epss_boost = 0.0
        epss = finding.epss_score
        if epss is not None:
            if epss >= cfg.epss_high_threshold:
                epss_boost = severity_score * (cfg.epss_high_multiplier - 1)
            elif epss >= cfg.epss_medium_threshold:
                epss_boost = severity_score * (cfg.epss_medium_multiplier - 1)

        exploit_available_boost = 0.0
        if self.has_public_exploit(finding):
            exploit_available_boost = severity_score * (cfg.exploit_available_multiplier - 1)

        confidence_boost = 0.0
        if finding.confidence >= cfg.high_confidence_threshold or finding.confidence_level == "HIGH":
            confidence_boost = severity_score * (cfg.high_confidence_multiplier - 1)

        context_boost = 0.0
        if finding.related_concerns.business_logic:
            context_boost += cfg.business_logic_bonus
        if finding.related_concerns.architectural:
            context_boost += cfg.architectural_bonus

        total = (
            severity_score
            + cisa_kev_boost
            + epss_boost
            + exploit_available_boost
            + confidence_boost
            + context_boost
        )

        return PriorityFactors(
            severity_score=severity_score,
            cisa_kev_boost=cisa_kev_boost,
            epss_boost=epss_boost,
            exploit_available_boost=exploit_available_boost,
            confidence_boost=confidence_boost,
            context_boost=context_boost,
            total=total,
        )

    def get_base_severity_score(self, severity: str) -> float:
        cfg = self.config
        return {
            "critical": cfg.critical_base_score,
            "high": cfg.high_base_score,
            "medium": cfg.medium_base_score,
            "low": cfg.low_base_score,
        }.get(severity.lower(), cfg.low_base_score)

    def has_public_exploit(self, finding: Finding) -> bool:
        """Heuristic: is a public exploit likely to exist?

        True when the reference CVSS score (NVD, else the finding's own
        CVSS v3 vector) is critical, EPSS is very high, or the evidence
        mentions exploit tooling.
        """
        cvss_score = reference_cvss_score(finding)
        if cvss_score is not None and cvss_score >= self.config.critical_cvss_threshold:
            return True

        epss = finding.epss_score
        if epss is not None and epss >= self.config.very_high_epss_threshold:
            return True

        return any(
            keyword in indicator.lower()
            for indicator in finding.evidence.indicators
            for keyword in EXPLOIT_KEYWORDS
        )

    @staticmethod
    def get_priority_level(score: float) -> PriorityLevel:
        if score >= 80:
            return PriorityLevel.CRITICAL
        if score >= 55:
            return PriorityLevel.HIGH
        if score >= 30:
            return PriorityLevel.MEDIUM
        return PriorityLevel.LOW

    def get_urgency_reason(self, finding: Finding, factors: PriorityFactors) -> str | None:
        reasons = []

        if factors.cisa_kev_boost > 0:
            kev = finding.intelligence.cisa_kev if finding.intelligence else None
            if kev and kev.date_added:
                reasons.append(f"CISA KEV: Active exploitation since {kev.date_added}")
            else:
                reasons.append("CISA KEV: Actively exploited in the wild")

        if factors.epss_boost > 0 and finding.epss_score is not None:
            epss = finding.epss_score
            percentage = _round_half_up(epss * 100)
            if epss >= self.config.epss_high_threshold:
                reasons.append(f"EPSS: {percentage}% exploitation probability (very high)")
            elif epss >= self.config.epss_medium_threshold:
                reasons.append(f"EPSS: {percentage}% exploitation probability")

        if factors.exploit_available_boost > 0:
            reasons.append("Public exploit likely available")

        if finding.severity == "critical":
            reasons.append("Critical severity requires immediate attention")

        return " | ".join(reasons) if reasons else None

    def get_intelligence_summary(self, prioritized: list[PrioritizedFinding]) -> IntelligenceSummary:
        total = len(prioritized)
        average = (
            _round_half_up(sum(f.priority_score for f in prioritized) / total) if total else 0
        )
        return IntelligenceSummary(
            total_vulns=total,
            cisa_kev_count=sum(1 for f in prioritized if f.priority_factors.cisa_kev_boost > 0),
            high_epss_count=sum(1 for f in prioritized if f.priority_factors.epss_boost > 0),
            exploit_available_count=sum(
                1 for f in prioritized if f.priority_factors.exploit_available_boost > 0
            ),
            critical_priority_count=sum(
                1 for f in prioritized if f.priority_level == PriorityLevel.CRITICAL
            ),
            high_priority_count=sum(1 for f in prioritized if f.priority_level == PriorityLevel.HIGH),
            average_priority_score=average,
        )

    def get_immediate_action(self, prioritized: list[PrioritizedFinding]) -> list[PrioritizedFinding]:
        """Findings to fix now: CRITICAL level, KEV-listed, or very high EPSS."""
        return [
            f
            for f in prioritized
            if f.priority_level == PriorityLevel.CRITICAL
            or f.priority_factors.cisa_kev_boost > 0
            or (
                f.priority_factors.epss_boost > 0
                and f.epss_score is not None
                and f.epss_score >= self.config.epss_high_threshold
            )
        ]

    @staticmethod
    def get_top_priority(prioritized: list[PrioritizedFinding], n: int = 5) -> list[PrioritizedFinding]:
        return prioritized[:n]

    @staticmethod
    def format_priority_score(finding: PrioritizedFinding) -> str:
        icon = PRIORITY_ICONS[finding.priority_level]
        return f"{icon} Priority: {_round_half_up(finding.priority_score)}/100"

    def get_priority_explanation(self, finding: PrioritizedFinding) -> list[str]:
        """Human-readable score breakdown, one line per contributing factor."""
        factors = finding.priority_factors
        lines = [
            f"Priority Score: {_round_half_up(finding.priority_score)}/100 "
            f"({finding.priority_level.value})",
            f"- Base Severity ({finding.severity.upper()}): +{_round_half_up(factors.severity_score)}",
        ]
        if factors.cisa_kev_boost > 0:
            lines.append(f"- CISA KEV (Known Exploited): +{_round_half_up(factors.cisa_kev_boost)}")
        if factors.epss_boost > 0:
            epss = finding.epss_score
            epss_label = f"{_round_half_up(epss * 100)}%" if epss else "High"
            lines.append(f"- EPSS Score ({epss_label}): +{_round_half_up(factors.epss_boost)}")
        if factors.exploit_available_boost > 0:
            lines.append(
                f"- Public Exploit Available: +{_round_half_up(factors.exploit_available_boost)}"
            )
        if factors.confidence_boost > 0:
            lines.append(f"- High Confidence: +{_round_half_up(factors.confidence_boost)}")
        if factors.context_boost > 0:
            lines.append(f"- Business Context: +{_round_half_up(factors.context_boost)}")
        if finding.urgency_reason:
            lines.append(f"Urgency: {finding.urgency_reason}")
        return lines
