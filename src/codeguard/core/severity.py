"""CVSS v3 scoring helpers.

Findings may carry a CVSS v3 vector in ``standards.cvss`` without an NVD
base score. These helpers turn such a vector into a base score so the
prioritizer can apply its "critical CVSS" exploit heuristic.

Provides:
- cvss_base_score: CVSS v3.x base score from a vector string
- severity_label: Severity label for a CVSS score
- reference_cvss_score: Best available CVSS score for a finding
"""

from cvss import CVSS3
from cvss.exceptions import CVSSError

from codeguard.core.models import Finding


def cvss_base_score(vector: str | None) -> float | None:
    """Calculate the base score of a CVSS v3.0/v3.1 vector.

    Args:
        vector: Vector string, e.g. "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"

    Returns:
        Base score (0.0 - 10.0), or None when the vector is missing or malformed

    Example:
        >>> cvss_base_score("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H")
        9.8
    """
    if not vector or not vector.upper().startswith("CVSS:3"):
        return None
    try:
        return float(CVSS3(vector).base_score)
    except CVSSError:
        return None


def severity_label(score: float) -> str:
    """Map a CVSS score to a severity label.

    Returns:
        "info" | "low" | "medium" | "high" | "critical"
    """
    if score == 0.0:
        return "info"
    if score < 4.0:
        return "low"
    if score < 7.0:
        return "medium"
    if score < 9.0:
        return "high"
    return "critical"


def reference_cvss_score(finding: Finding) -> float | None:
    """NVD base score if present, otherwise the score of the finding's vector."""
    intelligence = finding.intelligence
    if intelligence and intelligence.nvd_data and intelligence.nvd_data.base_score is not None:
        return intelligence.nvd_data.base_score
    return cvss_base_score(finding.standards.cvss)
