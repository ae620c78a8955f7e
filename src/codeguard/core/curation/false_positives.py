"""False-positive detection for backend findings.

Matches findings against known-safe code idioms (parameterized queries,
safe subprocess calls, textContent assignment, ...) and either suppresses
them or keeps them with a warning. The signature table is data; the
detector only applies it.

Provides:
- FalsePositivePattern: One known-safe idiom
- KNOWN_FALSE_POSITIVES: Default signature table
- FalsePositiveResult: Verdict for one finding
- FilterResult: Partition of a batch into kept/removed/warned findings
- FalsePositiveDetector: Applies signatures, heuristics and user suppressions
"""

import re
from dataclasses import dataclass, field

import structlog

from codeguard.core.models import Finding, SuppressedFinding

logger = structlog.get_logger()


@dataclass(frozen=True)
class FalsePositivePattern:
    """Known-safe idiom that backends tend to misclassify.

    Attributes:
        id: Stable identifier
        name: Short name
        indicator: Code pattern that triggers the match
        misclassification_types: Finding types this idiom is mistaken for
        languages: Languages where it applies ("any" matches all)
        correct_classification: What the code actually is
        confidence: How sure we are that a match is a false positive
        should_suppress: Hide the finding (True) or keep it with a warning
        description: Human-readable explanation
        context_indicator: Optional second pattern that must also match
    """

    id: str
    name: str
    indicator: re.Pattern
    misclassification_types: tuple[str, ...]
    languages: tuple[str, ...]
    correct_classification: str
    confidence: float
    should_suppress: bool
    description: str
    context_indicator: re.Pattern | None = None

    def matches_type(self, finding_type: str) -> bool:
        finding_type = finding_type.lower()
        return any(t.lower() in finding_type for t in self.misclassification_types)

    def matches_language(self, language: str) -> bool:
        return "any" in self.languages or language.lower() in self.languages


def _p(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


KNOWN_FALSE_POSITIVES: tuple[FalsePositivePattern, ...] = (
    # SQL injection
    FalsePositivePattern(
        id="fp-sql-jdbc-template",
        name="JdbcTemplate Safe Query",
        indicator=_p(r"jdbcTemplate\s*\.\s*(?:query|queryForObject|update|execute)\s*\("),
        context_indicator=re.compile(r"\?\s*[,)]"),
        misclassification_types=("sql_injection", "SQL Injection", "A03:2021", "CWE-89"),
        languages=("java",),
        correct_classification="Spring JdbcTemplate - Uses parameterized queries",
        confidence=0.9,
        should_suppress=True,
        description="Spring JdbcTemplate with ? placeholders is safe from SQL injection",
    ),
    FalsePositivePattern(
        id="fp-sql-prepared-statement",
        name="PreparedStatement",
        indicator=_p(r"PreparedStatement|prepareStatement\s*\("),
        context_indicator=_p(r"setString|setInt|setLong|setParameter"),
        misclassification_types=("sql_injection", "SQL Injection", "CWE-89"),
        languages=("java",),
        correct_classification="JDBC PreparedStatement - Safe parameterized query",
        confidence=0.85,
        should_suppress=True,
        description="PreparedStatement with parameter binding is safe",
    ),
    FalsePositivePattern(
        id="fp-sql-python-parameterized",
        name="Python Parameterized Query",
        indicator=_p(r"cursor\.execute\s*\([^,]+,\s*[\(\[]"),
        misclassification_types=("sql_injection", "SQL Injection", "CWE-89"),
        languages=("python",),
        correct_classification="Python parameterized query - Safe",
        confidence=0.85,
        should_suppress=True,
        description="cursor.execute with tuple/list parameters is safe",
    ),
    FalsePositivePattern(
        id="fp-sql-sqlalchemy-orm",
        name="SQLAlchemy ORM Query",
        indicator=_p(r"session\.query\s*\(|\.filter\s*\(\s*\w+\.\w+\s*=="),
        misclassification_types=("sql_injection", "SQL Injection", "CWE-89"),
        languages=("python",),
        correct_classification="SQLAlchemy ORM - Safe query",
        confidence=0.8,
        should_suppress=True,
        description="SQLAlchemy ORM queries use parameterized queries internally",
    ),
    FalsePositivePattern(
        id="fp-sql-print-statement",
        name="SQL in Print/Log Statement",
        indicator=_p(
            r"(?:print|console\.log|logger\.\w+|System\.out\.print)\s*\([^)]*"
            r"(?:SELECT|INSERT|UPDATE|DELETE)"
        ),
        misclassification_types=("sql_injection", "SQL Injection", "CWE-89"),
        languages=("any",),
        correct_classification="Logging/Debugging Statement",
        confidence=0.95,
        should_suppress=True,
        description="SQL query strings in log statements are not vulnerabilities",
    ),
    # Code injection
    FalsePositivePattern(
        id="fp-eval-literal",
        name="ast.literal_eval",
        indicator=_p(r"ast\.literal_eval\s*\("),
        misclassification_types=("code_injection", "eval()", "CWE-95"),
        languages=("python",),
        correct_classification="Safe literal evaluation - Only evaluates literals",
        confidence=0.95,
        should_suppress=True,
        description="ast.literal_eval only parses literal structures, not arbitrary code",
    ),
    FalsePositivePattern(
        id="fp-eval-json-parse",
        name="JSON.parse",
        indicator=_p(r"JSON\.parse\s*\("),
        misclassification_types=("code_injection", "eval()", "CWE-95"),
        languages=("javascript", "typescript"),
        correct_classification="JSON parsing - Not code execution",
        confidence=0.9,
        should_suppress=True,
        description="JSON.parse does not execute code",
    ),
    FalsePositivePattern(
        id="fp-eval-settimeout-number",
        name="setTimeout with function reference",
        indicator=_p(r"setTimeout\s*\(\s*\w+\s*,\s*\d+\s*\)"),
        misclassification_types=("code_injection", "eval()", "CWE-95"),
        languages=("javascript", "typescript"),
        correct_classification="setTimeout with function reference - Safe",
        confidence=0.85,
        should_suppress=True,
        description="setTimeout with function reference (not string) is safe",
    ),
    # Command injection
    FalsePositivePattern(
        id="fp-cmd-subprocess-safe",
        name="Subprocess shell=False",
        indicator=_p(r"subprocess\.(?:run|Popen|call)\s*\([^)]*shell\s*=\s*False"),
        misclassification_types=("command_injection", "CWE-78", "OS Command Injection"),
        languages=("python",),
        correct_classification="Safe subprocess call - shell disabled",
        confidence=0.85,
        should_suppress=True,
        description="subprocess with shell=False does not use shell interpolation",
    ),
    FalsePositivePattern(
        id="fp-cmd-subprocess-list",
        name="Subprocess with list arguments",
        indicator=_p(r"subprocess\.(?:run|Popen|call)\s*\(\s*\["),
        misclassification_types=("command_injection", "CWE-78", "OS Command Injection"),
        languages=("python",),
        correct_classification="Safe subprocess call - List arguments",
        confidence=0.75,
        should_suppress=False,
        description="subprocess with list arguments avoids shell interpolation",
    ),
    FalsePositivePattern(
        id="fp-cmd-exec-static",
        name="Exec with static command",
        indicator=_p(r"""(?:exec|system|spawn)\s*\(\s*['"][^'"$`{}]+['"]\s*\)"""),
        misclassification_types=("command_injection", "CWE-78"),
        languages=("any",),
        correct_classification="Static command execution - Review recommended",
        confidence=0.6,
        should_suppress=False,
        description="Exec with static string may be safe but review recommended",
    ),
    # XSS
    FalsePositivePattern(
        id="fp-xss-textcontent",
        name="textContent assignment",
        indicator=_p(r"\.textContent\s*="),
        misclassification_types=("xss", "XSS", "Cross-Site Scripting", "CWE-79"),
        languages=("javascript", "typescript"),
        correct_classification="Safe text assignment - textContent is XSS-safe",
        confidence=0.95,
        should_suppress=True,
        description="textContent does not interpret HTML",
    ),
    FalsePositivePattern(
        id="fp-xss-dompurify",
        name="DOMPurify sanitized",
        indicator=_p(r"DOMPurify\.sanitize\s*\("),
        misclassification_types=("xss", "XSS", "Cross-Site Scripting", "CWE-79"),
        languages=("javascript", "typescript"),
        correct_classification="Sanitized HTML - DOMPurify applied",
        confidence=0.9,
        should_suppress=True,
        description="DOMPurify sanitizes HTML to prevent XSS",
    ),
    FalsePositivePattern(
        id="fp-xss-htmlspecialchars",
        name="htmlspecialchars escape",
        indicator=_p(r"htmlspecialchars\s*\("),
        misclassification_types=("xss", "XSS", "Cross-Site Scripting", "CWE-79"),
        languages=("php",),
        correct_classification="Sanitized output - htmlspecialchars applied",
        confidence=0.85,
        should_suppress=True,
        description="htmlspecialchars escapes HTML special characters",
    ),
    FalsePositivePattern(
        id="fp-xss-escape-function",
        name="Escape function used",
        indicator=_p(r"escape(?:Html|XML|JS)?\s*\("),
        misclassification_types=("xss", "XSS", "Cross-Site Scripting", "CWE-79"),
        languages=("any",),
        correct_classification="Escaped output - May be safe",
        confidence=0.7,
        should_suppress=False,
        description="Escape function used - verify it applies to the right context",
    ),
    # Path traversal
    FalsePositivePattern(
        id="fp-path-resolve",
        name="Path resolve/normalize",
        indicator=_p(r"(?:path\.resolve|os\.path\.realpath|Path\([^)]+\)\.resolve)\s*\("),
        misclassification_types=("path_traversal", "CWE-22", "Directory Traversal"),
        languages=("any",),
        correct_classification="Path normalization - Mitigates traversal",
        confidence=0.7,
        should_suppress=False,
        description="Path resolution may help but complete mitigation should be verified",
    ),
    FalsePositivePattern(
        id="fp-path-static",
        name="Static file path",
        indicator=_p(r"""(?:readFile|writeFile|open)\s*\(\s*['"][^'"$`{}]+['"]\s*[,)]"""),
        misclassification_types=("path_traversal", "CWE-22"),
        languages=("any",),
        correct_classification="Static file path - No user input",
        confidence=0.85,
        should_suppress=True,
        description="Static file path with no dynamic components is safe",
    ),
    # Hardcoded credentials
    FalsePositivePattern(
        id="fp-cred-test",
        name="Test credentials",
        indicator=_p(
            r"""(?:password|secret|api_key)\s*[:=]\s*['"]"""
            r"""(?:test|example|dummy|changeme|placeholder)['"]"""
        ),
        misclassification_types=("hardcoded_credentials", "CWE-798", "Hardcoded"),
        languages=("any",),
        correct_classification="Test/Example credential - Not real",
        confidence=0.8,
        should_suppress=False,
        description="Appears to be a test/placeholder credential",
    ),
    FalsePositivePattern(
        id="fp-cred-env",
        name="Environment variable reference",
        indicator=_p(r"""(?:process\.env|os\.environ|getenv|ENV)\[['"]\w+['"]\]"""),
        context_indicator=_p(r"(?:password|secret|api_key|token)"),
        misclassification_types=("hardcoded_credentials", "CWE-798"),
        languages=("any",),
        correct_classification="Environment variable - Not hardcoded",
        confidence=0.9,
        should_suppress=True,
        description="Credentials from environment variables are not hardcoded",
    ),
)

_TEST_FILE = _p(r"(?:test|spec|mock|stub|fake|fixture)s?\.(?:ts|js|py|java)$")
_EXAMPLE_CODE = _p(r"(?:example|sample|demo|tutorial)")
_COMMENTED_CODE = re.compile(r"^\s*(?://|#|/\*|\*|<!--)", re.MULTILINE)


@dataclass
class FalsePositiveResult:
    """Verdict for one finding.

    ``confidence`` is how sure the detector is about the verdict; findings
    in test or example code come back with ``is_false_positive=False`` but
    a non-zero confidence and a reason, as a hint only.
    """

    is_false_positive: bool
    confidence: float
    reason: str | None = None
    correct_classification: str | None = None
    suppressed: bool = False


@dataclass
class FilterResult:
    filtered: list[Finding] = field(default_factory=list)
    removed: list[SuppressedFinding] = field(default_factory=list)
    warned: list[SuppressedFinding] = field(default_factory=list)


class FalsePositiveDetector:
    """Removes or flags findings that match known-safe idioms.

    Args:
        patterns: Signature table (defaults to KNOWN_FALSE_POSITIVES)
        suppressions: Finding ids the user has suppressed
    """

    def __init__(
        self,
        patterns: tuple[FalsePositivePattern, ...] | list[FalsePositivePattern] = KNOWN_FALSE_POSITIVES,
        suppressions: list[str] | None = None,
    ):
        self.patterns = tuple(patterns)
        self._suppressions: set[str] = set(suppressions or [])

    def detect(self, finding: Finding, full_code: str | None = None) -> FalsePositiveResult:
        """Classify one finding.

        Args:
            finding: Finding to check
            full_code: Whole submitted source, searched along with the snippet

        Returns:
            FalsePositiveResult
        """
        if finding.id and finding.id in self._suppressions:
            return FalsePositiveResult(
                is_false_positive=True,
                confidence=1.0,
                reason="User suppressed",
                suppressed=True,
            )

        snippet = finding.snippet
        all_code = f"{snippet}\n{full_code}" if full_code else snippet
        finding_type = finding.issue_type
        language = finding.fix_language

        for pattern in self.patterns:
            if not pattern.matches_type(finding_type):
                continue
            if not pattern.matches_language(language):
                continue
            if not pattern.indicator.search(all_code):
                continue
            if pattern.context_indicator and not pattern.context_indicator.search(all_code):
                continue
            return FalsePositiveResult(
                is_false_positive=True,
                confidence=pattern.confidence,
                reason=pattern.description,
                correct_classification=pattern.correct_classification,
                suppressed=pattern.should_suppress,
            )

        return self._check_heuristics(finding, all_code)

    def _check_heuristics(self, finding: Finding, code: str) -> FalsePositiveResult:
        file_name = (finding.affected_code.file if finding.affected_code else None) or ""
        if _TEST_FILE.search(file_name):
            return FalsePositiveResult(
                is_false_positive=False,
                confidence=0.4,
                reason="In test file - may be intentional vulnerable example",
            )

        if _EXAMPLE_CODE.search(code):
            return FalsePositiveResult(
                is_false_positive=False,
                confidence=0.3,
                reason="Appears to be example/documentation code",
            )

        if _COMMENTED_CODE.search(finding.snippet):
            return FalsePositiveResult(
                is_false_positive=True,
                confidence=0.85,
                reason="Vulnerability in commented code",
                suppressed=True,
            )

        return FalsePositiveResult(is_false_positive=False, confidence=0.0)

    def filter_findings(self, findings: list[Finding], full_code: str | None = None) -> FilterResult:
        """Partition findings into kept, removed and kept-with-warning."""
        result = FilterResult()

        for finding in findings:
            verdict = self.detect(finding, full_code)
            if verdict.is_false_positive and verdict.suppressed:
                result.removed.append(
                    SuppressedFinding(finding=finding, reason=verdict.reason or "Known false positive")
                )
            elif verdict.is_false_positive:
                result.warned.append(
                    SuppressedFinding(finding=finding, reason=verdict.reason or "Possible false positive")
                )
                result.filtered.append(finding)
            else:
                result.filtered.append(finding)

        if result.removed or result.warned:
            logger.info(
                "false_positives_filtered",
                total=len(findings),
                removed=len(result.removed),
                warned=len(result.warned),
            )
        return result

    def suppress(self, finding_id: str) -> None:
        self._suppressions.add(finding_id)

    def unsuppress(self, finding_id: str) -> None:
        self._suppressions.discard(finding_id)

    def get_suppressions(self) -> list[str]:
        return sorted(self._suppressions)

    def load_suppressions(self, finding_ids: list[str]) -> None:
        """Replace the suppression set (e.g. from persisted settings)."""
        self._suppressions = set(finding_ids)

    def get_pattern(self, pattern_id: str) -> FalsePositivePattern | None:
        return next((p for p in self.patterns if p.id == pattern_id), None)

    def patterns_for_type(self, finding_type: str) -> list[FalsePositivePattern]:
        return [p for p in self.patterns if p.matches_type(finding_type)]
