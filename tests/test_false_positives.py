"""Tests for FalsePositiveDetector.

Tests cover:
- Known-safe idioms per vulnerability class (suppressed vs warned)
- Language and context gating of signatures
- Heuristics for test files, example code and commented-out code
- User suppressions and batch filtering
"""

import pytest

from codeguard.core.curation import KNOWN_FALSE_POSITIVES, FalsePositiveDetector
from codeguard.core.models import Finding


def make_finding(snippet: str, issue_type: str, language: str, **extra) -> Finding:
    affected = {"snippet": snippet, "lines": [10]}
    if "file" in extra:
        affected["file"] = extra.pop("file")
    return Finding.model_validate({
        "severity": "high",
        "confidence": 0.8,
        "primaryIssue": {"type": issue_type},
        "affectedCode": affected,
        "fix": {"language": language},
        **extra,
    })


@pytest.fixture
def detector():
    return FalsePositiveDetector()


# Signature Tests


def test_python_parameterized_query_suppressed(detector):
    """Test that cursor.execute with bound parameters is a false positive."""
    finding = make_finding(
        'cursor.execute("SELECT * FROM users WHERE id = %s", (user_id,))',
        "sql_injection",
        "python",
    )

    result = detector.detect(finding)

    assert result.is_false_positive
    assert result.suppressed
    assert result.confidence == 0.85
    assert result.correct_classification == "Python parameterized query - Safe"


def test_jdbc_template_needs_placeholders(detector):
    """Test that JdbcTemplate only counts as safe with ? placeholders."""
    safe = make_finding(
        'jdbcTemplate.query("SELECT * FROM users WHERE id IN (?, ?)", mapper, a, b)',
        "sql_injection",
        "java",
    )
    concatenated = make_finding(
        "jdbcTemplate.query(\"SELECT * FROM users WHERE name = '\" + name + \"'\", mapper)",
        "sql_injection",
        "java",
    )

    assert detector.detect(safe).is_false_positive
    assert not detector.detect(concatenated).is_false_positive


def test_context_found_in_full_code(detector):
    """Test that the context indicator may match the surrounding source."""
    finding = make_finding(
        "PreparedStatement stmt = conn.prepareStatement(sql);",
        "SQL Injection",
        "java",
    )
    full_code = 'String sql = "SELECT * FROM t WHERE id = ?";\nstmt.setString(1, id);'

    assert not detector.detect(finding).is_false_positive
    assert detector.detect(finding, full_code).suppressed


def test_language_gating(detector):
    """Test that a python-only idiom does not apply to javascript findings."""
    finding = make_finding("value = ast.literal_eval(raw)", "code_injection", "javascript")
    assert not detector.detect(finding).is_false_positive

    finding = make_finding("value = ast.literal_eval(raw)", "code_injection", "python")
    assert detector.detect(finding).suppressed


def test_type_matching_is_substring_and_case_insensitive(detector):
    """Test that 'Reflected XSS' matches the xss signatures."""
    finding = make_finding("el.textContent = userInput;", "Reflected XSS", "typescript")
    result = detector.detect(finding)

    assert result.is_false_positive
    assert result.reason == "textContent does not interpret HTML"


def test_any_language_signature(detector):
    """Test that SQL text in a log call is suppressed in any language."""
    finding = make_finding(
        'logger.debug("SELECT * FROM orders WHERE id=" + order_id)',
        "sql_injection",
        "ruby",
    )
    result = detector.detect(finding)

    assert result.suppressed
    assert result.confidence == 0.95


def test_warning_signature_keeps_finding(detector):
    """Test that subprocess with list arguments is flagged, not removed."""
    finding = make_finding(
        'subprocess.run(["git", "clone", repo_url])',
        "command_injection",
        "python",
    )
    result = detector.detect(finding)

    assert result.is_false_positive
    assert not result.suppressed
    assert result.confidence == 0.75


def test_env_credentials_need_secret_context(detector):
    """Test environment lookups count only when a secret name is nearby."""
    finding = make_finding('db_password = os.environ["DB_PASSWORD"]', "hardcoded_credentials", "python")
    assert detector.detect(finding).suppressed

    finding = make_finding('region = os.environ["AWS_REGION"]', "hardcoded_credentials", "python")
    assert not detector.detect(finding).is_false_positive


# Heuristic Tests


def test_commented_code_suppressed(detector):
    """Test that a vulnerability inside a comment is removed."""
    finding = make_finding("# os.system(cmd + user_input)", "command_injection", "python")
    result = detector.detect(finding)

    assert result.is_false_positive
    assert result.suppressed
    assert result.reason == "Vulnerability in commented code"


def test_test_file_is_only_a_hint(detector):
    """Test that findings in test files are kept with a low-confidence note."""
    finding = make_finding(
        "os.system(cmd + user_input)",
        "command_injection",
        "python",
        file="tests/helpers_test.py",
    )
    result = detector.detect(finding)

    assert not result.is_false_positive
    assert result.confidence == 0.4
    assert result.reason.startswith("In test file")


def test_example_code_is_only_a_hint(detector):
    finding = make_finding("os.system(cmd + user_input)", "command_injection", "python")
    result = detector.detect(finding, "# Tutorial: running shell commands\n")

    assert not result.is_false_positive
    assert result.confidence == 0.3


def test_unmatched_finding_is_real(detector):
    finding = make_finding("os.system(cmd + user_input)", "command_injection", "python")
    result = detector.detect(finding)

    assert not result.is_false_positive
    assert result.confidence == 0.0
    assert result.reason is None


# Suppression Tests


def test_user_suppression_wins(detector):
    """Test that a suppressed id is removed regardless of content."""
    finding = make_finding("os.system(cmd + user_input)", "command_injection", "python", id="vuln-42")

    detector.suppress("vuln-42")
    result = detector.detect(finding)
    assert result.suppressed
    assert result.confidence == 1.0
    assert result.reason == "User suppressed"

    detector.unsuppress("vuln-42")
    assert not detector.detect(finding).is_false_positive


def test_suppression_bookkeeping():
    detector = FalsePositiveDetector(suppressions=["b", "a"])
    assert detector.get_suppressions() == ["a", "b"]

    detector.load_suppressions(["c"])
    assert detector.get_suppressions() == ["c"]


# Batch Filtering Tests


def test_filter_findings_partitions_batch(detector):
    """Test that suppressed findings are removed and warnings are kept."""
    real = make_finding("os.system(cmd + user_input)", "command_injection", "python")
    safe = make_finding("el.textContent = name;", "xss", "javascript")
    warned = make_finding('subprocess.call(["ls", path])', "command_injection", "python")

    result = detector.filter_findings([real, safe, warned])

    assert result.filtered == [real, warned]
    assert [s.finding for s in result.removed] == [safe]
    assert [s.finding for s in result.warned] == [warned]
    assert result.warned[0].reason == "subprocess with list arguments avoids shell interpolation"


def test_pattern_lookup(detector):
    assert detector.get_pattern("fp-xss-textcontent").languages == ("javascript", "typescript")
    assert detector.get_pattern("missing") is None

    ids = {p.id for p in detector.patterns_for_type("CWE-78")}
    assert ids == {"fp-cmd-subprocess-safe", "fp-cmd-subprocess-list", "fp-cmd-exec-static"}


def test_signature_table_ids_are_unique():
    ids = [p.id for p in KNOWN_FALSE_POSITIVES]
    assert len(ids) == len(set(ids))
