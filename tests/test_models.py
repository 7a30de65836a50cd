import pytest

from gitscan.models import (
    Issue,
    ScanResult,
    Severity,
    new_issue_id,
    normalize_issue_type,
    normalize_severity,
    severity_counts,
)


def make_issue(issue_id: str, severity: Severity) -> Issue:
    return Issue(id=issue_id, file="app.py", line=1, severity=severity, type="Bug", title=issue_id, description="")


class TestNormalizeSeverity:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("CRITICAL-ish", Severity.CRITICAL),
            ("Critical", Severity.CRITICAL),
            ("High priority", Severity.HIGH),
            ("HIGH - exploitable", Severity.HIGH),
            ("medium", Severity.MEDIUM),
            ("Low", Severity.LOW),
            ("informational", Severity.LOW),
            ("", Severity.LOW),
            (None, Severity.LOW),
        ],
    )
    def test_substring_match_is_case_insensitive(self, text, expected):
        assert normalize_severity(text) == expected

    def test_critical_wins_over_high_when_both_present(self):
        assert normalize_severity("high or critical") == Severity.CRITICAL

    def test_severity_rank_orders_levels(self):
        ranks = [s.rank for s in (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW)]
        assert ranks == sorted(ranks, reverse=True)


def test_unknown_issue_type_displays_as_bug():
    assert normalize_issue_type("code smell") == "Code Smell"
    assert normalize_issue_type("Style") == "Bug"
    assert normalize_issue_type(None) == "Bug"


def test_issue_ids_carry_their_index():
    assert new_issue_id(3).startswith("gen-3-")


def test_severity_counts_cover_every_level():
    issues = [make_issue("a", Severity.HIGH), make_issue("b", Severity.HIGH), make_issue("c", Severity.LOW)]

    counts = severity_counts(issues)

    assert counts == {"Critical": 0, "High": 2, "Medium": 0, "Low": 1, "total": 3}


def test_scan_result_lookup_and_serialization():
    issue = make_issue("x", Severity.MEDIUM)
    result = ScanResult(repo_url="https://github.com/o/r", issues=[issue], scanned_file="app.py", scanned_file_content="print(1)\n")

    assert result.get_issue("x") is issue
    assert result.get_issue("missing") is None
    data = result.to_dict()
    assert data["files_scanned"] == 1
    assert data["status"] == "completed"
    assert data["issues"][0]["severity"] == "Medium"
