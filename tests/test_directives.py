from __future__ import annotations

import pytest

from terminalauditor.models import DirectiveResult, Finding
from terminalauditor.review.directives import parse_directives


def test_parses_findings_and_first_directives() -> None:
    result = parse_directives(
        "\n".join(
            [
                "[FINDING:CRITICAL] Password stored in plain text",
                "[FINDING:SUGGESTION] Extract the retry loop",
                "[INJECT] Hash passwords with bcrypt before saving",
                "[INJECT] A second inject is ignored",
                "[INTERRUPT] Wrong storage layer.",
            ]
        )
    )

    assert [finding.severity for finding in result.findings] == ["CRITICAL", "SUGGESTION"]
    assert result.findings[0].description == "Password stored in plain text"
    assert result.inject == "Hash passwords with bcrypt before saving"
    assert result.interrupt == "Wrong storage layer."
    assert result.resolved is False
    assert result.no_findings is False


def test_no_findings_wins_over_everything() -> None:
    result = parse_directives("[FINDING:WARNING] noisy\n[NO_FINDINGS]\n[INJECT] do it")

    assert result.no_findings is True
    assert result.findings == []
    assert result.inject is None


def test_resolved_marker_anywhere() -> None:
    assert parse_directives("Looks fine now. [RESOLVED]").resolved is True


def test_directives_must_start_a_line() -> None:
    result = parse_directives("The worker wrote [FINDING:CRITICAL] into a comment")

    assert result.findings == []


def test_unknown_severity_is_ignored() -> None:
    result = parse_directives("[FINDING:BLOCKER] not a real level\n[FINDING:INFO] fine")

    assert [finding.severity for finding in result.findings] == ["INFO"]


def test_plain_text_yields_empty_result() -> None:
    result = parse_directives("I have no comments on this chunk.")

    assert result == DirectiveResult(findings=[], resolved=False)


def test_has_severity() -> None:
    result = DirectiveResult(findings=[Finding("WARNING", "w")])

    assert result.has_severity({"CRITICAL", "WARNING"})
    assert not result.has_severity({"CRITICAL"})


def test_finding_rejects_unknown_severity() -> None:
    with pytest.raises(ValueError, match="Unsupported finding severity"):
        Finding("FATAL", "nope")  # type: ignore[arg-type]
