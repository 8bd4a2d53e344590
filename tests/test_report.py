from __future__ import annotations

from terminalauditor.display import ActionRecord
from terminalauditor.models import Finding
from terminalauditor.report import ReportData, format_duration, generate_report
from terminalauditor.stream.chunker import ChunkerStats


def _data(**overrides: object) -> ReportData:
    values: dict[str, object] = {
        "findings": [],
        "actions": [],
        "chunks": ChunkerStats(total_chunks=3, total_lines=42, detected_tools={"Read": 5, "Bash": 2}),
        "auditor_cost": 0.04321,
        "auditor_model": "sonnet",
        "duration_seconds": 30,
        "exit_code": 0,
    }
    values.update(overrides)
    return ReportData(**values)  # type: ignore[arg-type]


def test_report_without_findings() -> None:
    report = generate_report(_data())

    assert report.startswith("# Audit Report")
    assert "No findings were identified during this session." in report
    assert "## Action Log" not in report
    assert "- 0 critical findings" in report
    assert "- 0 actions taken" in report
    assert "- Total chunks analyzed: 3" in report
    assert "- Total lines captured: 42" in report
    assert "  - Read: 5" in report
    assert "- Auditor cost: $0.0432" in report
    assert "- Focus areas: general" in report
    assert "- Worker exit code: 0" in report


def test_report_groups_findings_and_lists_actions() -> None:
    report = generate_report(
        _data(
            findings=[
                Finding("WARNING", "Missing index on orders.user_id"),
                Finding("CRITICAL", "Token logged in plain text"),
                Finding("WARNING", "No retry limit"),
            ],
            actions=[ActionRecord(type="INJECT", message="Add a | limit", auto_approved=True)],
            focus_areas=["security", "performance"],
        )
    )

    assert "- 1 critical finding" in report
    assert "- 2 warnings" in report
    assert "- 1 action taken" in report
    assert report.index("### CRITICAL") < report.index("### WARNING")
    assert "### INFO" not in report
    assert "| INJECT | auto | Add a \\| limit |" in report
    assert "- Focus areas: security, performance" in report


def test_format_duration() -> None:
    assert format_duration(1) == "1 second"
    assert format_duration(45) == "45 seconds"
    assert format_duration(60) == "1 minute"
    assert format_duration(600) == "10 minutes"
