"""Markdown report written when the audited session ends."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from terminalauditor.display import ActionRecord
from terminalauditor.models import SEVERITY_ORDER, Finding
from terminalauditor.stream.chunker import ChunkerStats

_SEVERITY_NOUNS = {
    "CRITICAL": ("critical finding", "critical findings"),
    "WARNING": ("warning", "warnings"),
    "INFO": ("info finding", "info findings"),
    "SUGGESTION": ("suggestion", "suggestions"),
}


@dataclass(slots=True)
class ReportData:
    findings: Sequence[Finding]
    actions: Sequence[ActionRecord]
    chunks: ChunkerStats
    auditor_cost: float
    auditor_model: str
    duration_seconds: float
    exit_code: int | None = None
    autonomy: str = "supervised"
    focus_areas: Sequence[str] = field(default_factory=tuple)


def pluralize(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def format_duration(seconds: float) -> str:
    if seconds < 60:
        whole = int(round(seconds))
        return pluralize(whole, "second", "seconds")
    minutes = int(round(seconds / 60))
    return pluralize(minutes, "minute", "minutes")


def generate_report(data: ReportData) -> str:
    counts = {severity: 0 for severity in SEVERITY_ORDER}
    for finding in data.findings:
        counts[finding.severity] += 1

    lines = [
        "# Audit Report",
        "",
        f"Generated: {datetime.now(timezone.utc).isoformat(timespec='seconds')}",
        "",
        "## Summary",
        "",
    ]
    for severity in SEVERITY_ORDER:
        singular, plural = _SEVERITY_NOUNS[severity]
        lines.append(f"- {pluralize(counts[severity], singular, plural)}")
    lines.append(f"- {pluralize(len(data.actions), 'action', 'actions')} taken")
    lines.append("")

    lines.extend(["## Findings", ""])
    if not data.findings:
        lines.append("No findings were identified during this session.")
        lines.append("")
    for severity in SEVERITY_ORDER:
        group = [finding for finding in data.findings if finding.severity == severity]
        if not group:
            continue
        lines.append(f"### {severity}")
        lines.append("")
        for finding in group:
            lines.append(f"- `{finding.timestamp}` {finding.description}")
        lines.append("")

    if data.actions:
        lines.extend(["## Action Log", ""])
        lines.append("| Time | Action | Approval | Message |")
        lines.append("| --- | --- | --- | --- |")
        for action in data.actions:
            approval = "auto" if action.auto_approved else "manual"
            message = action.message.replace("|", "\\|").replace("\n", " ")
            lines.append(f"| {action.timestamp} | {action.type} | {approval} | {message} |")
        lines.append("")

    lines.extend(["## Session Statistics", ""])
    lines.append(f"- Total chunks analyzed: {data.chunks.total_chunks}")
    lines.append(f"- Total lines captured: {data.chunks.total_lines}")
    if data.chunks.filtered_chunks:
        lines.append(f"- Noise flushes discarded: {data.chunks.filtered_chunks}")
    if data.chunks.detected_tools:
        lines.append("- Tools detected:")
        for tool, count in sorted(
            data.chunks.detected_tools.items(), key=lambda item: (-item[1], item[0])
        ):
            lines.append(f"  - {tool}: {count}")
    lines.append("")

    focus = ", ".join(data.focus_areas) if data.focus_areas else "general"
    exit_code = "unknown" if data.exit_code is None else str(data.exit_code)
    lines.extend(
        [
            "## Session Details",
            "",
            f"- Auditor model: {data.auditor_model}",
            f"- Auditor cost: ${data.auditor_cost:.4f}",
            f"- Autonomy: {data.autonomy}",
            f"- Focus areas: {focus}",
            f"- Duration: {format_duration(data.duration_seconds)}",
            f"- Worker exit code: {exit_code}",
            "",
        ]
    )
    return "\n".join(lines)
