"""Data models shared by the chunker, review queue and supervisor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

Severity = Literal["CRITICAL", "WARNING", "INFO", "SUGGESTION"]

SEVERITY_ORDER: tuple[Severity, ...] = ("CRITICAL", "WARNING", "INFO", "SUGGESTION")
VALID_SEVERITIES: set[Severity] = set(SEVERITY_ORDER)
INJECT_SEVERITIES: set[Severity] = {"CRITICAL", "WARNING"}
INTERRUPT_SEVERITIES: set[Severity] = {"CRITICAL"}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True, slots=True)
class Chunk:
    """A flushed, escape-free slice of worker output."""

    id: int
    timestamp: str
    lines: tuple[str, ...]
    detected_tools: tuple[str, ...] = ()

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def content(self) -> str:
        return "\n".join(self.lines)


@dataclass(frozen=True, slots=True)
class Finding:
    """One issue reported by the reviewing agent."""

    severity: Severity
    description: str
    timestamp: str = field(default_factory=utc_timestamp)

    def __post_init__(self) -> None:
        if self.severity not in VALID_SEVERITIES:
            msg = f"Unsupported finding severity: {self.severity}"
            raise ValueError(msg)


@dataclass(slots=True)
class DirectiveResult:
    """Directives parsed from a single reviewer reply."""

    findings: list[Finding] = field(default_factory=list)
    inject: str | None = None
    interrupt: str | None = None
    resolved: bool = False
    no_findings: bool = False

    def has_severity(self, severities: set[Severity]) -> bool:
        return any(finding.severity in severities for finding in self.findings)
