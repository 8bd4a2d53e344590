"""Collects findings and actions and mirrors them to the live log file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from terminalauditor.models import Finding, utc_timestamp
from terminalauditor.supervisor.models import DirectiveKind, SupervisorListener

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ActionRecord:
    type: str
    message: str
    auto_approved: bool = False
    timestamp: str = field(default_factory=utc_timestamp)


class SessionDisplay(SupervisorListener):
    """In-memory record of the session; writes ``[HH:MM:SS] [TYPE] text`` lines in active mode."""

    def __init__(self, *, log_path: str | Path | None = None, active: bool = False) -> None:
        self.log_path = Path(log_path) if log_path else None
        self.active = active and self.log_path is not None
        self.findings: list[Finding] = []
        self.actions: list[ActionRecord] = []
        if self.active:
            self._write(
                f"# Terminal Auditor Live Log\n# Started: {utc_timestamp()}\n\n",
                mode="w",
            )

    def on_finding(self, finding: Finding) -> None:
        self.findings.append(finding)
        self._append_line(finding.severity, finding.description)

    def on_inject(self, message: str, auto_approved: bool) -> None:
        self.log_action("INJECT", message, auto_approved)

    def on_interrupt(self, reason: str) -> None:
        self.log_action("INTERRUPT", reason)

    def on_recalibrate(self, turn: int, message: str) -> None:
        self.log_action("RECALIBRATE", f"Turn {turn}: {message}")

    def on_resolved(self) -> None:
        self.log_action("RESOLVED", "Worker back on track")

    def on_suppressed(self, kind: DirectiveKind, text: str, reason: str) -> None:
        self.log_action("SUPPRESSED", f"{kind} ({reason}): {text}")

    def log_action(self, action_type: str, message: str, auto_approved: bool = False) -> None:
        self.actions.append(
            ActionRecord(type=action_type, message=message, auto_approved=auto_approved)
        )
        self._append_line(action_type, message)

    def _append_line(self, tag: str, text: str) -> None:
        if not self.active:
            return
        clock = datetime.now().strftime("%H:%M:%S")
        self._write(f"[{clock}] [{tag}] {text}\n", mode="a")

    def _write(self, text: str, *, mode: str) -> None:
        assert self.log_path is not None
        try:
            with self.log_path.open(mode, encoding="utf-8") as handle:
                handle.write(text)
        except OSError as exc:
            LOGGER.warning(
                "live_log_write_failed",
                extra={"path": str(self.log_path), "error": str(exc)},
            )
