"""States, approval requests and the listener interface of the supervisor."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Literal

from terminalauditor.models import Finding

SupervisorState = Literal["MONITORING", "ALERT", "INJECT", "INTERRUPT", "RECALIBRATE"]
ApprovalKind = Literal["inject", "interrupt", "recalibrate-inject"]
DirectiveKind = Literal["inject", "interrupt"]

MONITORING: SupervisorState = "MONITORING"
ALERT: SupervisorState = "ALERT"
INJECT: SupervisorState = "INJECT"
INTERRUPT: SupervisorState = "INTERRUPT"
RECALIBRATE: SupervisorState = "RECALIBRATE"

Autonomy = Literal["full", "supervised", "observe"]
VALID_AUTONOMY: set[Autonomy] = {"full", "supervised", "observe"}


@dataclass(slots=True)
class ApprovalRequest:
    """A pending human decision; exactly one of ``approve``/``reject`` takes effect."""

    kind: ApprovalKind
    text: str
    _decision: asyncio.Future[str | None] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._decision = asyncio.get_running_loop().create_future()

    @classmethod
    def create(cls, kind: ApprovalKind, text: str) -> ApprovalRequest:
        return cls(kind=kind, text=text)

    @property
    def pending(self) -> bool:
        return not self._decision.done()

    def approve(self, text: str | None = None) -> None:
        """Accept the action, optionally replacing the proposed text."""
        if self._decision.done():
            return
        replacement = text.strip() if isinstance(text, str) else ""
        self._decision.set_result(replacement or self.text)

    def reject(self) -> None:
        if not self._decision.done():
            self._decision.set_result(None)

    async def wait(self) -> str | None:
        """Return the approved text, or ``None`` when rejected."""
        return await self._decision


class SupervisorListener:
    """Receives supervisor events; override only what you need."""

    def on_state_change(self, previous: SupervisorState, current: SupervisorState) -> None:
        pass

    def on_finding(self, finding: Finding) -> None:
        pass

    def on_inject(self, message: str, auto_approved: bool) -> None:
        pass

    def on_interrupt(self, reason: str) -> None:
        pass

    def on_recalibrate(self, turn: int, message: str) -> None:
        pass

    def on_resolved(self) -> None:
        pass

    def on_approval_needed(self, request: ApprovalRequest) -> None:
        pass

    def on_suppressed(self, kind: DirectiveKind, text: str, reason: str) -> None:
        pass


class CompositeListener(SupervisorListener):
    """Fans each event out to several listeners in registration order."""

    def __init__(self, *listeners: SupervisorListener) -> None:
        self.listeners = list(listeners)

    def add(self, listener: SupervisorListener) -> None:
        self.listeners.append(listener)

    def on_state_change(self, previous: SupervisorState, current: SupervisorState) -> None:
        for listener in self.listeners:
            listener.on_state_change(previous, current)

    def on_finding(self, finding: Finding) -> None:
        for listener in self.listeners:
            listener.on_finding(finding)

    def on_inject(self, message: str, auto_approved: bool) -> None:
        for listener in self.listeners:
            listener.on_inject(message, auto_approved)

    def on_interrupt(self, reason: str) -> None:
        for listener in self.listeners:
            listener.on_interrupt(reason)

    def on_recalibrate(self, turn: int, message: str) -> None:
        for listener in self.listeners:
            listener.on_recalibrate(turn, message)

    def on_resolved(self) -> None:
        for listener in self.listeners:
            listener.on_resolved()

    def on_approval_needed(self, request: ApprovalRequest) -> None:
        for listener in self.listeners:
            listener.on_approval_needed(request)

    def on_suppressed(self, kind: DirectiveKind, text: str, reason: str) -> None:
        for listener in self.listeners:
            listener.on_suppressed(kind, text, reason)
