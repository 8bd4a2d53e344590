"""Keyboard approval prompt shown on stderr while the worker keeps the screen."""

from __future__ import annotations

import codecs
import logging
import sys
from collections.abc import Callable
from datetime import datetime
from typing import Protocol, TextIO

from terminalauditor.models import Finding
from terminalauditor.supervisor.models import ApprovalRequest, SupervisorListener, SupervisorState

LOGGER = logging.getLogger(__name__)

SEVERITY_COLORS = {
    "CRITICAL": "\x1b[31m",
    "WARNING": "\x1b[33m",
    "INFO": "\x1b[36m",
    "SUGGESTION": "\x1b[32m",
}
RESET = "\x1b[0m"
BOLD = "\x1b[1m"
DIM = "\x1b[2m"

_ENTER = {0x0D, 0x0A}
_BACKSPACE = {0x7F, 0x08}
_CTRL_C = 0x03


class InputRouter(Protocol):
    def divert_input(self, handler: Callable[[bytes], None] | None) -> None: ...


class ApprovalConsole(SupervisorListener):
    """Answers approval requests from the keyboard.

    While a request is open, keystrokes are taken away from the worker.
    ``s`` sends, ``i`` ignores, ``e`` asks for a replacement message, and
    any other text is sent in place of the proposal. Empty input rejects.
    """

    def __init__(self, *, bridge: InputRouter, stream: TextIO | None = None) -> None:
        self.bridge = bridge
        self.stream = stream or sys.stderr
        self._request: ApprovalRequest | None = None
        self._editing = False
        self._line = bytearray()
        self._echo = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def prompting(self) -> bool:
        return self._request is not None

    def on_finding(self, finding: Finding) -> None:
        color = SEVERITY_COLORS.get(finding.severity, "")
        self._print_line(f"{color}[{finding.severity}]{RESET} {finding.description}")

    def on_state_change(self, previous: SupervisorState, current: SupervisorState) -> None:
        if previous != current:
            self._print_line(f"{BOLD}[{current}]{RESET}")

    def on_inject(self, message: str, auto_approved: bool) -> None:
        tag = "AUTO-INJECTED" if auto_approved else "INJECTED"
        self._print_line(f"\x1b[35m[{tag}]{RESET} {message[:120]}")

    def on_interrupt(self, reason: str) -> None:
        self._print_line(f"\x1b[31m[INTERRUPTED]{RESET} {reason}")

    def on_recalibrate(self, turn: int, message: str) -> None:
        self._print_line(f"\x1b[33m[RECALIBRATING T{turn}]{RESET} {message[:120]}")

    def on_resolved(self) -> None:
        self._print_line(f"\x1b[32m[RESOLVED]{RESET} Worker back on track")

    def on_approval_needed(self, request: ApprovalRequest) -> None:
        if self._request is not None:
            LOGGER.warning("approval_prompt_busy", extra={"kind": request.kind})
            return

        self._request = request
        self._editing = False
        self._line.clear()
        label = (
            f"\x1b[31mINTERRUPT{RESET}" if request.kind == "interrupt" else f"\x1b[33mINJECT{RESET}"
        )
        self._write("\r\n")
        self._print_line(f"{label} suggested:")
        self._write(f'  "{request.text}"\r\n')
        self._write(f"  {BOLD}[S]{RESET}end / {BOLD}[E]{RESET}dit / {BOLD}[I]{RESET}gnore ? > ")
        self.bridge.divert_input(self.handle_input)

    def handle_input(self, data: bytes) -> None:
        previous = 0
        for byte in data:
            if self._request is None:
                return
            if byte == 0x0A and previous == 0x0D:
                previous = byte
                continue
            previous = byte
            if byte in _ENTER:
                self._write("\r\n")
                text = self._line.decode("utf-8", errors="replace")
                self._line.clear()
                self._submit(text)
            elif byte in _BACKSPACE:
                if self._line:
                    _pop_char(self._line)
                    self._write("\b \b")
            elif byte == _CTRL_C:
                self._write("\r\n")
                self._finish(None)
            elif byte >= 0x20:
                self._line.append(byte)
                self._write(self._echo.decode(bytes([byte])))

    def close(self) -> None:
        if self._request is not None:
            self._finish(None)

    def _submit(self, text: str) -> None:
        entered = text.strip()
        if self._editing:
            self._finish(entered or None)
            return

        choice = entered.lower()
        if choice in {"s", "send"}:
            self._finish(self._request.text if self._request else None)
        elif choice in {"i", "ignore"}:
            self._finish(None)
            self._print_line(f"{DIM}[IGNORED]{RESET} Action rejected")
        elif choice in {"e", "edit"}:
            self._editing = True
            self._write("  New message: ")
        else:
            self._finish(entered or None)

    def _finish(self, text: str | None) -> None:
        request, self._request = self._request, None
        self._editing = False
        self._line.clear()
        self.bridge.divert_input(None)
        if request is None:
            return
        if text is None:
            request.reject()
        else:
            request.approve(text)

    def _print_line(self, message: str) -> None:
        clock = datetime.now().strftime("%H:%M:%S")
        self._write(f"{DIM}[{clock}]{RESET} {message}\r\n")

    def _write(self, text: str) -> None:
        try:
            self.stream.write(text)
            self.stream.flush()
        except (OSError, ValueError) as exc:
            LOGGER.debug("console_write_failed", extra={"error": str(exc)})


def _pop_char(buffer: bytearray) -> None:
    """Drop the last UTF-8 character from ``buffer``."""
    while buffer:
        byte = buffer.pop()
        if byte & 0xC0 != 0x80:
            return
