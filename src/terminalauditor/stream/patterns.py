"""Pattern tables used to segment and classify worker output."""

from __future__ import annotations

import re

CSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")
OSC_RE = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)?")
ESC_RE = re.compile(r"\x1b[@-Z\\-_]|\x1b[()][0-9A-Za-z]")
CTRL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# Order matters only for readability; any match marks a boundary.
BOUNDARY_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("horizontal_rule", re.compile(r"^[─═━]{3,}")),
    ("tool_call", re.compile(r"^\s*(Read|Edit|Write|Bash|Grep|Glob|Task)\s")),
    ("status_glyph", re.compile(r"^(✓|✗|⚠|❌|✅)")),
    ("shell_prompt", re.compile(r"^[>$#]\s")),
    ("box_top", re.compile(r"^╭─")),
    ("box_bottom", re.compile(r"^╰─")),
    ("activity_marker", re.compile(r"^⏺")),
)

TOOL_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("Read", re.compile(r"\b(Read|Reading)\s+(file|/)", re.IGNORECASE)),
    ("Edit", re.compile(r"\b(Edit|Editing)\s", re.IGNORECASE)),
    ("Write", re.compile(r"\b(Write|Writing)\s+(file|to\s+/)", re.IGNORECASE)),
    ("Bash", re.compile(r"\b(Bash|Running|command)\s", re.IGNORECASE)),
    ("Grep", re.compile(r"\b(Grep|Searching|Search)\s", re.IGNORECASE)),
    ("Glob", re.compile(r"\b(Glob|Finding files)\s", re.IGNORECASE)),
    ("Task", re.compile(r"\b(Task|Agent|Spawning)\s", re.IGNORECASE)),
)

# Terminal chrome that carries nothing worth reviewing.
NOISE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("spinner", re.compile(r"^\W{0,3}\w+(?:…|\.{3})\s*(?:\(.*\))?$")),
    ("update_notice", re.compile(r"update available", re.IGNORECASE)),
    ("input_box", re.compile(r"^[│┃]")),
    ("shortcut_hint", re.compile(r"^\?\s+for shortcuts", re.IGNORECASE)),
    ("interrupt_hint", re.compile(r"esc to interrupt", re.IGNORECASE)),
)


def strip_ansi(text: str) -> str:
    """Remove color, cursor and title escape sequences plus stray control bytes."""
    text = OSC_RE.sub("", text)
    text = CSI_RE.sub("", text)
    text = ESC_RE.sub("", text)
    return CTRL_RE.sub("", text)


def boundary_name(line: str) -> str | None:
    """Return the name of the first boundary rule matching a trimmed line."""
    for name, pattern in BOUNDARY_PATTERNS:
        if pattern.search(line):
            return name
    return None


def is_boundary(line: str) -> bool:
    return boundary_name(line) is not None


def is_noise(line: str) -> bool:
    return any(pattern.search(line) for _, pattern in NOISE_PATTERNS)


def detect_tools(lines: tuple[str, ...] | list[str]) -> tuple[str, ...]:
    """Return tool names seen in ``lines``, in table order."""
    found = [
        name
        for name, pattern in TOOL_PATTERNS
        if any(pattern.search(line) for line in lines)
    ]
    return tuple(found)
