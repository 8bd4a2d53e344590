"""Parser for the directive vocabulary used in reviewer replies."""

from __future__ import annotations

import re
from typing import cast

from terminalauditor.models import DirectiveResult, Finding, Severity, utc_timestamp

FINDING_RE = re.compile(
    r"^[ \t]*\[FINDING:(CRITICAL|WARNING|INFO|SUGGESTION)\][ \t]*(\S.*)$",
    re.MULTILINE,
)
INJECT_RE = re.compile(r"^[ \t]*\[INJECT\][ \t]*(\S.*)$", re.MULTILINE)
INTERRUPT_RE = re.compile(r"^[ \t]*\[INTERRUPT\][ \t]*(\S.*)$", re.MULTILINE)
RESOLVED_MARKER = "[RESOLVED]"
NO_FINDINGS_MARKER = "[NO_FINDINGS]"


def parse_directives(text: str) -> DirectiveResult:
    """Extract findings and control directives from raw reply text.

    ``[NO_FINDINGS]`` anywhere in the reply wins over every other marker.
    Only the first ``[INJECT]`` and ``[INTERRUPT]`` lines are used.
    """
    if NO_FINDINGS_MARKER in text:
        return DirectiveResult(no_findings=True)

    timestamp = utc_timestamp()
    findings = [
        Finding(
            severity=cast(Severity, match.group(1)),
            description=match.group(2).strip(),
            timestamp=timestamp,
        )
        for match in FINDING_RE.finditer(text)
    ]

    inject_match = INJECT_RE.search(text)
    interrupt_match = INTERRUPT_RE.search(text)
    return DirectiveResult(
        findings=findings,
        inject=inject_match.group(1).strip() if inject_match else None,
        interrupt=interrupt_match.group(1).strip() if interrupt_match else None,
        resolved=RESOLVED_MARKER in text,
    )

