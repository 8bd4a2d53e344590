"""Optional side pane that tails the live log (tmux or iTerm2)."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

_OSASCRIPT_TIMEOUT = 5.0

_ITERM_SPLIT_SCRIPT = """tell application "iTerm2"
  tell current session of current window
    set auditorSession to (split vertically with default profile)
    tell auditorSession
      write text "{command}"
      return id
    end tell
  end tell
end tell"""

_ITERM_FOCUS_SCRIPT = """tell application "iTerm2"
  tell current tab of current window
    select (first session)
  end tell
end tell"""

_ITERM_CLOSE_SCRIPT = """tell application "iTerm2"
  repeat with w in windows
    repeat with t in tabs of w
      repeat with s in sessions of t
        if id of s is "{session_id}" then
          tell s to close
          return
        end if
      end repeat
    end repeat
  end repeat
end tell"""


@dataclass(slots=True)
class LogPane:
    """Handle to an opened pane; ``close`` is safe to call more than once."""

    kind: str
    identifier: str
    closed: bool = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.kind == "tmux":
            command = ["tmux", "kill-pane", "-t", self.identifier]
        else:
            script = _ITERM_CLOSE_SCRIPT.format(session_id=self.identifier)
            command = ["osascript", "-e", script]
        try:
            subprocess.run(command, capture_output=True, timeout=_OSASCRIPT_TIMEOUT, check=False)
        except (OSError, subprocess.SubprocessError) as exc:
            LOGGER.debug("pane_close_failed", extra={"kind": self.kind, "error": str(exc)})


def open_log_pane(log_path: str, env: Mapping[str, str] | None = None) -> LogPane | None:
    """Open a pane running ``tail -f`` on ``log_path``; ``None`` when unsupported."""
    environ = os.environ if env is None else env
    try:
        if environ.get("TMUX"):
            return _open_tmux_pane(log_path)
        if environ.get("TERM_PROGRAM") == "iTerm.app":
            return _open_iterm_pane(log_path)
    except (OSError, subprocess.SubprocessError) as exc:
        LOGGER.warning("pane_open_failed", extra={"error": str(exc)})
    return None


def _open_tmux_pane(log_path: str) -> LogPane | None:
    result = subprocess.run(
        [
            "tmux",
            "split-window",
            "-h",
            "-d",
            "-P",
            "-F",
            "#{pane_id}",
            f"tail -f {shlex.quote(log_path)}",
        ],
        capture_output=True,
        text=True,
        timeout=_OSASCRIPT_TIMEOUT,
        check=False,
    )
    pane_id = result.stdout.strip()
    if result.returncode != 0 or not pane_id:
        LOGGER.warning("pane_open_failed", extra={"kind": "tmux", "error": result.stderr.strip()})
        return None
    return LogPane(kind="tmux", identifier=pane_id)


def _open_iterm_pane(log_path: str) -> LogPane | None:
    tail_command = f"clear && echo '-- Terminal Auditor --' && tail -f {shlex.quote(log_path)}"
    script = _ITERM_SPLIT_SCRIPT.format(command=tail_command.replace('"', '\\"'))
    result = subprocess.run(
        ["osascript", "-e", script],
        capture_output=True,
        text=True,
        timeout=_OSASCRIPT_TIMEOUT,
        check=False,
    )
    session_id = result.stdout.strip()
    if result.returncode != 0 or not session_id:
        LOGGER.warning("pane_open_failed", extra={"kind": "iterm", "error": result.stderr.strip()})
        return None
    subprocess.run(
        ["osascript", "-e", _ITERM_FOCUS_SCRIPT],
        capture_output=True,
        timeout=_OSASCRIPT_TIMEOUT,
        check=False,
    )
    return LogPane(kind="iterm", identifier=session_id)
