"""Out-of-process client for the reviewing agent CLI."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import shutil
import signal
import uuid
from dataclasses import dataclass
from typing import Protocol

LOGGER = logging.getLogger(__name__)

DEFAULT_REVIEW_TIMEOUT = 60.0
KILL_REAP_SECONDS = 5.0
_TEXT_KEYS = ("result", "text", "content")
_COST_KEYS = ("total_cost_usd", "cost_usd")


class ReviewerError(RuntimeError):
    """The reviewing agent could not produce a reply."""


@dataclass(slots=True)
class ReviewerReply:
    """Reply text plus the monetary cost the agent reported, if any."""

    text: str
    cost_usd: float | None = None


class ReviewerAgent(Protocol):
    model: str
    session_id: str

    async def request(self, prompt: str) -> ReviewerReply: ...


class ClaudeReviewer:
    """Runs ``claude -p`` once per prompt, pinned to a single session id."""

    def __init__(
        self,
        *,
        model: str,
        system_prompt: str | None = None,
        command: str = "claude",
        timeout: float = DEFAULT_REVIEW_TIMEOUT,
        session_id: str | None = None,
    ) -> None:
        self.model = model
        self.system_prompt = system_prompt
        self.command = command
        self.timeout = timeout
        self.session_id = session_id or str(uuid.uuid4())

    def build_args(self, prompt: str) -> list[str]:
        args = [
            "-p",
            prompt,
            "--session-id",
            self.session_id,
            "--model",
            self.model,
            "--output-format",
            "json",
            "--no-session-persistence",
        ]
        if self.system_prompt:
            args.extend(["--system-prompt", self.system_prompt])
        return args

    async def request(self, prompt: str) -> ReviewerReply:
        executable = shutil.which(self.command) or self.command
        LOGGER.debug(
            "reviewer_request_prepared",
            extra={
                "model": self.model,
                "session_id": self.session_id,
                "prompt_chars": len(prompt),
            },
        )
        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *self.build_args(prompt),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            msg = f"Reviewer CLI could not be started: {exc}"
            raise ReviewerError(msg) from exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except TimeoutError as exc:
            await _kill_process_group(process)
            msg = f"Reviewer call timed out after {self.timeout:.1f}s"
            raise ReviewerError(msg) from exc

        if process.returncode != 0:
            excerpt = _normalize_output(stderr).strip()[:500]
            msg = f"Reviewer exited with code {process.returncode}: {excerpt}"
            raise ReviewerError(msg)

        return parse_reviewer_output(_normalize_output(stdout))


def parse_reviewer_output(stdout: str) -> ReviewerReply:
    """Read the CLI's JSON envelope; fall back to the raw text when it is not JSON."""
    try:
        payload = json.loads(stdout)
    except json.JSONDecodeError:
        return ReviewerReply(text=stdout)
    if not isinstance(payload, dict):
        return ReviewerReply(text=stdout)

    text: object = stdout
    for key in _TEXT_KEYS:
        value = payload.get(key)
        if value:
            text = value
            break

    cost: float | None = None
    for key in _COST_KEYS:
        value = payload.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            cost = float(value)
            break

    return ReviewerReply(
        text=text if isinstance(text, str) else json.dumps(text),
        cost_usd=cost,
    )


def _normalize_output(payload: bytes | None) -> str:
    if payload is None:
        return ""
    return payload.decode("utf-8", errors="replace")


async def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill the reviewer and anything it spawned, then reap it within a bounded wait."""
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(process.pid, signal.SIGKILL)
    try:
        await asyncio.wait_for(process.wait(), timeout=KILL_REAP_SECONDS)
    except TimeoutError:
        LOGGER.warning("reviewer_reap_timeout", extra={"pid": process.pid})
