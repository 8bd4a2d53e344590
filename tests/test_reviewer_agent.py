from __future__ import annotations

import asyncio
import json
import os
import time

import pytest

from terminalauditor.models import Chunk
from terminalauditor.review.agent import ClaudeReviewer, ReviewerError, parse_reviewer_output
from terminalauditor.review.queue import ReviewQueue


def test_build_args_pins_session_and_model() -> None:
    reviewer = ClaudeReviewer(model="sonnet", system_prompt="be strict", session_id="abc")

    assert reviewer.build_args("review this") == [
        "-p",
        "review this",
        "--session-id",
        "abc",
        "--model",
        "sonnet",
        "--output-format",
        "json",
        "--no-session-persistence",
        "--system-prompt",
        "be strict",
    ]


def test_session_id_is_generated_once() -> None:
    reviewer = ClaudeReviewer(model="sonnet")

    assert reviewer.session_id
    assert "--system-prompt" not in reviewer.build_args("x")
    assert reviewer.build_args("x")[3] == reviewer.session_id


def test_parse_reviewer_output_reads_json_envelope() -> None:
    reply = parse_reviewer_output(
        json.dumps({"result": "[NO_FINDINGS]", "total_cost_usd": 0.0123})
    )

    assert reply.text == "[NO_FINDINGS]"
    assert reply.cost_usd == pytest.approx(0.0123)


def test_parse_reviewer_output_accepts_alternate_keys() -> None:
    reply = parse_reviewer_output(json.dumps({"content": "[RESOLVED]", "cost_usd": 0.5}))

    assert reply.text == "[RESOLVED]"
    assert reply.cost_usd == 0.5


def test_parse_reviewer_output_falls_back_to_raw_text() -> None:
    reply = parse_reviewer_output("[FINDING:INFO] plain output")

    assert reply.text == "[FINDING:INFO] plain output"
    assert reply.cost_usd is None


def test_missing_executable_raises_reviewer_error() -> None:
    reviewer = ClaudeReviewer(model="sonnet", command="/nonexistent/reviewer-cli")

    with pytest.raises(ReviewerError, match="could not be started"):
        asyncio.run(reviewer.request("hello"))


def _script(tmp_path, body: str) -> str:
    path = tmp_path / "fake-reviewer"
    path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    path.chmod(0o755)
    return str(path)


@pytest.mark.skipif(not hasattr(os, "killpg"), reason="needs POSIX process groups")
def test_timeout_kills_the_reviewer_and_its_children(tmp_path) -> None:
    command = _script(tmp_path, "sleep 30 &\nsleep 30")
    reviewer = ClaudeReviewer(model="sonnet", command=command, timeout=0.2)

    async def scenario() -> tuple[object, float]:
        queue = ReviewQueue(agent=reviewer)
        started = time.monotonic()
        result = await queue.analyze(
            Chunk(id=1, timestamp="2026-01-01T00:00:00+00:00", lines=("npm test",))
        )
        return result, time.monotonic() - started

    result, elapsed = asyncio.run(scenario())

    assert result is None
    assert elapsed < 3


@pytest.mark.skipif(not hasattr(os, "killpg"), reason="needs POSIX process groups")
def test_timeout_raises_reviewer_error(tmp_path) -> None:
    reviewer = ClaudeReviewer(model="sonnet", command=_script(tmp_path, "sleep 30"), timeout=0.2)

    with pytest.raises(ReviewerError, match="timed out"):
        asyncio.run(reviewer.request("hello"))


def test_non_zero_exit_raises_with_stderr_excerpt(tmp_path) -> None:
    reviewer = ClaudeReviewer(
        model="sonnet", command=_script(tmp_path, "echo 'rate limited' >&2\nexit 2")
    )

    with pytest.raises(ReviewerError, match="code 2: rate limited"):
        asyncio.run(reviewer.request("hello"))


def test_successful_call_parses_stdout(tmp_path) -> None:
    command = _script(
        tmp_path, """echo '{"result": "[FINDING:INFO] ok", "total_cost_usd": 0.01}'"""
    )
    reply = asyncio.run(ClaudeReviewer(model="sonnet", command=command).request("hello"))

    assert reply.text == "[FINDING:INFO] ok"
    assert reply.cost_usd == pytest.approx(0.01)
