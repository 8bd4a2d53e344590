from __future__ import annotations

import asyncio
import io

from terminalauditor.console import ApprovalConsole
from terminalauditor.supervisor.models import ApprovalRequest


class FakeRouter:
    def __init__(self) -> None:
        self.handlers: list[object] = []

    def divert_input(self, handler: object) -> None:
        self.handlers.append(handler)


def _answer(keys: bytes, *, kind: str = "inject") -> tuple[str | None, FakeRouter, str]:
    async def scenario() -> tuple[str | None, FakeRouter, str]:
        router = FakeRouter()
        stream = io.StringIO()
        console = ApprovalConsole(bridge=router, stream=stream)
        request = ApprovalRequest.create(kind, "Add input validation")  # type: ignore[arg-type]
        console.on_approval_needed(request)
        console.handle_input(keys)
        return await request.wait(), router, stream.getvalue()

    return asyncio.run(scenario())


def test_send_approves_the_proposal() -> None:
    text, router, output = _answer(b"s\r")

    assert text == "Add input validation"
    assert router.handlers[0] is not None
    assert router.handlers[-1] is None
    assert '"Add input validation"' in output


def test_ignore_rejects() -> None:
    text, _, output = _answer(b"i\r")

    assert text is None
    assert "[IGNORED]" in output


def test_edit_prompts_for_a_replacement() -> None:
    text, _, output = _answer(b"e\rUse pydantic validators\r")

    assert text == "Use pydantic validators"
    assert "New message:" in output


def test_free_text_is_sent_instead_of_the_proposal() -> None:
    text, _, _ = _answer(b"check emails too\r\n")

    assert text == "check emails too"


def test_backspace_and_empty_input() -> None:
    text, _, _ = _answer(b"x\x7f\r")

    assert text is None


def test_ctrl_c_rejects() -> None:
    text, _, _ = _answer(b"abc\x03", kind="interrupt")

    assert text is None


def test_close_rejects_open_request() -> None:
    async def scenario() -> tuple[str | None, bool]:
        console = ApprovalConsole(bridge=FakeRouter(), stream=io.StringIO())
        request = ApprovalRequest.create("interrupt", "Stop")
        console.on_approval_needed(request)
        console.close()
        return await request.wait(), console.prompting

    text, prompting = asyncio.run(scenario())

    assert text is None
    assert prompting is False
