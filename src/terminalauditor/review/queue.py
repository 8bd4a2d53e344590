"""Serialized, budget-bounded dispatch of review requests."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from terminalauditor.models import Chunk, DirectiveResult
from terminalauditor.review.agent import ReviewerAgent, ReviewerError
from terminalauditor.review.directives import parse_directives

LOGGER = logging.getLogger(__name__)

NoticeCallback = Callable[[str], None]

DEFAULT_MAX_BUDGET = 1.0


@dataclass(slots=True)
class BudgetState:
    """Cumulative reviewer spend and the latch that stops further calls."""

    ceiling: float
    total_cost: float = 0.0
    exceeded: bool = False

    def record(self, cost: float | None) -> bool:
        """Add ``cost``; return true only on the call that trips the latch."""
        if cost is not None and cost > 0:
            self.total_cost += cost
        if not self.exceeded and self.total_cost >= self.ceiling:
            self.exceeded = True
            return True
        return False


@dataclass(slots=True)
class _QueuedRequest:
    label: str
    prompt: str
    future: asyncio.Future[DirectiveResult | None]


def build_chunk_prompt(chunk: Chunk) -> str:
    tool_info = (
        f"\nDetected tools in this chunk: {', '.join(chunk.detected_tools)}"
        if chunk.detected_tools
        else ""
    )
    return (
        f"AUDIT CHUNK #{chunk.id} ({chunk.line_count} lines, {chunk.timestamp}):{tool_info}\n\n"
        f"{chunk.content}\n\n"
        "Analyze this chunk. Output ONLY directives as specified in your instructions."
    )


def build_recalibration_prompt(worker_response: str) -> str:
    return (
        "Worker responded to your interrupt/injection:\n\n"
        f'"{worker_response}"\n\n'
        "Is the worker now aligned with the correct approach? If not, what else needs correcting?\n"
        "Respond with either:\n"
        "- [INJECT] <follow-up correction> if more guidance is needed\n"
        "- [RESOLVED] if the worker is back on track"
    )


class ReviewQueue:
    """Sends prompts to the reviewer one at a time, in submission order.

    Every public entry point resolves to ``None`` instead of raising when the
    call fails, times out, or the budget latch is set.
    """

    def __init__(
        self,
        *,
        agent: ReviewerAgent,
        max_budget: float = DEFAULT_MAX_BUDGET,
        on_notice: NoticeCallback | None = None,
    ) -> None:
        self.agent = agent
        self.budget = BudgetState(ceiling=max_budget if max_budget > 0 else DEFAULT_MAX_BUDGET)
        self.on_notice = on_notice
        self._pending: deque[_QueuedRequest] = deque()
        self._worker: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def total_cost(self) -> float:
        return self.budget.total_cost

    @property
    def budget_exceeded(self) -> bool:
        return self.budget.exceeded

    @property
    def session_id(self) -> str:
        return self.agent.session_id

    async def analyze(self, chunk: Chunk) -> DirectiveResult | None:
        return await self._submit(f"chunk #{chunk.id}", build_chunk_prompt(chunk))

    async def analyze_raw(self, prompt: str, *, label: str = "raw") -> DirectiveResult | None:
        """Send ``prompt`` verbatim, skipping the chunk template."""
        return await self._submit(label, prompt)

    async def send_recalibration_prompt(self, worker_response: str) -> DirectiveResult | None:
        return await self.analyze_raw(
            build_recalibration_prompt(worker_response), label="recalibration"
        )

    async def drain(self) -> None:
        """Wait until nothing is queued or in flight."""
        await self._idle.wait()

    async def _submit(self, label: str, prompt: str) -> DirectiveResult | None:
        loop = asyncio.get_running_loop()
        request = _QueuedRequest(label=label, prompt=prompt, future=loop.create_future())
        self._pending.append(request)
        self._idle.clear()
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._process_pending())
        return await request.future

    async def _process_pending(self) -> None:
        try:
            while self._pending:
                request = self._pending.popleft()
                try:
                    result = await self._process(request)
                except Exception as exc:
                    if not request.future.done():
                        request.future.set_exception(exc)
                    continue
                if not request.future.done():
                    request.future.set_result(result)
        finally:
            while self._pending:
                request = self._pending.popleft()
                if not request.future.done():
                    request.future.set_result(None)
            self._idle.set()

    async def _process(self, request: _QueuedRequest) -> DirectiveResult | None:
        if self.budget.exceeded:
            LOGGER.debug(
                "review_skipped_budget",
                extra={"label": request.label, "total_cost": self.budget.total_cost},
            )
            return None

        try:
            reply = await self.agent.request(request.prompt)
        except ReviewerError as exc:
            LOGGER.warning(
                "review_call_failed",
                extra={"label": request.label, "error": str(exc)},
            )
            return None
        except Exception as exc:
            LOGGER.exception(
                "review_call_failed",
                extra={"label": request.label, "error": repr(exc)},
            )
            return None

        parsed = parse_directives(reply.text)
        if self.budget.record(reply.cost_usd):
            notice = (
                f"Budget limit reached (${self.budget.total_cost:.2f}/${self.budget.ceiling:.2f}). "
                "Stopping analysis."
            )
            LOGGER.warning(
                "review_budget_exceeded",
                extra={"total_cost": self.budget.total_cost, "ceiling": self.budget.ceiling},
            )
            if self.on_notice:
                self.on_notice(notice)

        LOGGER.info(
            "review_completed",
            extra={
                "label": request.label,
                "findings": len(parsed.findings),
                "no_findings": parsed.no_findings,
                "total_cost": round(self.budget.total_cost, 4),
            },
        )
        return parsed
