"""State machine that turns review findings into worker corrections."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from terminalauditor.models import (
    INJECT_SEVERITIES,
    INTERRUPT_SEVERITIES,
    Chunk,
    DirectiveResult,
)
from terminalauditor.supervisor.models import (
    ALERT,
    INJECT,
    INTERRUPT,
    MONITORING,
    RECALIBRATE,
    ApprovalKind,
    ApprovalRequest,
    Autonomy,
    DirectiveKind,
    SupervisorListener,
    SupervisorState,
)

LOGGER = logging.getLogger(__name__)

IDLE_WAIT_TIMEOUT_SECONDS = 15.0
CANCEL_GRACE_SECONDS = 0.5
RESPONSE_SETTLE_SECONDS = 5.0
MAX_RECALIBRATION_TURNS = 5

INTERRUPT_MESSAGE_TEMPLATE = (
    "STOP. [Auditor interruption] {reason}. "
    "Let me explain what needs to change before you continue."
)
RESOLVE_MESSAGE = "Good. Continue with the original task."
RECALIBRATE_PREVIEW_CHARS = 200


class WorkerTerminal(Protocol):
    @property
    def is_idle(self) -> bool: ...

    def inject(self, message: str) -> None: ...

    def send_cancel_key(self) -> None: ...

    async def wait_idle(self) -> None: ...


class Reviewer(Protocol):
    async def analyze(self, chunk: Chunk) -> DirectiveResult | None: ...

    async def send_recalibration_prompt(self, worker_response: str) -> DirectiveResult | None: ...


def format_interrupt_message(reason: str) -> str:
    return INTERRUPT_MESSAGE_TEMPLATE.format(reason=reason.strip().rstrip("."))


class Supervisor:
    """Routes chunks to the reviewer and acts on the directives it returns.

    Only chunks arriving in ``MONITORING`` are reviewed. While an action is
    pending, chunks are dropped; during ``RECALIBRATE`` they are collected as
    the worker's reply to the interruption.
    """

    def __init__(
        self,
        *,
        bridge: WorkerTerminal,
        review_queue: Reviewer,
        autonomy: Autonomy = "supervised",
        listener: SupervisorListener | None = None,
        idle_wait_timeout: float = IDLE_WAIT_TIMEOUT_SECONDS,
        cancel_grace: float = CANCEL_GRACE_SECONDS,
        response_settle: float = RESPONSE_SETTLE_SECONDS,
        max_recalibration_turns: int = MAX_RECALIBRATION_TURNS,
    ) -> None:
        self.bridge = bridge
        self.review_queue = review_queue
        self.autonomy = autonomy
        self.listener = listener or SupervisorListener()
        self.idle_wait_timeout = idle_wait_timeout
        self.cancel_grace = cancel_grace
        self.response_settle = response_settle
        self.max_recalibration_turns = max_recalibration_turns
        self._state: SupervisorState = MONITORING
        self._recalibration_turn = 0
        self._response_buffer: list[str] = []
        self._settle_handle: asyncio.TimerHandle | None = None
        self._turn_task: asyncio.Task[None] | None = None
        self._turn_in_flight = False
        self._pending_approval: ApprovalRequest | None = None
        self._closed = False

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def recalibration_turn(self) -> int:
        return self._recalibration_turn

    @property
    def pending_approval(self) -> ApprovalRequest | None:
        return self._pending_approval

    async def process_chunk(self, chunk: Chunk) -> None:
        if self._closed:
            return

        if self._state == RECALIBRATE:
            self._response_buffer.append(chunk.content)
            if not self._turn_in_flight:
                self._arm_response_settle()
            return

        if self._state != MONITORING:
            LOGGER.info("chunk_dropped", extra={"chunk_id": chunk.id, "state": self._state})
            return

        result = await self.review_queue.analyze(chunk)
        if result is None:
            LOGGER.debug("chunk_without_result", extra={"chunk_id": chunk.id})
            return

        for finding in result.findings:
            self.listener.on_finding(finding)

        if result.no_findings or not (result.findings or result.inject or result.interrupt):
            return

        if self._state != MONITORING or self._closed:
            LOGGER.info(
                "directive_stale",
                extra={"chunk_id": chunk.id, "state": self._state},
            )
            return

        await self._act_on(result)

    def manual_inject(self, message: str) -> None:
        """Send operator-typed text to the worker outside the review flow."""
        self.bridge.inject(message)
        self.listener.on_inject(message, False)

    def close(self) -> None:
        """Stop timers and release any approval that is still waiting."""
        self._closed = True
        self._cancel_response_settle()
        if self._pending_approval is not None:
            self._pending_approval.reject()

    async def _act_on(self, result: DirectiveResult) -> None:
        if result.interrupt:
            if result.has_severity(INTERRUPT_SEVERITIES):
                await self._handle_interrupt(result.interrupt)
                return
            self._suppress("interrupt", result.interrupt, "requires a CRITICAL finding")

        if result.inject:
            if result.has_severity(INJECT_SEVERITIES):
                await self._handle_inject(result.inject)
                return
            self._suppress("inject", result.inject, "requires a CRITICAL or WARNING finding")

    def _suppress(self, kind: DirectiveKind, text: str, reason: str) -> None:
        LOGGER.warning(
            "directive_suppressed",
            extra={"kind": kind, "text": text, "reason": reason},
        )
        self.listener.on_suppressed(kind, text, reason)

    async def _handle_inject(self, message: str) -> None:
        self._set_state(ALERT)
        if self.autonomy == "observe":
            LOGGER.info("inject_skipped_observe", extra={"text": message})
            self._set_state(MONITORING)
            return

        if self.autonomy == "full":
            self._apply_inject(message, auto_approved=True)
            return

        approved = await self._request_approval("inject", message)
        if self._closed:
            return
        if approved is None:
            LOGGER.info("inject_rejected", extra={"text": message})
            self._set_state(MONITORING)
            return
        self._apply_inject(approved, auto_approved=False)

    def _apply_inject(self, message: str, *, auto_approved: bool) -> None:
        self._set_state(INJECT)
        self.bridge.inject(message)
        self.listener.on_inject(message, auto_approved)
        self._set_state(MONITORING)

    async def _handle_interrupt(self, reason: str) -> None:
        self._set_state(ALERT)
        if self.autonomy == "observe":
            LOGGER.info("interrupt_skipped_observe", extra={"reason": reason})
            self._set_state(MONITORING)
            return

        if self.autonomy == "supervised":
            approved = await self._request_approval("interrupt", reason)
            if self._closed:
                return
            if approved is None:
                LOGGER.info("interrupt_rejected", extra={"reason": reason})
                self._set_state(MONITORING)
                return
            reason = approved

        await self._interrupt(reason)

    async def _interrupt(self, reason: str) -> None:
        self._set_state(INTERRUPT)
        self.listener.on_interrupt(reason)

        if not self.bridge.is_idle:
            LOGGER.debug("waiting_for_worker_idle", extra={"timeout": self.idle_wait_timeout})
            try:
                await asyncio.wait_for(self.bridge.wait_idle(), timeout=self.idle_wait_timeout)
            except TimeoutError:
                LOGGER.info("worker_idle_wait_timeout", extra={"timeout": self.idle_wait_timeout})

        self.bridge.send_cancel_key()
        await asyncio.sleep(self.cancel_grace)
        if self._closed:
            return
        self.bridge.inject(format_interrupt_message(reason))

        self._recalibration_turn = 0
        self._response_buffer = []
        self._set_state(RECALIBRATE)
        self._arm_response_settle()

    async def _request_approval(self, kind: ApprovalKind, text: str) -> str | None:
        request = ApprovalRequest.create(kind, text)
        self._pending_approval = request
        LOGGER.info("approval_requested", extra={"kind": kind, "text": text})
        self.listener.on_approval_needed(request)
        try:
            return await request.wait()
        finally:
            self._pending_approval = None

    def _arm_response_settle(self) -> None:
        self._cancel_response_settle()
        if self._closed:
            return
        loop = asyncio.get_running_loop()
        self._settle_handle = loop.call_later(self.response_settle, self._on_response_settled)

    def _cancel_response_settle(self) -> None:
        if self._settle_handle is not None:
            self._settle_handle.cancel()
            self._settle_handle = None

    def _on_response_settled(self) -> None:
        self._settle_handle = None
        if self._state != RECALIBRATE or self._turn_in_flight or self._closed:
            return
        self._turn_in_flight = True
        self._turn_task = asyncio.get_running_loop().create_task(self._run_recalibration_turn())

    async def _run_recalibration_turn(self) -> None:
        try:
            await self._recalibration_turn_step()
        except Exception:
            LOGGER.exception("recalibration_turn_failed", extra={"turn": self._recalibration_turn})
            if self._state == RECALIBRATE and not self._closed:
                self._resolve_recalibration()
        finally:
            self._turn_in_flight = False

    async def _recalibration_turn_step(self) -> None:
        response = "\n".join(self._response_buffer).strip()
        self._response_buffer = []
        self._recalibration_turn += 1
        turn = self._recalibration_turn

        if not response:
            LOGGER.debug("recalibration_empty_response", extra={"turn": turn})
            self._continue_or_resolve(turn)
            return

        LOGGER.info("recalibration_turn", extra={"turn": turn, "response_chars": len(response)})
        self.listener.on_recalibrate(turn, response[:RECALIBRATE_PREVIEW_CHARS])
        result = await self.review_queue.send_recalibration_prompt(response)
        if self._state != RECALIBRATE or self._closed:
            return

        if result is None or result.resolved:
            self._resolve_recalibration()
            return

        if result.inject:
            if turn >= self.max_recalibration_turns:
                self._resolve_recalibration()
                return
            correction: str | None = result.inject
            if self.autonomy == "supervised":
                correction = await self._request_approval("recalibrate-inject", result.inject)
                if self._closed:
                    return
            if correction is None:
                LOGGER.info("recalibration_inject_rejected", extra={"turn": turn})
                self._resolve_recalibration()
                return
            self.bridge.inject(correction)
            self.listener.on_recalibrate(turn, correction)
            self._arm_response_settle()
            return

        self._continue_or_resolve(turn)

    def _continue_or_resolve(self, turn: int) -> None:
        if turn >= self.max_recalibration_turns:
            LOGGER.info("recalibration_turn_limit", extra={"turn": turn})
            self._resolve_recalibration()
        else:
            self._arm_response_settle()

    def _resolve_recalibration(self) -> None:
        self._cancel_response_settle()
        self._response_buffer = []
        self.bridge.inject(RESOLVE_MESSAGE)
        self.listener.on_resolved()
        self._set_state(MONITORING)

    def _set_state(self, state: SupervisorState) -> None:
        previous = self._state
        self._state = state
        LOGGER.info("state_transition", extra={"from": previous, "to": state})
        self.listener.on_state_change(previous, state)
