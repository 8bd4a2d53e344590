"""Command-line interface for terminal-auditor."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path
from typing import TextIO, cast

from .config import AppConfig, parse_focus_areas
from .console import ApprovalConsole
from .display import SessionDisplay
from .models import Chunk
from .pane import LogPane, open_log_pane
from .prompts import FOCUS_OVERLAYS, build_system_prompt
from .report import ReportData, generate_report
from .review import ClaudeReviewer, ReviewQueue
from .stream import Chunker
from .supervisor import CompositeListener, Supervisor, SupervisorListener
from .terminal import BridgeStartError, ExitInfo, TerminalBridge

LOGGER = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 5.0
WORKER_ARGS_SEPARATOR = "--"
_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)
_RESERVED_RECORD_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


class CLIArgs(argparse.Namespace):
    mode: str | None
    focus: str | None
    auditor_model: str | None
    output: str | None
    log: str | None
    max_budget: float | None
    chunk_interval: int | None
    autonomy: str | None
    verbose: bool
    no_report: bool
    worker: str | None


class ExtrasFormatter(logging.Formatter):
    """Appends the ``extra={...}`` fields of a record as a JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_RECORD_KEYS and not key.startswith("_")
        }
        if not extras:
            return base
        return f"{base} {json.dumps(extras, default=str, ensure_ascii=False)}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="terminal-auditor",
        description=(
            "Real-time AI session auditor: runs a coding agent in a pseudo-terminal"
            " and has a second agent review its output as it works."
        ),
        epilog="Arguments after -- are passed to the worker unchanged.",
    )
    parser.add_argument(
        "--mode",
        choices=["passive", "active"],
        help="active also writes a live log and opens a side pane tailing it",
    )
    parser.add_argument(
        "--focus",
        help=f"Comma-separated review focus areas ({', '.join(FOCUS_OVERLAYS)})",
    )
    parser.add_argument("--auditor-model", dest="auditor_model", help="Reviewer model name")
    parser.add_argument("--output", help="Path of the markdown report")
    parser.add_argument("--log", help="Path of the live log file")
    parser.add_argument(
        "--max-budget",
        dest="max_budget",
        type=float,
        help="Reviewer spend ceiling in USD",
    )
    parser.add_argument(
        "--chunk-interval",
        dest="chunk_interval",
        type=int,
        help="Seconds between periodic flushes of buffered output",
    )
    parser.add_argument(
        "--autonomy",
        choices=["full", "supervised", "observe"],
        help="How corrective actions are approved",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug-level diagnostic log")
    parser.add_argument(
        "--no-report",
        dest="no_report",
        action="store_true",
        help="Skip writing the report at exit",
    )
    parser.add_argument("--worker", help="Worker executable (default: claude)")
    return parser


def split_worker_args(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split ``argv`` at the first ``--`` into auditor and worker arguments."""
    arguments = list(argv)
    if WORKER_ARGS_SEPARATOR not in arguments:
        return arguments, []
    index = arguments.index(WORKER_ARGS_SEPARATOR)
    return arguments[:index], arguments[index + 1 :]


def apply_cli_overrides(config: AppConfig, args: CLIArgs) -> AppConfig:
    """Explicit flags win over file and environment values."""
    overrides: dict[str, object] = {}
    if args.mode is not None:
        overrides["mode"] = args.mode
    if args.focus is not None:
        overrides["focus_areas"] = parse_focus_areas(args.focus)
    if args.auditor_model:
        overrides["auditor_model"] = args.auditor_model
    if args.output:
        overrides["output_path"] = args.output
    if args.log:
        overrides["log_path"] = args.log
    if args.max_budget is not None and args.max_budget > 0:
        overrides["max_budget"] = args.max_budget
    if args.chunk_interval is not None and args.chunk_interval > 0:
        overrides["chunk_interval"] = args.chunk_interval
    if args.autonomy is not None:
        overrides["autonomy"] = args.autonomy
    if args.verbose:
        overrides["verbose"] = True
    if args.no_report:
        overrides["generate_report"] = False
    if args.worker:
        overrides["worker_command"] = args.worker
    return replace(config, **overrides)


def configure_logging(log_path: str, *, verbose: bool) -> None:
    """Send diagnostics to ``<log_path>.debug``; the terminal belongs to the worker."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    handler: logging.Handler
    try:
        handler = logging.FileHandler(f"{log_path}.debug", encoding="utf-8")
    except OSError as exc:
        print(f"terminal-auditor: diagnostic log disabled ({exc})", file=sys.stderr)
        handler = logging.NullHandler()
    handler.setFormatter(ExtrasFormatter("%(asctime)s | %(name)s | %(levelname)s | %(message)s"))
    root.addHandler(handler)


class AuditSession:
    """Wires the bridge, chunker, review queue and supervisor for one worker run."""

    def __init__(
        self,
        config: AppConfig,
        worker_args: Sequence[str] = (),
        *,
        stderr: TextIO | None = None,
    ) -> None:
        self.config = config
        self.worker_args = list(worker_args)
        self.stderr = stderr or sys.stderr
        active = config.mode == "active"

        self.display = SessionDisplay(log_path=config.log_path, active=active)
        self.bridge = TerminalBridge(on_data=self._on_data, on_exit=self._on_exit)
        self.reviewer = ClaudeReviewer(
            model=config.auditor_model,
            system_prompt=build_system_prompt(config.focus_areas),
            command=config.reviewer_command,
            timeout=config.review_timeout,
        )
        self.review_queue = ReviewQueue(
            agent=self.reviewer,
            max_budget=config.max_budget,
            on_notice=self._print_notice,
        )
        self.console: ApprovalConsole | None = None
        listeners: list[SupervisorListener] = [self.display]
        if config.autonomy == "supervised":
            self.console = ApprovalConsole(bridge=self.bridge, stream=self.stderr)
            listeners.append(self.console)
        self.supervisor = Supervisor(
            bridge=self.bridge,
            review_queue=self.review_queue,
            autonomy=config.autonomy,
            listener=CompositeListener(*listeners),
        )
        self.chunker = Chunker(on_chunk=self._on_chunk, chunk_interval=config.chunk_interval)
        self.pane: LogPane | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._exited: asyncio.Event | None = None
        self._exit_info: ExitInfo | None = None
        self._signal_count = 0
        self._started_at = 0.0

    async def run(self) -> int:
        loop = asyncio.get_running_loop()
        self._exited = asyncio.Event()
        self._started_at = loop.time()

        self.bridge.start(self.config.worker_command, self.worker_args)
        self.chunker.start()
        LOGGER.info(
            "session_started",
            extra={
                "autonomy": self.config.autonomy,
                "mode": self.config.mode,
                "focus_areas": self.config.focus_areas,
                "auditor_model": self.config.auditor_model,
                "session_id": self.review_queue.session_id,
            },
        )
        if self.config.mode == "active":
            self.pane = open_log_pane(self.config.log_path)

        self._install_signal_handlers(loop)
        try:
            await self._exited.wait()
            return await self._shutdown(loop)
        finally:
            self._remove_signal_handlers(loop)

    def _on_data(self, data: bytes) -> None:
        self.chunker.feed(data)

    def _on_chunk(self, chunk: Chunk) -> None:
        task = asyncio.get_running_loop().create_task(self.supervisor.process_chunk(chunk))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("chunk_processing_failed", exc_info=exc)

    def _on_exit(self, info: ExitInfo) -> None:
        self._exit_info = info
        if self._exited is not None:
            self._exited.set()

    def _print_notice(self, notice: str) -> None:
        self._write_stderr(f"\r\n[terminal-auditor] {notice}\r\n")

    async def _shutdown(self, loop: asyncio.AbstractEventLoop) -> int:
        self.chunker.flush()
        self.chunker.close()
        if self.console is not None:
            self.console.close()

        try:
            await asyncio.wait_for(self._drain(), timeout=SHUTDOWN_DRAIN_SECONDS)
        except TimeoutError:
            LOGGER.warning(
                "shutdown_drain_timeout",
                extra={"pending_tasks": len(self._tasks), "seconds": SHUTDOWN_DRAIN_SECONDS},
            )
        self.supervisor.close()
        for task in list(self._tasks):
            task.cancel()

        exit_code = self._exit_info.exit_code if self._exit_info else 1
        duration = loop.time() - self._started_at
        if self.config.generate_report:
            self._write_report(exit_code, duration)
        if self.pane is not None:
            self.pane.close()

        self._write_stderr(
            f"\nterminal-auditor: {len(self.display.findings)} findings,"
            f" {len(self.display.actions)} actions,"
            f" reviewer cost ${self.review_queue.total_cost:.4f}\n"
        )
        LOGGER.info(
            "session_finished",
            extra={"exit_code": exit_code, "duration_seconds": round(duration, 1)},
        )
        return exit_code

    async def _drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.review_queue.drain()

    def _write_report(self, exit_code: int, duration: float) -> None:
        report = generate_report(
            ReportData(
                findings=self.display.findings,
                actions=self.display.actions,
                chunks=self.chunker.get_stats(),
                auditor_cost=self.review_queue.total_cost,
                auditor_model=self.config.auditor_model,
                duration_seconds=duration,
                exit_code=exit_code,
                autonomy=self.config.autonomy,
                focus_areas=self.config.focus_areas,
            )
        )
        path = Path(self.config.output_path)
        try:
            path.write_text(report, encoding="utf-8")
        except OSError as exc:
            LOGGER.error("report_write_failed", extra={"path": str(path), "error": str(exc)})
            self._write_stderr(f"terminal-auditor: could not write report to {path}: {exc}\n")
            return
        LOGGER.info("report_written", extra={"path": str(path)})
        self._write_stderr(f"terminal-auditor: report written to {path}\n")

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in _SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self._on_signal, sig)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in _SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(sig)

    def _on_signal(self, sig: int) -> None:
        self._signal_count += 1
        if self._signal_count > 1:
            LOGGER.warning("forced_exit", extra={"signal": int(sig)})
            self.bridge.kill(signal.SIGKILL)
            self.bridge.restore_terminal()
            logging.shutdown()
            os._exit(128 + int(sig))

        LOGGER.info("shutdown_requested", extra={"signal": int(sig)})
        self.chunker.flush()
        self.bridge.kill()

    def _write_stderr(self, text: str) -> None:
        try:
            self.stderr.write(text)
            self.stderr.flush()
        except (OSError, ValueError) as exc:
            LOGGER.debug("stderr_write_failed", extra={"error": str(exc)})


def main(argv: Sequence[str] | None = None) -> int:
    own_args, worker_args = split_worker_args(sys.argv[1:] if argv is None else argv)
    args = cast(CLIArgs, build_parser().parse_args(own_args))
    config = apply_cli_overrides(AppConfig.from_env(), args)
    configure_logging(config.log_path, verbose=config.verbose)

    session = AuditSession(config, worker_args)
    try:
        return asyncio.run(session.run())
    except BridgeStartError as exc:
        LOGGER.error("worker_start_failed", extra={"error": str(exc)})
        print(f"terminal-auditor: {exc}", file=sys.stderr)
        return 1
