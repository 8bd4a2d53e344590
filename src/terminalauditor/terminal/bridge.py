"""Pseudo-terminal relay between the user's terminal and the worker process."""

from __future__ import annotations

import asyncio
import contextlib
import fcntl
import logging
import os
import pty
import shutil
import signal
import struct
import sys
import termios
import tty
from collections.abc import Callable, Sequence
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

IDLE_TIMEOUT_SECONDS = 3.0
CANCEL_KEY = b"\x1b"
DEFAULT_SIZE = (24, 80)
_READ_SIZE = 65536

DataCallback = Callable[[bytes], None]
IdleCallback = Callable[[], None]
InputHandler = Callable[[bytes], None]


@dataclass(frozen=True, slots=True)
class ExitInfo:
    """How the worker ended: an exit code or the terminating signal."""

    code: int | None
    signal: int | None = None

    @property
    def exit_code(self) -> int:
        if self.code is not None:
            return self.code
        if self.signal is not None:
            return 128 + self.signal
        return 1


ExitCallback = Callable[[ExitInfo], None]


class BridgeStartError(RuntimeError):
    """The worker could not be spawned under a pseudo-terminal."""


class TerminalBridge:
    """Owns one PTY-backed worker and relays bytes in both directions.

    Output from the worker is written unchanged to ``stdout_fd`` and then
    handed to ``on_data``. Keyboard input is forwarded to the worker unless a
    handler installed with ``divert_input`` claims it.
    """

    def __init__(
        self,
        *,
        on_data: DataCallback | None = None,
        on_idle: IdleCallback | None = None,
        on_exit: ExitCallback | None = None,
        idle_timeout: float = IDLE_TIMEOUT_SECONDS,
        stdin_fd: int | None = None,
        stdout_fd: int | None = None,
        relay_stdin: bool = True,
    ) -> None:
        self.on_data = on_data
        self.on_idle = on_idle
        self.on_exit = on_exit
        self.idle_timeout = idle_timeout
        self.stdin_fd = sys.stdin.fileno() if stdin_fd is None and relay_stdin else stdin_fd
        self.stdout_fd = sys.stdout.fileno() if stdout_fd is None else stdout_fd
        self.relay_stdin = relay_stdin
        self.pid: int | None = None
        self._master_fd: int | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._saved_tty: list | None = None
        self._idle = False
        self._idle_event = asyncio.Event()
        self._idle_handle: asyncio.TimerHandle | None = None
        self._input_handler: InputHandler | None = None
        self._reap_task: asyncio.Task[None] | None = None
        self._resize_registered = False
        self._exit_info: ExitInfo | None = None

    @property
    def is_idle(self) -> bool:
        return self._idle

    @property
    def running(self) -> bool:
        return self.pid is not None and self._exit_info is None

    @property
    def exit_info(self) -> ExitInfo | None:
        return self._exit_info

    def start(
        self,
        command: str,
        args: Sequence[str] = (),
        size: tuple[int, int] | None = None,
    ) -> None:
        """Spawn ``command`` under a new PTY; raises ``BridgeStartError`` on failure."""
        executable = shutil.which(command)
        if executable is None:
            msg = f"Worker executable not found: {command}"
            raise BridgeStartError(msg)

        loop = asyncio.get_running_loop()
        try:
            pid, master_fd = pty.fork()
        except OSError as exc:
            msg = f"Pseudo-terminal allocation failed: {exc}"
            raise BridgeStartError(msg) from exc

        if pid == 0:
            try:
                os.execv(executable, [executable, *args])
            finally:
                os._exit(127)

        self.pid = pid
        self._master_fd = master_fd
        self._loop = loop
        self._apply_size(size or self._terminal_size())
        LOGGER.info(
            "worker_started",
            extra={"pid": pid, "command": executable, "worker_args": list(args)},
        )

        loop.add_reader(master_fd, self._on_master_readable)
        if self.relay_stdin and self.stdin_fd is not None:
            if os.isatty(self.stdin_fd):
                self._saved_tty = termios.tcgetattr(self.stdin_fd)
                tty.setraw(self.stdin_fd)
            loop.add_reader(self.stdin_fd, self._on_stdin_readable)
        self._register_resize(loop)
        self._arm_idle()

    def inject(self, message: str) -> None:
        """Type ``message`` into the worker and press Enter."""
        self._write_master(f"{message}\r".encode())

    def send_cancel_key(self) -> None:
        self._write_master(CANCEL_KEY)

    def write(self, data: bytes) -> None:
        self._write_master(data)

    def kill(self, sig: int = signal.SIGTERM) -> None:
        if not self.running or self.pid is None:
            return
        with contextlib.suppress(ProcessLookupError):
            os.kill(self.pid, sig)
        LOGGER.info("worker_signalled", extra={"pid": self.pid, "signal": int(sig)})

    def resize(self) -> None:
        if self._master_fd is None or self._exit_info is not None:
            return
        self._apply_size(self._terminal_size())

    async def wait_idle(self) -> None:
        await self._idle_event.wait()

    def divert_input(self, handler: InputHandler | None) -> None:
        """Route keyboard bytes to ``handler`` instead of the worker; ``None`` restores."""
        self._input_handler = handler

    def restore_terminal(self) -> None:
        if self._saved_tty is not None and self.stdin_fd is not None:
            with contextlib.suppress(termios.error):
                termios.tcsetattr(self.stdin_fd, termios.TCSADRAIN, self._saved_tty)
            self._saved_tty = None

    def _on_master_readable(self) -> None:
        assert self._master_fd is not None
        try:
            data = os.read(self._master_fd, _READ_SIZE)
        except OSError:
            data = b""
        if not data:
            self._handle_eof()
            return

        try:
            _write_all(self.stdout_fd, data)
        except OSError as exc:
            LOGGER.debug("terminal_write_failed", extra={"error": str(exc)})
        self._mark_active()
        if self.on_data:
            self.on_data(data)

    def _on_stdin_readable(self) -> None:
        assert self.stdin_fd is not None
        try:
            data = os.read(self.stdin_fd, _READ_SIZE)
        except OSError:
            data = b""
        if not data:
            self._remove_reader(self.stdin_fd)
            return
        if self._input_handler is not None:
            self._input_handler(data)
            return
        self._write_master(data)

    def _mark_active(self) -> None:
        self._idle = False
        self._idle_event.clear()
        self._arm_idle()

    def _arm_idle(self) -> None:
        self._cancel_idle()
        if self._loop is None:
            return
        self._idle_handle = self._loop.call_later(self.idle_timeout, self._on_idle_timeout)

    def _cancel_idle(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _on_idle_timeout(self) -> None:
        self._idle_handle = None
        if self._idle:
            return
        self._idle = True
        self._idle_event.set()
        LOGGER.debug("worker_idle", extra={"pid": self.pid})
        if self.on_idle:
            self.on_idle()

    def _handle_eof(self) -> None:
        if self._master_fd is not None:
            self._remove_reader(self._master_fd)
        if self._reap_task is None and self._loop is not None:
            self._reap_task = self._loop.create_task(self._reap())

    async def _reap(self) -> None:
        assert self.pid is not None and self._loop is not None
        try:
            _, status = await self._loop.run_in_executor(None, os.waitpid, self.pid, 0)
        except ChildProcessError:
            self._finish(ExitInfo(code=None))
            return
        if os.WIFSIGNALED(status):
            self._finish(ExitInfo(code=None, signal=os.WTERMSIG(status)))
        else:
            self._finish(ExitInfo(code=os.waitstatus_to_exitcode(status)))

    def _finish(self, info: ExitInfo) -> None:
        if self._exit_info is not None:
            return
        self._exit_info = info
        self._cancel_idle()
        if self.stdin_fd is not None and self.relay_stdin:
            self._remove_reader(self.stdin_fd)
        if self._resize_registered and self._loop is not None:
            self._loop.remove_signal_handler(signal.SIGWINCH)
            self._resize_registered = False
        self.restore_terminal()
        if self._master_fd is not None:
            with contextlib.suppress(OSError):
                os.close(self._master_fd)
            self._master_fd = None
        LOGGER.info(
            "worker_exited",
            extra={"pid": self.pid, "code": info.code, "signal": info.signal},
        )
        if self.on_exit:
            self.on_exit(info)

    def _write_master(self, data: bytes) -> None:
        if self._master_fd is None:
            LOGGER.debug("worker_write_skipped", extra={"bytes": len(data)})
            return
        try:
            _write_all(self._master_fd, data)
        except OSError as exc:
            LOGGER.warning("worker_write_failed", extra={"error": str(exc)})

    def _register_resize(self, loop: asyncio.AbstractEventLoop) -> None:
        if not os.isatty(self.stdout_fd):
            return
        try:
            loop.add_signal_handler(signal.SIGWINCH, self.resize)
        except (RuntimeError, ValueError):
            return
        self._resize_registered = True

    def _remove_reader(self, fd: int) -> None:
        if self._loop is not None:
            self._loop.remove_reader(fd)

    def _apply_size(self, size: tuple[int, int]) -> None:
        if self._master_fd is None:
            return
        rows, cols = size
        with contextlib.suppress(OSError):
            fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))

    def _terminal_size(self) -> tuple[int, int]:
        try:
            packed = fcntl.ioctl(self.stdout_fd, termios.TIOCGWINSZ, b"\x00" * 8)
        except OSError:
            return DEFAULT_SIZE
        rows, cols, _, _ = struct.unpack("HHHH", packed)
        if rows <= 0 or cols <= 0:
            return DEFAULT_SIZE
        return rows, cols


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        view = view[written:]
