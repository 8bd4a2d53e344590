"""Segments the worker's output stream into reviewable chunks."""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from terminalauditor.models import Chunk, utc_timestamp
from terminalauditor.stream.patterns import detect_tools, is_boundary, is_noise, strip_ansi

LOGGER = logging.getLogger(__name__)

ChunkCallback = Callable[[Chunk], None]

SIZE_CAP = 200
DEBOUNCE_SECONDS = 2.0
BOUNDARY_MIN_LINES = 5
MIN_CHUNK_CHARS = 40
PARTIAL_LINE_LIMIT = 8192
DEFAULT_CHUNK_INTERVAL = 30.0


@dataclass(slots=True)
class ChunkerStats:
    total_chunks: int = 0
    total_lines: int = 0
    filtered_chunks: int = 0
    detected_tools: dict[str, int] = field(default_factory=dict)


class Chunker:
    """Buffers decoded output lines and flushes them as ``Chunk`` objects.

    A flush is triggered by a boundary line once more than
    ``BOUNDARY_MIN_LINES`` lines are pending, by reaching ``SIZE_CAP`` lines,
    by the debounce timer after output pauses, by the periodic timer, or by an
    explicit ``flush()``. Timers run on the current asyncio loop.
    """

    def __init__(
        self,
        *,
        on_chunk: ChunkCallback,
        chunk_interval: float = DEFAULT_CHUNK_INTERVAL,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        size_cap: int = SIZE_CAP,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.on_chunk = on_chunk
        self.chunk_interval = chunk_interval if chunk_interval > 0 else DEFAULT_CHUNK_INTERVAL
        self.debounce_seconds = debounce_seconds
        self.size_cap = size_cap
        self._loop = loop
        self._buffer: list[str] = []
        self._partial = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._next_id = 1
        self._stats = ChunkerStats()
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._periodic_handle: asyncio.TimerHandle | None = None
        self._started = False
        self._closed = False

    def start(self) -> None:
        """Arm the periodic flush timer."""
        self._started = True
        self._arm_periodic()

    def close(self) -> None:
        """Cancel all timers; pending lines are kept until ``flush()``."""
        self._closed = True
        self._cancel_debounce()
        self._cancel_periodic()

    def feed(self, data: bytes | str) -> None:
        text = self._decoder.decode(data) if isinstance(data, bytes) else data
        pieces = (self._partial + text).split("\n")
        self._partial = pieces.pop()
        for piece in pieces:
            self._ingest(strip_ansi(piece))
        # \r-only redraws never end a line.
        if len(self._partial) > PARTIAL_LINE_LIMIT:
            partial, self._partial = self._partial, ""
            self._ingest(strip_ansi(partial))

        if not self._closed:
            self._arm_debounce()

    def flush(self) -> None:
        """Emit pending lines as a chunk; a no-op when nothing is buffered."""
        self._cancel_debounce()
        if self._partial:
            partial, self._partial = self._partial, ""
            self._ingest(strip_ansi(partial))
        self._flush()

    def get_stats(self) -> ChunkerStats:
        return ChunkerStats(
            total_chunks=self._stats.total_chunks,
            total_lines=self._stats.total_lines,
            filtered_chunks=self._stats.filtered_chunks,
            detected_tools=dict(self._stats.detected_tools),
        )

    def _ingest(self, raw_line: str) -> None:
        line = _collapse_carriage_returns(raw_line)
        trimmed = line.strip()
        if not trimmed or is_noise(trimmed):
            return

        if is_boundary(trimmed) and len(self._buffer) > BOUNDARY_MIN_LINES:
            self._flush()

        self._buffer.append(line.rstrip())
        if len(self._buffer) >= self.size_cap:
            self._flush()

    def _flush(self) -> None:
        lines = tuple(self._buffer)
        self._buffer = []
        if lines:
            self._emit(lines)
        self._arm_periodic()

    def _emit(self, lines: tuple[str, ...]) -> None:
        content_chars = sum(len("".join(line.split())) for line in lines)
        if content_chars < MIN_CHUNK_CHARS:
            self._stats.filtered_chunks += 1
            LOGGER.debug(
                "chunk_filtered",
                extra={"line_count": len(lines), "content_chars": content_chars},
            )
            return

        tools = detect_tools(lines)
        chunk = Chunk(
            id=self._next_id,
            timestamp=utc_timestamp(),
            lines=lines,
            detected_tools=tools,
        )
        self._next_id += 1
        self._stats.total_chunks += 1
        self._stats.total_lines += len(lines)
        for tool in tools:
            self._stats.detected_tools[tool] = self._stats.detected_tools.get(tool, 0) + 1

        LOGGER.debug(
            "chunk_emitted",
            extra={"chunk_id": chunk.id, "line_count": chunk.line_count, "tools": list(tools)},
        )
        self.on_chunk(chunk)

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        self.flush()

    def _on_periodic(self) -> None:
        self._periodic_handle = None
        self.flush()

    def _arm_debounce(self) -> None:
        self._cancel_debounce()
        self._debounce_handle = self._event_loop().call_later(
            self.debounce_seconds, self._on_debounce
        )

    def _arm_periodic(self) -> None:
        self._cancel_periodic()
        if not self._started or self._closed:
            return
        self._periodic_handle = self._event_loop().call_later(
            self.chunk_interval, self._on_periodic
        )

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _cancel_periodic(self) -> None:
        if self._periodic_handle is not None:
            self._periodic_handle.cancel()
            self._periodic_handle = None

    def _event_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop


def _collapse_carriage_returns(line: str) -> str:
    """Keep what a terminal would show after in-line ``\\r`` redraws."""
    line = line.rstrip("\r")
    if "\r" not in line:
        return line
    segments = [segment for segment in line.split("\r") if segment.strip()]
    return segments[-1] if segments else ""
