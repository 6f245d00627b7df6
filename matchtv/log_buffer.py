"""In-memory buffer of recent sync log lines, served by ``GET /api/logs``.

Lines emitted while a sync run is active carry that run's id, so the admin
view can show the log of one background run instead of an interleaved tail.
"""

from __future__ import annotations

import logging
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Iterator

DEFAULT_BUFFER_SIZE = 500

PIPELINE_LOGGERS = (
    "matchtv.main",
    "matchtv.ingestion.sync",
    "matchtv.ingestion.teams",
    "matchtv.ingestion.competitions",
    "matchtv.ingestion.run_log",
    "matchtv.ingestion.sportmonks_client",
    "matchtv.broadcasts.store",
)

_current_run_id: ContextVar[str | None] = ContextVar("matchtv_sync_run_id", default=None)


@contextmanager
def run_log_context(run_id: str) -> Iterator[str]:
    """Tag every record logged inside the block with ``run_id``."""
    token = _current_run_id.set(run_id)
    try:
        yield run_id
    finally:
        _current_run_id.reset(token)


@dataclass(frozen=True)
class SyncLogLine:
    timestamp: str
    level: str
    logger: str
    message: str
    run_id: str | None = None


class SyncLogBuffer(logging.Handler):
    """Keeps the last *maxlen* sync log lines; the oldest fall off first."""

    def __init__(self, maxlen: int = DEFAULT_BUFFER_SIZE) -> None:
        super().__init__()
        self._lines: deque[SyncLogLine] = deque(maxlen=maxlen)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = SyncLogLine(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc)
                .strftime("%Y-%m-%d %H:%M:%S UTC"),
                level=record.levelname,
                logger=record.name,
                message=self.format(record),
                run_id=getattr(record, "run_id", None) or _current_run_id.get(),
            )
            self._lines.append(line)
        except Exception:
            self.handleError(record)

    def entries(
        self,
        limit: int = 100,
        min_level: int = logging.NOTSET,
        run_id: str | None = None,
    ) -> list[dict]:
        """Most recent *limit* lines at or above *min_level*, newest first.

        With *run_id*, only lines logged during that sync run.
        """
        if limit <= 0:
            return []
        lines = [
            line
            for line in self._lines
            if logging.getLevelName(line.level) >= min_level
            and (run_id is None or line.run_id == run_id)
        ][-limit:]
        lines.reverse()
        return [asdict(line) for line in lines]

    def run_ids(self) -> list[str]:
        """Run ids still present in the buffer, most recent first."""
        seen: dict[str, None] = {}
        for line in reversed(self._lines):
            if line.run_id is not None:
                seen.setdefault(line.run_id, None)
        return list(seen)

    def clear(self) -> None:
        self._lines.clear()


_buffer: SyncLogBuffer | None = None


def get_log_buffer() -> SyncLogBuffer:
    global _buffer
    if _buffer is None:
        _buffer = SyncLogBuffer()
        _buffer.setFormatter(logging.Formatter("%(message)s"))
        _buffer.setLevel(logging.INFO)
    return _buffer


def install_log_buffer(level: int = logging.INFO) -> SyncLogBuffer:
    """Attach the buffer to the pipeline loggers and let them emit at *level*."""
    buffer = get_log_buffer()
    buffer.setLevel(level)
    for name in PIPELINE_LOGGERS:
        pipeline_logger = logging.getLogger(name)
        if buffer not in pipeline_logger.handlers:
            pipeline_logger.addHandler(buffer)
        if pipeline_logger.level == logging.NOTSET or pipeline_logger.level > level:
            pipeline_logger.setLevel(level)
    return buffer
