"""Per-recording trace log.

A trace is opened for one scratch session and written to ``<session>.log``.
Each line is a UTC timestamp, the event name and sorted ``key=value`` fields.
Modules call :func:`trace_log` unconditionally; it writes only while a
recording holds a trace open.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
import contextlib
from dataclasses import dataclass, field
import datetime as dt
import os
from pathlib import Path
import threading
from typing import TextIO


@dataclass(slots=True)
class RecordingTrace:
    path: Path
    session_name: str
    handle: TextIO
    lock: threading.Lock = field(default_factory=threading.Lock)

    def write(self, event: str, fields: Mapping[str, object]) -> None:
        stamp = dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds")
        line = " ".join([stamp, f"event={event.strip()}", *(_field(key, fields[key]) for key in sorted(fields))])
        with self.lock:
            # The timeout timer may report after the recording has closed the trace.
            if self.handle.closed:
                return
            self.handle.write(line + "\n")
            self.handle.flush()

    def close(self) -> None:
        with self.lock:
            self.handle.close()


def _field(key: str, value: object) -> str:
    text = str(value).replace("\n", "\\n")
    return f"{key}={text}"


_ACTIVE_LOCK = threading.Lock()
_ACTIVE: RecordingTrace | None = None


def trace_file_name(session_name: str) -> str:
    return f"{session_name}.log"


@contextlib.contextmanager
def open_trace(log_dir: Path | None, *, session_name: str, input_path: Path) -> Iterator[Path | None]:
    """Route :func:`trace_log` into ``log_dir/<session>.log`` for the duration.

    Yields the log path, or None when ``log_dir`` is None and tracing is off.
    Only one recording may hold a trace at a time.
    """
    global _ACTIVE
    if log_dir is None:
        yield None
        return

    path = Path(log_dir) / trace_file_name(session_name)
    with _ACTIVE_LOCK:
        if _ACTIVE is not None:
            raise RuntimeError(f"trace already open for session {_ACTIVE.session_name}")
        path.parent.mkdir(parents=True, exist_ok=True)
        trace = RecordingTrace(path=path, session_name=session_name, handle=path.open("a", encoding="utf-8"))
        _ACTIVE = trace

    try:
        trace.write("init", {"input": input_path, "pid": os.getpid(), "session": session_name})
        yield path
    finally:
        with _ACTIVE_LOCK:
            _ACTIVE = None
        trace.close()


def trace_log(event: str, **fields: object) -> None:
    with _ACTIVE_LOCK:
        trace = _ACTIVE
    if trace is not None:
        trace.write(event, fields)


__all__ = [
    "RecordingTrace",
    "open_trace",
    "trace_file_name",
    "trace_log",
]
