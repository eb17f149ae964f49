from __future__ import annotations

from collections.abc import Iterator
import contextlib
from dataclasses import dataclass
import hashlib
import os
from pathlib import Path
import shutil
import time

from .trace_log import trace_log


@dataclass(frozen=True, slots=True)
class ScratchSession:
    path: Path
    input_path: Path

    @property
    def name(self) -> str:
        return self.path.name


def input_path_hash(input_path: Path) -> str:
    normalized = os.path.normpath(str(input_path))
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


def session_name(input_path: Path, *, timestamp: int | None = None, pid: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else int(timestamp)
    pid = os.getpid() if pid is None else int(pid)
    return f"wd-{ts}-{input_path_hash(input_path)}-{pid}"


def begin_session(work_root: Path, input_path: Path, *, name: str | None = None) -> ScratchSession:
    path = Path(work_root) / (name if name is not None else session_name(input_path))
    path.mkdir(parents=True, exist_ok=True)
    trace_log("session_begin", path=path)
    return ScratchSession(path=path, input_path=Path(input_path))


def end_session(session: ScratchSession) -> None:
    try:
        shutil.rmtree(session.path)
    except FileNotFoundError:
        pass
    trace_log("session_end", path=session.path)


@contextlib.contextmanager
def work_session(work_root: Path, input_path: Path, *, name: str | None = None) -> Iterator[ScratchSession]:
    session = begin_session(work_root, input_path, name=name)
    try:
        yield session
    finally:
        end_session(session)
