from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import enum
from pathlib import Path
import subprocess
import threading
from typing import Final

from ..replay.types import FIRST_FRAME
from ..trace_log import trace_log

CURRENT_FRAME_PREFIX: Final[str] = "[CURRENT_FRAME]"
DEFAULT_TERMINATE_GRACE_SECONDS: Final[float] = 5.0


class RecordingError(RuntimeError):
    pass


class IncompleteRecordingError(RecordingError):
    def __init__(self, *, latest_frame: int | None, target_frame: int, exit_code: int | None) -> None:
        self.latest_frame = latest_frame
        self.target_frame = int(target_frame)
        self.exit_code = exit_code
        super().__init__(
            f"playback engine stopped before frame {self.target_frame} "
            f"(last recorded frame={latest_frame}, exit_code={exit_code})"
        )


class RecordingTimeoutError(RecordingError):
    def __init__(self, *, timeout_seconds: float, latest_frame: int | None, target_frame: int) -> None:
        self.timeout_seconds = float(timeout_seconds)
        self.latest_frame = latest_frame
        self.target_frame = int(target_frame)
        super().__init__(
            f"recording did not reach frame {self.target_frame} within {self.timeout_seconds:g}s "
            f"(last recorded frame={latest_frame})"
        )


class SyncState(enum.Enum):
    STARTING = "starting"
    WATCHING = "watching"
    DONE = "done"


@dataclass(slots=True)
class ProgressState:
    seen_frames: set[int] = field(default_factory=set)
    latest_frame: int | None = None

    def observe(self, frame: int) -> None:
        frame = int(frame)
        self.seen_frames.add(frame)
        if self.latest_frame is None or frame > self.latest_frame:
            self.latest_frame = frame

    def reached(self, target_frame: int) -> bool:
        return self.latest_frame is not None and self.latest_frame >= int(target_frame)


@dataclass(frozen=True, slots=True)
class FrameProgress:
    total_actual_frames: int
    last_actual_frame: int
    last_recorded_frame: int | None
    total_recorded_frames: int


ProgressCallback = Callable[[FrameProgress], None]
ProcessFactory = Callable[[list[str]], "subprocess.Popen[str]"]


def parse_frame_line(line: str) -> int | None:
    """Return the frame number of a progress line, or None for anything else."""
    if not line.startswith(CURRENT_FRAME_PREFIX):
        return None
    try:
        return int(line[len(CURRENT_FRAME_PREFIX) :].strip())
    except ValueError:
        return None


def build_engine_args(engine_bin: str | Path, instruction_file: Path, iso_path: Path) -> list[str]:
    return [
        str(engine_bin),
        "--cout",
        "--batch",
        "--slippi-input",
        str(instruction_file),
        "--exec",
        str(iso_path),
    ]


def _spawn_engine(args: list[str]) -> "subprocess.Popen[str]":
    return subprocess.Popen(
        args,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        text=True,
        errors="replace",
        bufsize=1,
    )


class FrameSyncSupervisor:
    """Run the playback engine until it reports the target frame, then stop it.

    The engine does not quit on its own once the replay is exhausted, so the
    frame reported on stdout is the only completion signal.
    """

    def __init__(
        self,
        engine_bin: str | Path,
        iso_path: Path,
        *,
        popen: ProcessFactory = _spawn_engine,
        on_progress: ProgressCallback | None = None,
        timeout_seconds: float | None = None,
        terminate_grace_seconds: float = DEFAULT_TERMINATE_GRACE_SECONDS,
    ) -> None:
        self.engine_bin = str(engine_bin)
        self.iso_path = Path(iso_path)
        self.state = SyncState.STARTING
        self._popen = popen
        self._on_progress = on_progress
        self._timeout_seconds = timeout_seconds
        self._terminate_grace_seconds = float(terminate_grace_seconds)
        self._terminate_lock = threading.Lock()
        self._terminate_requested = False

    def run(self, instruction_file: Path, target_last_frame: int) -> ProgressState:
        target = int(target_last_frame)
        args = build_engine_args(self.engine_bin, instruction_file, self.iso_path)
        self.state = SyncState.STARTING
        self._terminate_requested = False
        progress = ProgressState()

        try:
            process = self._popen(args)
        except OSError as exc:
            raise RecordingError(f"failed to start playback engine {self.engine_bin!r}: {exc}") from exc
        trace_log("engine_spawn", args=" ".join(args), target_frame=target)

        timed_out = threading.Event()
        timer: threading.Timer | None = None
        if self._timeout_seconds is not None:
            timer = threading.Timer(float(self._timeout_seconds), self._on_timeout, args=(process, timed_out))
            timer.daemon = True
            timer.start()

        self.state = SyncState.WATCHING
        try:
            self._watch(process, progress, target)
        finally:
            if timer is not None:
                timer.cancel()
            self._stop(process)

        if self.state is SyncState.DONE:
            return progress
        if timed_out.is_set():
            raise RecordingTimeoutError(
                timeout_seconds=float(self._timeout_seconds or 0.0),
                latest_frame=progress.latest_frame,
                target_frame=target,
            )
        raise IncompleteRecordingError(
            latest_frame=progress.latest_frame,
            target_frame=target,
            exit_code=process.returncode,
        )

    def _watch(self, process: "subprocess.Popen[str]", progress: ProgressState, target: int) -> None:
        stdout = process.stdout
        if stdout is None:
            raise RecordingError("playback engine stdout is not captured")
        for line in stdout:
            frame = parse_frame_line(line)
            if frame is None:
                continue
            progress.observe(frame)
            trace_log("frame", frame=frame, latest=progress.latest_frame, seen=len(progress.seen_frames))
            if self._on_progress is not None:
                self._on_progress(
                    FrameProgress(
                        total_actual_frames=target - FIRST_FRAME,
                        last_actual_frame=target,
                        last_recorded_frame=progress.latest_frame,
                        total_recorded_frames=len(progress.seen_frames),
                    )
                )
            if progress.reached(target):
                self.state = SyncState.DONE
                self._request_termination(process, reason="target_reached")
                return

    def _request_termination(self, process: "subprocess.Popen[str]", *, reason: str) -> None:
        with self._terminate_lock:
            if self._terminate_requested:
                return
            self._terminate_requested = True
        trace_log("engine_terminate", reason=reason, pid=getattr(process, "pid", None))
        process.terminate()

    def _on_timeout(self, process: "subprocess.Popen[str]", timed_out: threading.Event) -> None:
        timed_out.set()
        self._request_termination(process, reason="timeout")

    def _stop(self, process: "subprocess.Popen[str]") -> None:
        if process.poll() is None:
            self._request_termination(process, reason="supervisor_exit")
        try:
            process.wait(timeout=self._terminate_grace_seconds)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        if process.stdout is not None:
            process.stdout.close()
        trace_log("engine_exit", returncode=process.returncode, state=self.state.value)
