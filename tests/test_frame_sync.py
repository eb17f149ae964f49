from __future__ import annotations

from pathlib import Path
import subprocess
import threading

import pytest

from slprec.playback import (
    FrameProgress,
    FrameSyncSupervisor,
    IncompleteRecordingError,
    RecordingError,
    RecordingTimeoutError,
    SyncState,
    build_engine_args,
    parse_frame_line,
)


class _FakeEngine:
    def __init__(self, lines: list[str], *, exit_code: int = 0) -> None:
        self.pid = 4242
        self.lines_read = 0
        self.terminate_calls = 0
        self.kill_calls = 0
        self.returncode: int | None = None
        self._lines = lines
        self._exit_code = exit_code
        self._stdout_done = False
        self.stdout = self

    def __iter__(self):
        for line in self._lines:
            if self.returncode is not None:
                break
            self.lines_read += 1
            yield line + "\n"
        self._stdout_done = True

    def close(self) -> None:
        pass

    def poll(self) -> int | None:
        if self.returncode is None and self._stdout_done:
            self.returncode = self._exit_code
        return self.returncode

    def terminate(self) -> None:
        self.terminate_calls += 1
        self.returncode = -15

    def kill(self) -> None:
        self.kill_calls += 1
        self.returncode = -9

    def wait(self, timeout: float | None = None) -> int:
        self.poll()
        if self.returncode is None:
            self.returncode = self._exit_code
        return self.returncode


def _supervisor(engine: _FakeEngine, spawned: list[list[str]], **kwargs) -> FrameSyncSupervisor:  # noqa: ANN003
    def _popen(args: list[str]) -> _FakeEngine:
        spawned.append(args)
        return engine

    return FrameSyncSupervisor("slippi-playback", Path("/games/ssbm.iso"), popen=_popen, **kwargs)


def test_parse_frame_line() -> None:
    assert parse_frame_line("[CURRENT_FRAME] 10") == 10
    assert parse_frame_line("[CURRENT_FRAME] -123\n") == -123
    assert parse_frame_line("[CURRENT_FRAME]12") == 12
    assert parse_frame_line("[CURRENT_FRAME] garbled") is None
    assert parse_frame_line("[CURRENT_FRAME] ") is None
    assert parse_frame_line("Loading game...") is None
    assert parse_frame_line(" [CURRENT_FRAME] 4") is None


def test_done_after_target_frame_with_single_terminate() -> None:
    engine = _FakeEngine(["[CURRENT_FRAME] 10", "[CURRENT_FRAME] 5", "[CURRENT_FRAME] 12", "[CURRENT_FRAME] 13"])
    spawned: list[list[str]] = []
    supervisor = _supervisor(engine, spawned)

    progress = supervisor.run(Path("/work/record.json"), 12)

    assert supervisor.state is SyncState.DONE
    assert engine.lines_read == 3
    assert engine.terminate_calls == 1
    assert progress.latest_frame == 12
    assert progress.seen_frames == {5, 10, 12}
    assert spawned == [build_engine_args("slippi-playback", Path("/work/record.json"), Path("/games/ssbm.iso"))]


def test_engine_args_select_batch_mode() -> None:
    args = build_engine_args("dolphin", Path("/w/record.json"), Path("/g/ssbm.iso"))
    assert args == ["dolphin", "--cout", "--batch", "--slippi-input", "/w/record.json", "--exec", "/g/ssbm.iso"]


def test_stream_end_before_target_is_incomplete() -> None:
    engine = _FakeEngine(["[CURRENT_FRAME] 10", "[CURRENT_FRAME] 11"], exit_code=3)
    supervisor = _supervisor(engine, [])

    with pytest.raises(IncompleteRecordingError) as excinfo:
        supervisor.run(Path("/work/record.json"), 12)

    assert supervisor.state is SyncState.WATCHING
    assert excinfo.value.latest_frame == 11
    assert excinfo.value.target_frame == 12
    assert excinfo.value.exit_code == 3
    assert engine.terminate_calls == 0


def test_chatter_and_garbled_lines_are_ignored() -> None:
    engine = _FakeEngine(
        [
            "Booting game",
            "[CURRENT_FRAME] -123",
            "[CURRENT_FRAME] ???",
            "[CURRENT_FRAME]",
            "warning: audio dump disabled",
            "[CURRENT_FRAME] 0",
        ]
    )
    progress = _supervisor(engine, []).run(Path("record.json"), 0)
    assert progress.seen_frames == {-123, 0}
    assert engine.terminate_calls == 1


def test_progress_callback_reports_counts() -> None:
    reports: list[FrameProgress] = []
    engine = _FakeEngine(["[CURRENT_FRAME] -123", "[CURRENT_FRAME] -123", "[CURRENT_FRAME] -122"])
    _supervisor(engine, [], on_progress=reports.append).run(Path("record.json"), -122)

    assert len(reports) == 3
    assert reports[-1] == FrameProgress(
        total_actual_frames=1,
        last_actual_frame=-122,
        last_recorded_frame=-122,
        total_recorded_frames=2,
    )


def test_spawn_failure_is_recording_error() -> None:
    def _popen(args: list[str]) -> _FakeEngine:
        raise FileNotFoundError(2, "No such file or directory", args[0])

    supervisor = FrameSyncSupervisor("missing-bin", Path("ssbm.iso"), popen=_popen)
    with pytest.raises(RecordingError, match="missing-bin"):
        supervisor.run(Path("record.json"), 10)


def test_engine_is_killed_when_terminate_is_ignored() -> None:
    class _StubbornEngine(_FakeEngine):
        def terminate(self) -> None:
            self.terminate_calls += 1

        def wait(self, timeout: float | None = None) -> int:
            if timeout is not None and self.returncode is None:
                raise subprocess.TimeoutExpired(cmd="slippi-playback", timeout=timeout)
            return super().wait(timeout)

    engine = _StubbornEngine(["[CURRENT_FRAME] 3"])
    _supervisor(engine, [], terminate_grace_seconds=0.01).run(Path("record.json"), 3)
    assert engine.terminate_calls == 1
    assert engine.kill_calls == 1


def test_timeout_terminates_engine() -> None:
    release = threading.Event()

    class _HangingEngine(_FakeEngine):
        def __iter__(self):
            yield "[CURRENT_FRAME] 1\n"
            release.wait(timeout=5.0)
            self._stdout_done = True

        def terminate(self) -> None:
            super().terminate()
            release.set()

    engine = _HangingEngine([])
    with pytest.raises(RecordingTimeoutError) as excinfo:
        _supervisor(engine, [], timeout_seconds=0.05).run(Path("record.json"), 100)

    assert excinfo.value.latest_frame == 1
    assert engine.terminate_calls == 1
