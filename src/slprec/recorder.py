from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import RecorderConfig
from .paths import default_work_root
from .playback.instruction import FrameWindow, PlaybackInstruction, compile_instruction, stage_replay, write_instruction
from .playback.supervisor import FrameSyncSupervisor, ProcessFactory, ProgressCallback, RecordingError
from .replay.codec import decode_replay
from .replay.stats import replay_last_frame
from .replay.types import ReplayFormatError
from .session import session_name, work_session
from .trace_log import open_trace, trace_log

LastFrameProvider = Callable[[Path], int]


@dataclass(frozen=True, slots=True)
class RecordingResult:
    session_name: str
    instruction: PlaybackInstruction
    target_frame: int
    latest_frame: int | None
    recorded_frames: int
    trace_path: Path | None = None


def recording_target(last_frame: int, instruction: PlaybackInstruction) -> int:
    """Frame the engine must report before it can be stopped."""
    if instruction.end_frame is None:
        return int(last_frame)
    return min(int(last_frame), int(instruction.end_frame))


def record_replay(
    input_path: Path,
    config: RecorderConfig,
    *,
    window: FrameWindow | None = None,
    work_root: Path | None = None,
    last_frame_provider: LastFrameProvider = replay_last_frame,
    on_progress: ProgressCallback | None = None,
    timeout_seconds: float | None = None,
    popen: ProcessFactory | None = None,
    trace_dir: Path | None = None,
) -> RecordingResult:
    """Play `input_path` through the engine over the requested frame window.

    The scratch session is removed on every exit path. Malformed replays fail
    before the engine is spawned. With `trace_dir` set, the run is traced to
    `<trace_dir>/<session>.log`.
    """
    input_path = Path(input_path)
    iso_path = config.iso_path()
    window = window if window is not None else FrameWindow()
    root = Path(work_root) if work_root is not None else default_work_root()

    name = session_name(input_path)

    with (
        open_trace(trace_dir, session_name=name, input_path=input_path) as trace_path,
        work_session(root, input_path, name=name) as session,
    ):
        try:
            decoded = decode_replay(input_path.read_bytes())
            trace_log(
                "decode",
                raw_offset=decoded.raw_offset,
                raw_end=decoded.raw_end,
                sizes=len(decoded.sizes),
                events=decoded.event_count,
            )
            staged = stage_replay(session.path, decoded.buffer)
            instruction = compile_instruction(session.path, window, staged)
            instruction_file = write_instruction(session.path, instruction)
            target = recording_target(last_frame_provider(staged), instruction)

            supervisor_kwargs: dict[str, Any] = {
                "on_progress": on_progress,
                "timeout_seconds": timeout_seconds,
            }
            if popen is not None:
                supervisor_kwargs["popen"] = popen
            supervisor = FrameSyncSupervisor(config.slippi_playback_bin, iso_path, **supervisor_kwargs)
            progress = supervisor.run(instruction_file, target)
        except (ReplayFormatError, RecordingError, OSError) as exc:
            trace_log("recording_failed", error=type(exc).__name__, message=exc)
            raise

        return RecordingResult(
            session_name=session.name,
            instruction=instruction,
            target_frame=target,
            latest_frame=progress.latest_frame,
            recorded_frames=len(progress.seen_frames),
            trace_path=trace_path,
        )
