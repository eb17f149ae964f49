from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final

import msgspec

from ..replay.types import FIRST_FRAME
from ..trace_log import trace_log

INSTRUCTION_NAME: Final[str] = "record.json"
STAGED_REPLAY_NAME: Final[str] = "input.slp"
PLAYBACK_MODE: Final[str] = "normal"


class PlaybackInstruction(msgspec.Struct, rename="camel", omit_defaults=True, frozen=True):
    """Record consumed by the playback engine via `--slippi-input`.

    `start_frame` is only present on an explicit override so the engine keeps
    its own default otherwise; `end_frame` is only present with a frame limit.
    """

    mode: str
    is_real_time_mode: bool
    replay: str
    command_id: str
    start_frame: int | None = None
    end_frame: int | None = None


@dataclass(frozen=True, slots=True)
class FrameWindow:
    start_frame: int | None = None
    total_frames: int | None = None

    def __post_init__(self) -> None:
        if self.total_frames is not None and int(self.total_frames) < 0:
            raise ValueError(f"total_frames must be non-negative, got {self.total_frames}")

    @property
    def first_frame(self) -> int:
        return FIRST_FRAME if self.start_frame is None else int(self.start_frame)

    @property
    def end_frame(self) -> int | None:
        if self.total_frames is None:
            return None
        return self.first_frame + int(self.total_frames)


def instruction_path(session_dir: Path) -> Path:
    return Path(session_dir) / INSTRUCTION_NAME


def stage_replay(session_dir: Path, buffer: bytes) -> Path:
    path = Path(session_dir) / STAGED_REPLAY_NAME
    path.write_bytes(bytes(buffer))
    return path


def compile_instruction(session_dir: Path, window: FrameWindow, replay_path: Path) -> PlaybackInstruction:
    return PlaybackInstruction(
        mode=PLAYBACK_MODE,
        is_real_time_mode=False,
        replay=str(replay_path),
        command_id=Path(session_dir).name,
        start_frame=None if window.start_frame is None else int(window.start_frame),
        end_frame=window.end_frame,
    )


def encode_instruction(instruction: PlaybackInstruction) -> bytes:
    return msgspec.json.encode(instruction) + b"\n"


def decode_instruction(data: bytes) -> PlaybackInstruction:
    return msgspec.json.decode(data, type=PlaybackInstruction)


def write_instruction(session_dir: Path, instruction: PlaybackInstruction) -> Path:
    path = instruction_path(session_dir)
    path.write_bytes(encode_instruction(instruction))
    trace_log(
        "instruction_written",
        path=path,
        command_id=instruction.command_id,
        start_frame=instruction.start_frame,
        end_frame=instruction.end_frame,
    )
    return path
