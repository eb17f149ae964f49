from __future__ import annotations

from .instruction import (
    FrameWindow,
    PlaybackInstruction,
    compile_instruction,
    decode_instruction,
    encode_instruction,
    instruction_path,
    stage_replay,
    write_instruction,
)
from .supervisor import (
    CURRENT_FRAME_PREFIX,
    FrameProgress,
    FrameSyncSupervisor,
    IncompleteRecordingError,
    ProgressState,
    RecordingError,
    RecordingTimeoutError,
    SyncState,
    build_engine_args,
    parse_frame_line,
)

__all__ = [
    "CURRENT_FRAME_PREFIX",
    "FrameProgress",
    "FrameSyncSupervisor",
    "FrameWindow",
    "IncompleteRecordingError",
    "PlaybackInstruction",
    "ProgressState",
    "RecordingError",
    "RecordingTimeoutError",
    "SyncState",
    "build_engine_args",
    "compile_instruction",
    "decode_instruction",
    "encode_instruction",
    "instruction_path",
    "parse_frame_line",
    "stage_replay",
    "write_instruction",
]
