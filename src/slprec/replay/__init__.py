from __future__ import annotations

from .codec import (
    build_size_table,
    count_events,
    decode_replay,
    iter_events,
    load_replay_file,
    locate_raw_data,
    raw_data_end,
    walk,
)
from .stats import ReplayStats, ReplayStatsError, read_replay_stats, replay_last_frame
from .types import (
    FIRST_FRAME,
    LEGACY_PAYLOAD_SIZES,
    Command,
    DecodedReplay,
    EventSizeTable,
    RawEvent,
    ReplayFormatError,
    command_label,
)

__all__ = [
    "FIRST_FRAME",
    "LEGACY_PAYLOAD_SIZES",
    "Command",
    "DecodedReplay",
    "EventSizeTable",
    "RawEvent",
    "ReplayFormatError",
    "ReplayStats",
    "ReplayStatsError",
    "build_size_table",
    "command_label",
    "count_events",
    "decode_replay",
    "iter_events",
    "load_replay_file",
    "locate_raw_data",
    "raw_data_end",
    "read_replay_stats",
    "replay_last_frame",
    "walk",
]
