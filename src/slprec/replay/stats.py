from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from construct import Int32sb, StreamError

from .codec import iter_events, load_replay_file
from .types import Command, DecodedReplay, ReplayFormatError

_FRAME_COMMANDS = frozenset(
    {
        Command.PRE_FRAME_UPDATE,
        Command.POST_FRAME_UPDATE,
        Command.FRAME_BOOKEND,
    }
)


class ReplayStatsError(ReplayFormatError):
    pass


@dataclass(frozen=True, slots=True)
class ReplayStats:
    first_frame: int
    last_frame: int
    frame_count: int
    event_count: int
    game_ended: bool


def read_replay_stats(replay: DecodedReplay) -> ReplayStats:
    """Collect the frame range covered by a decoded replay.

    Every frame event payload starts with the frame number (big-endian i32).
    """
    frames: set[int] = set()
    game_ended = False
    events = 0
    for event in iter_events(replay.buffer, replay.raw_offset, replay.sizes, replay.raw_end):
        events += 1
        if event.command == Command.GAME_END:
            game_ended = True
            continue
        if event.command not in _FRAME_COMMANDS:
            continue
        try:
            frames.add(int(Int32sb.parse(event.payload)))
        except StreamError as exc:
            raise ReplayStatsError(f"frame event truncated at offset {event.offset}") from exc
    if not frames:
        raise ReplayStatsError("replay has no frame events")
    return ReplayStats(
        first_frame=min(frames),
        last_frame=max(frames),
        frame_count=len(frames),
        event_count=events,
        game_ended=game_ended,
    )


def replay_last_frame(path: Path) -> int:
    return read_replay_stats(load_replay_file(path)).last_frame
