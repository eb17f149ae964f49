from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Final

# Frame numbering starts with the pre-match countdown.
FIRST_FRAME: Final[int] = -123

RAW_OFFSET_LEGACY: Final[int] = 0
RAW_OFFSET_ENVELOPED: Final[int] = 15
ENVELOPE_OPEN: Final[int] = ord("{")


class Command:
    MESSAGE_SIZES = 0x35
    GAME_START = 0x36
    PRE_FRAME_UPDATE = 0x37
    POST_FRAME_UPDATE = 0x38
    GAME_END = 0x39
    ITEM_UPDATE = 0x3B
    FRAME_BOOKEND = 0x3C


COMMAND_NAMES: Final[dict[int, str]] = {
    Command.MESSAGE_SIZES: "message_sizes",
    Command.GAME_START: "game_start",
    Command.PRE_FRAME_UPDATE: "pre_frame_update",
    Command.POST_FRAME_UPDATE: "post_frame_update",
    Command.GAME_END: "game_end",
    Command.ITEM_UPDATE: "item_update",
    Command.FRAME_BOOKEND: "frame_bookend",
}

# Replays without a message-sizes event only ever carried these four commands.
LEGACY_PAYLOAD_SIZES: Final[Mapping[int, int]] = MappingProxyType(
    {
        Command.GAME_START: 0x140,
        Command.PRE_FRAME_UPDATE: 0x6,
        Command.POST_FRAME_UPDATE: 0x46,
        Command.GAME_END: 0x1,
    }
)


class ReplayFormatError(ValueError):
    pass


def command_label(command: int) -> str:
    name = COMMAND_NAMES.get(int(command))
    if name is None:
        return f"0x{int(command):02x}"
    return f"{name} (0x{int(command):02x})"


@dataclass(frozen=True, slots=True, eq=False)
class EventSizeTable(Mapping[int, int]):
    """Payload length per event command, discovered once per replay buffer.

    Lengths exclude the one-byte command itself.
    """

    sizes: Mapping[int, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sizes", MappingProxyType({int(k): int(v) for k, v in self.sizes.items()}))

    def __getitem__(self, command: int) -> int:
        return self.sizes[command]

    def __iter__(self) -> Iterator[int]:
        return iter(self.sizes)

    def __len__(self) -> int:
        return len(self.sizes)

    def record_length(self, command: int, *, offset: int | None = None) -> int:
        """Return the full record length (command byte + payload) for `command`."""
        size = self.sizes.get(int(command))
        if size is None:
            where = "" if offset is None else f" at offset {int(offset)}"
            raise ReplayFormatError(f"no size table entry for event {command_label(command)}{where}")
        return 1 + int(size)


@dataclass(frozen=True, slots=True)
class RawEvent:
    offset: int
    command: int
    payload: bytes

    @property
    def name(self) -> str:
        return COMMAND_NAMES.get(int(self.command), "unknown")


@dataclass(frozen=True, slots=True)
class DecodedReplay:
    buffer: bytes
    raw_offset: int
    raw_end: int
    sizes: EventSizeTable
    event_count: int

    @property
    def legacy(self) -> bool:
        return self.raw_offset == RAW_OFFSET_LEGACY
