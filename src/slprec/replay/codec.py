from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

from construct import Array, Byte, Bytes, Const, ConstError, ConstructError, Int16ub, Int32ub, StreamError, Struct

from .types import (
    ENVELOPE_OPEN,
    LEGACY_PAYLOAD_SIZES,
    RAW_OFFSET_ENVELOPED,
    RAW_OFFSET_LEGACY,
    Command,
    DecodedReplay,
    EventSizeTable,
    RawEvent,
    ReplayFormatError,
)

# `{U\x03raw[$U#l` followed by the raw-data length.
_ENVELOPE = Struct(
    "prefix" / Bytes(11),
    "raw_length" / Int32ub,
)

_SIZE_ENTRY = Struct(
    "command" / Byte,
    "size" / Int16ub,
)

_MESSAGE_SIZES = Struct(
    Const(bytes([Command.MESSAGE_SIZES])),
    "payload_length" / Byte,
    "entries" / Array(lambda ctx: max((int(ctx.payload_length) - 1) // 3, 0), _SIZE_ENTRY),
)


def locate_raw_data(buffer: bytes) -> int:
    """Return the offset where the event stream starts."""
    if not buffer:
        raise ReplayFormatError("empty replay buffer")
    lead = buffer[0]
    if lead == Command.GAME_START:
        return RAW_OFFSET_LEGACY
    if lead == ENVELOPE_OPEN:
        return RAW_OFFSET_ENVELOPED
    raise ReplayFormatError(f"unrecognized replay layout (leading byte 0x{lead:02x})")


def raw_data_end(buffer: bytes, offset: int) -> int:
    """Return the offset one past the last event byte.

    Enveloped replays declare the raw-data length; it is zero while a replay
    is still being written, in which case the whole buffer is event data.
    """
    total = len(buffer)
    if offset == RAW_OFFSET_LEGACY:
        return total
    try:
        envelope = _ENVELOPE.parse(buffer[:offset])
    except StreamError as exc:
        raise ReplayFormatError("replay envelope truncated") from exc
    declared = int(envelope.raw_length)
    if declared <= 0 or offset + declared > total:
        return total
    return offset + declared


def build_size_table(buffer: bytes, offset: int) -> EventSizeTable:
    if offset == RAW_OFFSET_LEGACY:
        return EventSizeTable(LEGACY_PAYLOAD_SIZES)

    if offset >= len(buffer) or buffer[offset] != Command.MESSAGE_SIZES:
        # Every lookup fails later; the walk reports the malformed stream.
        return EventSizeTable({})

    try:
        parsed = _MESSAGE_SIZES.parse(buffer[offset:])
    except ConstError as exc:  # pragma: no cover
        raise ReplayFormatError("message sizes event missing") from exc
    except StreamError as exc:
        raise ReplayFormatError(f"message sizes event truncated at offset {offset}") from exc
    except ConstructError as exc:
        raise ReplayFormatError(str(exc)) from exc

    sizes: dict[int, int] = {Command.MESSAGE_SIZES: int(parsed.payload_length)}
    for entry in parsed.entries:
        sizes[int(entry.command)] = int(entry.size)
    return EventSizeTable(sizes)


def iter_events(
    buffer: bytes,
    offset: int,
    sizes: EventSizeTable,
    end: int | None = None,
) -> Iterator[RawEvent]:
    stop = len(buffer) if end is None else int(end)
    cursor = int(offset)
    while cursor < stop:
        command = buffer[cursor]
        length = sizes.record_length(command, offset=cursor)
        yield RawEvent(offset=cursor, command=command, payload=bytes(buffer[cursor + 1 : cursor + length]))
        cursor += length


def walk(buffer: bytes, offset: int, sizes: EventSizeTable, end: int | None = None) -> int:
    """Step over every event and return the terminal cursor offset."""
    stop = len(buffer) if end is None else int(end)
    cursor = int(offset)
    while cursor < stop:
        cursor += sizes.record_length(buffer[cursor], offset=cursor)
    return cursor


def count_events(buffer: bytes, offset: int, sizes: EventSizeTable, end: int | None = None) -> int:
    return sum(1 for _ in iter_events(buffer, offset, sizes, end))


def decode_replay(buffer: bytes) -> DecodedReplay:
    buffer = bytes(buffer)
    offset = locate_raw_data(buffer)
    end = raw_data_end(buffer, offset)
    sizes = build_size_table(buffer, offset)
    if offset != RAW_OFFSET_LEGACY and Command.MESSAGE_SIZES not in sizes:
        raise ReplayFormatError("message sizes event missing")
    event_count = count_events(buffer, offset, sizes, end)
    return DecodedReplay(
        buffer=buffer,
        raw_offset=offset,
        raw_end=end,
        sizes=sizes,
        event_count=event_count,
    )


def load_replay_file(path: Path) -> DecodedReplay:
    path = Path(path)
    return decode_replay(path.read_bytes())
