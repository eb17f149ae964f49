from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
import sys
from pathlib import Path

import pytest

ENVELOPE_PREFIX = b"{U\x03raw[$U#l"

SlpBuilder = Callable[..., bytes]


def pytest_configure(config: pytest.Config) -> None:
    # Ensure the local `src/` tree wins over any other editable install that may exist
    # (e.g. a different git worktree pointing at the same project).
    src_dir = Path(__file__).resolve().parents[1] / "src"
    src_str = str(src_dir)
    if src_str not in sys.path:
        sys.path.insert(0, src_str)


def frame_payload(frame: int, size: int) -> bytes:
    head = int(frame).to_bytes(4, "big", signed=True)
    return (head + b"\x00" * size)[:size]


def build_slp(
    events: Sequence[tuple[int, bytes]],
    sizes: Mapping[int, int],
    *,
    declare_length: bool = True,
    trailer: bytes = b"",
) -> bytes:
    entries = b"".join(bytes([command]) + int(size).to_bytes(2, "big") for command, size in sizes.items())
    message_sizes = bytes([0x35, len(entries) + 1]) + entries
    raw = message_sizes + b"".join(bytes([command]) + payload for command, payload in events)
    length = len(raw) if declare_length else 0
    return ENVELOPE_PREFIX + length.to_bytes(4, "big") + raw + trailer


@pytest.fixture
def make_slp() -> SlpBuilder:
    return build_slp


@pytest.fixture
def make_frame_payload() -> Callable[[int, int], bytes]:
    return frame_payload
