from __future__ import annotations

import os
from pathlib import Path
import re

import pytest

from slprec.session import begin_session, end_session, input_path_hash, session_name, work_session


def test_session_name_embeds_timestamp_hash_and_pid() -> None:
    name = session_name(Path("replays/game.slp"), timestamp=1700000000, pid=321)
    assert re.fullmatch(r"wd-1700000000-[0-9a-f]{16}-321", name)


def test_input_hash_uses_normalized_path() -> None:
    assert input_path_hash(Path("replays/./game.slp")) == input_path_hash(Path("replays/game.slp"))
    assert input_path_hash(Path("replays/a/../game.slp")) == input_path_hash(Path("replays/game.slp"))
    assert input_path_hash(Path("replays/other.slp")) != input_path_hash(Path("replays/game.slp"))


def test_begin_creates_missing_parents(tmp_path: Path) -> None:
    root = tmp_path / "deep" / "work"
    session = begin_session(root, Path("game.slp"))
    assert session.path.is_dir()
    assert session.path.parent == root
    assert session.name.endswith(f"-{os.getpid()}")
    end_session(session)
    assert not session.path.exists()


def test_end_tolerates_missing_directory(tmp_path: Path) -> None:
    session = begin_session(tmp_path, Path("game.slp"))
    (session.path / "nested").mkdir()
    (session.path / "nested" / "file.bin").write_bytes(b"x")
    end_session(session)
    end_session(session)
    assert not session.path.exists()


def test_work_session_removes_directory_on_error(tmp_path: Path) -> None:
    seen: list[Path] = []
    with pytest.raises(RuntimeError):
        with work_session(tmp_path, Path("game.slp")) as session:
            seen.append(session.path)
            (session.path / "record.json").write_text("{}\n", encoding="utf-8")
            raise RuntimeError("boom")
    assert seen and not seen[0].exists()
