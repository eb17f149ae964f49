from __future__ import annotations

from pathlib import Path

import typer

from .config import ConfigError, load_config
from .paths import default_log_dir, default_work_root
from .playback.instruction import FrameWindow
from .playback.supervisor import FrameProgress, IncompleteRecordingError, RecordingError, RecordingTimeoutError
from .replay.types import ReplayFormatError, command_label

app = typer.Typer(add_completion=False, help="Record a Slippi replay by driving the playback engine over its frames.")


def _echo_progress(progress: FrameProgress) -> None:
    typer.echo(
        f"frame {progress.last_recorded_frame}/{progress.last_actual_frame} "
        f"recorded={progress.total_recorded_frames}/{progress.total_actual_frames}"
    )


@app.command("record")
def cmd_record(
    replay_file: Path = typer.Argument(..., help="the .slp file to record"),
    start_frame: int | None = typer.Option(
        None,
        "--start-frame",
        "-s",
        help="first frame to begin recording (default: the game's first frame, -123)",
    ),
    total_frames: int | None = typer.Option(
        None,
        "--total-frames",
        "-t",
        min=0,
        help="total frames to record (default: all remaining)",
    ),
    iso: Path | None = typer.Option(None, "--iso", "-i", help="game ISO to boot (default: from config)"),
    playback_bin: str | None = typer.Option(
        None,
        "--playback-bin",
        help="playback engine binary (default: from config, else slippi-playback)",
    ),
    work_dir: Path | None = typer.Option(
        None,
        "--work-dir",
        help="root for scratch sessions (default: <tmp>/slp-rec/work; override with SLP_REC_WORK_DIR)",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        min=0.0,
        help="abort if the engine has not reached the last frame after N seconds",
    ),
    trace: bool = typer.Option(False, "--trace", help="write a trace log (SLP_REC_LOG_DIR or per-user log dir)"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="do not print per-frame progress"),
) -> None:
    """Record a replay file through the playback engine."""
    from .recorder import record_replay

    if not replay_file.is_file():
        typer.echo(f"replay file not found: {replay_file}", err=True)
        raise typer.Exit(code=1)

    try:
        config, _sources = load_config(iso_path=iso, playback_bin=playback_bin)
        config.iso_path()
    except ConfigError as exc:
        typer.echo(f"config error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    work_root = work_dir if work_dir is not None else default_work_root()
    trace_dir = default_log_dir() if trace else None

    window = FrameWindow(start_frame=start_frame, total_frames=total_frames)
    try:
        result = record_replay(
            replay_file,
            config,
            window=window,
            work_root=work_root,
            on_progress=None if quiet else _echo_progress,
            timeout_seconds=timeout,
            trace_dir=trace_dir,
        )
    except ReplayFormatError as exc:
        typer.echo(f"malformed replay: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except RecordingTimeoutError as exc:
        typer.echo(f"recording timed out: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except IncompleteRecordingError as exc:
        typer.echo(f"recording incomplete: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except (RecordingError, OSError) as exc:
        typer.echo(f"recording failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(
        f"ok: recorded frames up to {result.latest_frame} (target={result.target_frame}, "
        f"frames={result.recorded_frames}, session={result.session_name})"
    )
    if result.trace_path is not None:
        typer.echo(f"trace log: {result.trace_path}", err=True)


@app.command("inspect")
def cmd_inspect(
    replay_file: Path = typer.Argument(..., help="the .slp file to inspect"),
) -> None:
    """Decode a replay's event stream and print its layout and frame range."""
    from .replay import load_replay_file, read_replay_stats

    try:
        decoded = load_replay_file(replay_file)
        stats = read_replay_stats(decoded)
    except OSError as exc:
        typer.echo(f"failed to read {replay_file}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except ReplayFormatError as exc:
        typer.echo(f"malformed replay: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"path: {replay_file}")
    typer.echo(f"layout: {'legacy' if decoded.legacy else 'enveloped'}")
    typer.echo(f"raw data: {decoded.raw_offset}..{decoded.raw_end} ({len(decoded.buffer)} bytes total)")
    typer.echo(f"events: {decoded.event_count}")
    typer.echo(f"frames: {stats.first_frame}..{stats.last_frame} ({stats.frame_count} distinct)")
    typer.echo(f"game end: {'yes' if stats.game_ended else 'no'}")
    typer.echo("sizes:")
    for command in sorted(decoded.sizes):
        typer.echo(f"  {command_label(command)}: {decoded.sizes[command]}")


@app.command("config")
def cmd_config(
    iso: Path | None = typer.Option(None, "--iso", "-i", help="override the game ISO path"),
    playback_bin: str | None = typer.Option(None, "--playback-bin", help="override the playback engine binary"),
) -> None:
    """Show the resolved configuration and where it came from."""
    try:
        config, sources = load_config(iso_path=iso, playback_bin=playback_bin)
    except ConfigError as exc:
        typer.echo(f"config error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    found = {True: "found", False: "missing"}
    typer.echo(f"config file: {sources.config_path} ({found[sources.config_found]})")
    typer.echo(f"launcher settings: {sources.launcher_settings_path} ({found[sources.launcher_found]})")
    typer.echo(f"ssbmIsoPath: {config.ssbm_iso_path or '-'}")
    typer.echo(f"slippiPlaybackBin: {config.slippi_playback_bin}")
    typer.echo(f"work dir: {default_work_root()}")


def main(argv: list[str] | None = None) -> None:
    app(prog_name="slp-rec", args=argv)


if __name__ == "__main__":
    main()
