from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import msgspec

from .paths import default_config_path, launcher_settings_path

DEFAULT_PLAYBACK_BIN = "slippi-playback"


class ConfigError(ValueError):
    pass


class RecorderConfig(msgspec.Struct, rename="camel", frozen=True):
    """Paths to the external playback engine and the game image it boots."""

    ssbm_iso_path: str | None = None
    slippi_playback_bin: str = DEFAULT_PLAYBACK_BIN

    def iso_path(self) -> Path:
        if not self.ssbm_iso_path:
            raise ConfigError("no game ISO configured (set ssbmIsoPath in config.json or pass --iso)")
        return Path(self.ssbm_iso_path).expanduser()


@dataclass(frozen=True, slots=True)
class ConfigSources:
    config_path: Path
    launcher_settings_path: Path
    config_found: bool
    launcher_found: bool


def _read_json_object(path: Path) -> dict[str, Any] | None:
    try:
        raw = path.read_bytes()
    except OSError:
        return None
    try:
        obj = msgspec.json.decode(raw)
    except msgspec.DecodeError:
        return None
    if not isinstance(obj, dict):
        return None
    return obj


def _launcher_iso_path(settings: dict[str, Any] | None) -> str | None:
    if settings is None:
        return None
    inner = settings.get("settings")
    if not isinstance(inner, dict):
        return None
    iso = inner.get("isoPath")
    if isinstance(iso, str) and iso:
        return iso
    return None


def merge_config(
    user: dict[str, Any] | None,
    launcher: dict[str, Any] | None = None,
    *,
    iso_path: str | Path | None = None,
    playback_bin: str | Path | None = None,
) -> RecorderConfig:
    merged: dict[str, Any] = {}
    launcher_iso = _launcher_iso_path(launcher)
    if launcher_iso is not None:
        merged["ssbmIsoPath"] = launcher_iso
    if user:
        merged.update(user)
    if iso_path is not None:
        merged["ssbmIsoPath"] = str(iso_path)
    if playback_bin is not None:
        merged["slippiPlaybackBin"] = str(playback_bin)
    try:
        return msgspec.convert(merged, type=RecorderConfig)
    except msgspec.ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc


def load_config(
    *,
    config_path: Path | None = None,
    settings_path: Path | None = None,
    iso_path: str | Path | None = None,
    playback_bin: str | Path | None = None,
) -> tuple[RecorderConfig, ConfigSources]:
    """Resolve configuration: defaults, launcher settings, user file, then overrides."""
    cfg_path = Path(config_path) if config_path is not None else default_config_path()
    launcher_path = Path(settings_path) if settings_path is not None else launcher_settings_path()
    user = _read_json_object(cfg_path)
    launcher = _read_json_object(launcher_path)
    config = merge_config(user, launcher, iso_path=iso_path, playback_bin=playback_bin)
    sources = ConfigSources(
        config_path=cfg_path,
        launcher_settings_path=launcher_path,
        config_found=user is not None,
        launcher_found=launcher is not None,
    )
    return config, sources
