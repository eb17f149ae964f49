from __future__ import annotations

import os
from pathlib import Path
import tempfile

from platformdirs import PlatformDirs

APP_NAME = "slp-rec"
CONFIG_NAME = "config.json"
LAUNCHER_DIR_NAME = "Slippi Launcher"
LAUNCHER_SETTINGS_NAME = "Settings"


def _dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=False)


def default_config_dir() -> Path:
    return Path(_dirs().user_config_path)


def default_config_path() -> Path:
    override = os.environ.get("SLP_REC_CONFIG")
    if override:
        return Path(override).expanduser()
    return default_config_dir() / CONFIG_NAME


def launcher_settings_path() -> Path:
    # The launcher keeps its settings next to ours in the per-user config root.
    return default_config_dir().parent / LAUNCHER_DIR_NAME / LAUNCHER_SETTINGS_NAME


def default_work_root() -> Path:
    override = os.environ.get("SLP_REC_WORK_DIR")
    if override:
        return Path(override).expanduser()
    return Path(tempfile.gettempdir()) / APP_NAME / "work"


def default_log_dir() -> Path:
    override = os.environ.get("SLP_REC_LOG_DIR")
    if override:
        return Path(override).expanduser()
    return Path(_dirs().user_log_path)
