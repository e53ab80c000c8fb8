from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "TMGR"
APP_DIR = "taskmanager"
DB_FILENAME = "taskmanager.db"


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env_path(name: str) -> Optional[Path]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return Path(raw).expanduser().resolve()


def user_config_dir() -> Optional[Path]:
    """
    Per-user configuration directory, or None if it cannot be determined:
      Windows: %APPDATA%
      macOS:   ~/Library/Application Support
      other:   $XDG_CONFIG_HOME, else ~/.config
    """
    if sys.platform == "win32":
        appdata = os.getenv("APPDATA")
        return Path(appdata) if appdata else None

    try:
        home = Path.home()
    except RuntimeError:
        home = None

    if sys.platform == "darwin":
        return home / "Library" / "Application Support" if home else None

    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg and Path(xdg).is_absolute():
        return Path(xdg)
    return home / ".config" if home else None


def default_db_path() -> Path:
    """
    Default per-user database:
      <user config dir>/taskmanager/taskmanager.db

    Override with TMGR_DB env var or --db CLI option. Falls back to the
    current directory when there is no user config directory.
    """
    env = _env_path(_k("DB"))
    if env:
        return env

    base = user_config_dir()
    if base is None:
        logger.warning("Could not find user config directory. Using current directory.")
        return (Path.cwd() / DB_FILENAME).resolve()
    return (base / APP_DIR / DB_FILENAME).resolve()


@dataclass(frozen=True)
class Settings:
    log_file: Optional[Path]
    log_level: int


def _env_log_level(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else default


def load_settings() -> Settings:
    return Settings(
        log_file=_env_path(_k("LOG_FILE")),
        log_level=_env_log_level(_k("LOG_LEVEL"), logging.WARNING),
    )
