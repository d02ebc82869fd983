from __future__ import annotations

import os
from pathlib import Path

APP_ENV_HOME = "TIMEBLOCK_HOME"
APP_ENV_DB = "TIMEBLOCK_DB"


def app_home() -> Path:
    """
    User-writable home for timeblock.
    Override with TIMEBLOCK_HOME.
    """
    if os.environ.get(APP_ENV_HOME):
        return Path(os.environ[APP_ENV_HOME]).expanduser().resolve()
    return (Path.home() / ".timeblock").resolve()


def data_dir() -> Path:
    d = app_home() / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


def db_path() -> Path:
    """
    Canonical DB path for timeblock.

    Resolution order:
    1. TIMEBLOCK_DB env var (explicit override)
    2. ~/.timeblock/data/timeblock.db (default)
    """
    if os.environ.get(APP_ENV_DB):
        return Path(os.environ[APP_ENV_DB]).expanduser().resolve()
    return data_dir() / "timeblock.db"
