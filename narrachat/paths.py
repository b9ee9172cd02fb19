# narrachat/paths.py
from __future__ import annotations
import os
from pathlib import Path

from .constants import DEFAULT_LOG_FILENAME


def default_data_dir() -> Path:
    # ./data unless NARRACHAT_DATA_DIR says otherwise
    env = os.getenv("NARRACHAT_DATA_DIR")
    return Path(env).expanduser().resolve() if env else Path("data").resolve()


def log_path(data_dir: Path) -> Path:
    return data_dir / "logs" / DEFAULT_LOG_FILENAME


def settings_path() -> Path:
    # non-sensitive JSON only; credentials come from the environment
    return Path("settings").resolve() / "app.json"
