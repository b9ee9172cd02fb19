# narrachat/settings.py
from __future__ import annotations
import copy
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from .constants import (
    API_KEY_ENV, DEFAULT_LOG_BACKUP_COUNT, DEFAULT_LOG_MAX_BYTES, DEFAULT_TIMEOUT, GREETING, SUGGESTIONS,
)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "schema": 1,
    "logging": {
        "level": "INFO",
        "max_bytes": DEFAULT_LOG_MAX_BYTES,
        "backup_count": DEFAULT_LOG_BACKUP_COUNT
    },
    "chat": {
        "url": "",
        "api_key_env": API_KEY_ENV,
        "timeout": DEFAULT_TIMEOUT,
        "greeting": GREETING,
        "suggestions": list(SUGGESTIONS),
    },
}


@dataclass(frozen=True)
class ChatConfig:
    url: str
    api_key: Optional[str]
    timeout: float
    greeting: Optional[str]
    suggestions: Tuple[str, ...]


def load_settings(path: Path) -> dict:
    if not path.exists():
        save_settings(path, DEFAULT_SETTINGS)
        return copy.deepcopy(DEFAULT_SETTINGS)
    with path.open("r", encoding="utf-8") as f:
        cfg = json.load(f)
    # Simple forward-fill of missing keys
    def merge(a: dict, b: dict):
        for k, v in b.items():
            if k not in a:
                a[k] = copy.deepcopy(v)
            elif isinstance(v, dict) and isinstance(a.get(k), dict):
                merge(a[k], v)
    merged = dict(cfg)
    merge(merged, DEFAULT_SETTINGS)
    return merged

def save_settings(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)
    tmp.replace(path)

def set_chat_url(path: Path, cfg: dict, url: str) -> dict:
    updated = dict(cfg)
    chat = dict(updated.get("chat", {}))
    if chat.get("url") != url:
        chat["url"] = url
        updated["chat"] = chat
        save_settings(path, updated)
    return updated

def chat_config(cfg: dict, *, url: str | None = None) -> ChatConfig:
    """
    Resolve the "chat" section into a ChatConfig.

    Precedence for the endpoint: explicit `url` > env NARRACHAT_CHAT_URL > settings.
    The bearer credential is never stored in settings; only the name of the
    environment variable holding it is.
    """
    chat = cfg.get("chat") or {}
    resolved_url = url or os.getenv("NARRACHAT_CHAT_URL") or chat.get("url") or ""
    key_env = chat.get("api_key_env") or API_KEY_ENV
    greeting = chat.get("greeting")
    return ChatConfig(
        url=str(resolved_url).strip(),
        api_key=os.getenv(key_env) or None,
        timeout=float(chat.get("timeout") or DEFAULT_TIMEOUT),
        greeting=greeting if isinstance(greeting, str) and greeting.strip() else None,
        suggestions=tuple(s for s in (chat.get("suggestions") or []) if isinstance(s, str) and s.strip()),
    )
