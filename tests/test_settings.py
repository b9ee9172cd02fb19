"""Tests for settings loading and chat config resolution."""

from __future__ import annotations

import json

from narrachat.settings import DEFAULT_SETTINGS, chat_config, load_settings, set_chat_url


class TestLoadSettings:
    def test_creates_defaults(self, tmp_path):
        path = tmp_path / "settings" / "app.json"
        cfg = load_settings(path)
        assert path.exists()
        assert cfg["chat"]["timeout"] == DEFAULT_SETTINGS["chat"]["timeout"]
        cfg["chat"]["suggestions"].append("mutated")
        assert "mutated" not in DEFAULT_SETTINGS["chat"]["suggestions"]

    def test_forward_fills_missing_keys(self, tmp_path):
        path = tmp_path / "app.json"
        path.write_text(json.dumps({"chat": {"url": "https://x.test/chat"}}), encoding="utf-8")
        cfg = load_settings(path)
        assert cfg["chat"]["url"] == "https://x.test/chat"
        assert cfg["chat"]["api_key_env"] == "NARRACHAT_API_KEY"
        assert cfg["logging"]["level"] == "INFO"

    def test_set_chat_url_persists(self, tmp_path):
        path = tmp_path / "app.json"
        cfg = load_settings(path)
        set_chat_url(path, cfg, "https://y.test/chat")
        assert json.loads(path.read_text("utf-8"))["chat"]["url"] == "https://y.test/chat"


class TestChatConfig:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("NARRACHAT_CHAT_URL", "https://env.test/chat")
        monkeypatch.setenv("NARRACHAT_API_KEY", "secret")
        cfg = chat_config({"chat": {"url": "https://file.test/chat", "timeout": 15}})
        assert cfg.url == "https://env.test/chat"
        assert cfg.api_key == "secret"
        assert cfg.timeout == 15.0

    def test_explicit_url_wins(self, monkeypatch):
        monkeypatch.setenv("NARRACHAT_CHAT_URL", "https://env.test/chat")
        assert chat_config({}, url="https://cli.test/chat").url == "https://cli.test/chat"

    def test_custom_key_variable(self, monkeypatch):
        monkeypatch.delenv("NARRACHAT_API_KEY", raising=False)
        monkeypatch.setenv("MY_KEY", "k")
        assert chat_config({"chat": {"api_key_env": "MY_KEY"}}).api_key == "k"

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("NARRACHAT_CHAT_URL", raising=False)
        monkeypatch.delenv("NARRACHAT_API_KEY", raising=False)
        cfg = chat_config(DEFAULT_SETTINGS)
        assert cfg.url == ""
        assert cfg.api_key is None
        assert cfg.greeting
        assert len(cfg.suggestions) == 4
