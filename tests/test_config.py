"""Tests for Config resolution order and value helpers."""
from __future__ import annotations

import pytest

from common.common_helpers import as_bool, as_int, parse_id
from common.config import Config
from common.db import DBManager


def test_env_values_are_read(tmp_path, monkeypatch):
    monkeypatch.setenv("ALLOW_SELF_CONNECTIONS", "yes")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    cfg = Config(db_path=str(tmp_path / "cfg.db"), env_file=tmp_path / "missing.env")
    try:
        assert cfg.ALLOW_SELF_CONNECTIONS is True
        assert cfg.LOG_LEVEL == "DEBUG"
    finally:
        cfg.close()


def test_app_config_overrides_env(tmp_path, monkeypatch):
    path = str(tmp_path / "cfg.db")
    seed = DBManager(path, init_schema=True)
    seed.set_config("ALLOW_SELF_CONNECTIONS", "false")
    seed.close()
    monkeypatch.setenv("ALLOW_SELF_CONNECTIONS", "true")

    cfg = Config(db_path=path, env_file=tmp_path / "missing.env")
    try:
        assert cfg.ALLOW_SELF_CONNECTIONS is False
    finally:
        cfg.close()


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    env = tmp_path / ".env"
    env.write_text("LOG_LEVEL=warning\n", encoding="utf-8")

    cfg = Config(db_path=str(tmp_path / "cfg.db"), env_file=env)
    try:
        assert cfg.LOG_LEVEL == "WARNING"
    finally:
        cfg.close()


@pytest.mark.parametrize(
    "raw,expected",
    [("1", True), ("On", True), ("no", False), ("", False), (None, False), ("maybe", False)],
)
def test_as_bool(raw, expected):
    assert as_bool(raw) is expected


def test_as_int_and_parse_id():
    assert as_int("42") == 42
    assert as_int("x", 7) == 7
    assert parse_id("<#123>") == 123
    assert parse_id("<@!77>") == 77
    assert parse_id(" 9 ") == 9
