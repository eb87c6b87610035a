"""Tests for environment-driven configuration."""

import os

import pytest

from coffer.config import Config


def test_defaults():
    cfg = Config()
    assert cfg.vault_dir == os.path.expanduser(Config.DEFAULT_VAULT_DIR)
    assert cfg.auto_lock_minutes == Config.DEFAULT_AUTO_LOCK_MINUTES


def test_vault_dir_from_env(monkeypatch, temp_dir):
    monkeypatch.setenv(Config.VAULT_DIR_ENV, temp_dir)
    assert Config().vault_dir == temp_dir


@pytest.mark.parametrize(
    "raw,expected",
    [("30", 30), ("0", 0), ("-5", 0), ("soon", 15), ("  ", 15)],
)
def test_auto_lock_from_env(monkeypatch, raw, expected):
    monkeypatch.setenv(Config.AUTO_LOCK_ENV, raw)
    assert Config().auto_lock_minutes == expected


def test_only_runtime_settings_on_instances():
    cfg = Config()
    assert set(vars(cfg)) == {"vault_dir", "auto_lock_minutes"}
    assert not hasattr(cfg, "db_path")
