import logging

from shared import config


def test_log_channel_disabled_when_env_missing(monkeypatch):
    monkeypatch.delenv("LOG_CHANNEL_ID", raising=False)
    assert config.get_log_channel_id() is None


def test_log_channel_parses_first_integer(monkeypatch):
    monkeypatch.setenv("LOG_CHANNEL_ID", "<#123456789>")
    assert config.get_log_channel_id() == 123456789


def test_non_numeric_log_channel_warns_once(monkeypatch, caplog):
    caplog.set_level(logging.WARNING, logger="migration.config")
    monkeypatch.setattr(config, "_log_channel_warning_emitted", False)
    monkeypatch.setenv("LOG_CHANNEL_ID", "ops-channel")

    assert config.get_log_channel_id() is None
    assert config.get_log_channel_id() is None

    warnings = [r for r in caplog.records if "not numeric" in r.getMessage()]
    assert len(warnings) == 1
