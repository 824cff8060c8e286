import logging

import pytest

from dcaudit.config import AuditConfig


def test_from_env_defaults(monkeypatch):
    for name in ("DCAUDIT_VERBOSE", "DCAUDIT_LOG_LEVEL", "DCAUDIT_ENCODING"):
        monkeypatch.delenv(name, raising=False)
    assert AuditConfig.from_env() == AuditConfig(verbose=False, log_level="INFO", encoding="utf-8")


def test_from_env_reads_overrides(monkeypatch):
    monkeypatch.setenv("DCAUDIT_VERBOSE", "On")
    monkeypatch.setenv("DCAUDIT_LOG_LEVEL", "debug")
    monkeypatch.setenv("DCAUDIT_ENCODING", "latin-1")
    config = AuditConfig.from_env()
    assert config.verbose is True
    assert config.logging_level() == logging.DEBUG
    assert config.encoding == "latin-1"


def test_with_overrides_ignores_none():
    config = AuditConfig(verbose=True).with_overrides(verbose=None, log_level="WARNING")
    assert config.verbose is True
    assert config.log_level == "WARNING"


def test_logging_level_rejects_unknown_names():
    with pytest.raises(ValueError):
        AuditConfig(log_level="LOUD").logging_level()
