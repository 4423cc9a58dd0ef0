from __future__ import annotations

import logging

import pytest

import app.core.startup as startup_module


class _Cfg:
    def __init__(self, production: bool = False, mailgun: bool = True) -> None:
        self.ENV = "production" if production else "development"
        self.MAILGUN_API_KEY = "key" if mailgun else None
        self.MAILGUN_DOMAIN = "mg.example.com" if mailgun else None

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


def test_startup_passes_when_database_reachable(monkeypatch):
    monkeypatch.setattr(startup_module, "get_config", lambda: _Cfg())
    monkeypatch.setattr(startup_module, "get_active_database_url", lambda: "postgresql://db/leads")
    monkeypatch.setattr(startup_module, "verify_database_connection", lambda: True)

    startup_module.validate_startup_config()


def test_startup_raises_when_database_unreachable(monkeypatch):
    monkeypatch.setattr(startup_module, "get_config", lambda: _Cfg())
    monkeypatch.setattr(startup_module, "get_active_database_url", lambda: "postgresql://db/leads")
    monkeypatch.setattr(startup_module, "verify_database_connection", lambda: False)

    with pytest.raises(RuntimeError, match="Database connectivity check failed"):
        startup_module.validate_startup_config()


def test_startup_warns_about_sqlite_in_production(monkeypatch, caplog):
    monkeypatch.setattr(startup_module, "get_config", lambda: _Cfg(production=True, mailgun=False))
    monkeypatch.setattr(startup_module, "get_active_database_url", lambda: "sqlite:///./leadhub.db")
    monkeypatch.setattr(startup_module, "verify_database_connection", lambda: True)

    with caplog.at_level(logging.INFO, logger=startup_module.__name__):
        startup_module.validate_startup_config()

    messages = [record.getMessage() for record in caplog.records]
    assert "startup.production.sqlite_detected" in messages
    assert "startup.mailgun.env_not_configured" in messages
