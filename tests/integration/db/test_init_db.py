from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import app.database.init_db as init_db_module
from app.core.dependencies import get_db_session
from app.models import Account, Base


def _engine():
    return create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)


def test_sqlite_db_path_resolution():
    assert init_db_module._sqlite_db_path("sqlite:///:memory:") is None
    assert init_db_module._sqlite_db_path("postgresql://db/leads") is None
    assert init_db_module._sqlite_db_path("sqlite:////tmp/leads.db") == Path("/tmp/leads.db")
    relative = init_db_module._sqlite_db_path("sqlite:///./leadhub.db")
    assert relative == (init_db_module.PROJECT_ROOT / "leadhub.db").resolve()


def test_create_all_schema_needs_baseline_stamp(monkeypatch):
    engine = _engine()
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(init_db_module.db_module, "get_engine", lambda: engine)

    assert init_db_module._requires_baseline_stamp() is True


def test_empty_database_needs_no_stamp(monkeypatch):
    engine = _engine()
    monkeypatch.setattr(init_db_module.db_module, "get_engine", lambda: engine)

    assert init_db_module._requires_baseline_stamp() is False


def test_request_session_dependency_uses_active_sessionmaker(session_factory):
    sessions = get_db_session()
    session = next(sessions)
    try:
        assert session.get_bind() is session_factory.kw["bind"]
        assert session.query(Account).count() == 0
    finally:
        sessions.close()
