from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.database.db as database
import app.services.email_service as email_module
import app.services.mailgun_client as mailgun_module
from app.auth.jwt import create_access_token
from app.core.config import get_config
from app.core.dependencies import get_db_session
from app.models import (
    Account,
    AccountSettings,
    Base,
    Communication,
    CommunicationDirection,
    CommunicationType,
    Company,
    Lead,
    User,
    Webhook,
)
from app.main import app as fastapi_app
from app.services.mailgun_client import SendResult


@pytest.fixture
def session_factory(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(database, "SessionLocal", TestingSessionLocal)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def mailgun_config():
    """Config with environment-level Mailgun credentials and no default sender."""
    return replace(
        get_config(),
        MAILGUN_API_KEY="key-test",
        MAILGUN_DOMAIN="mg.example.com",
        MAILGUN_REGION=None,
        MAILGUN_FROM_EMAIL=None,
        MAILGUN_DEFAULT_SENDER_NAME=None,
        MAILGUN_WEBHOOK_SIGNING_KEY=None,
    )


class FakeMailgunClient:
    """Records outbound messages instead of calling Mailgun."""

    def __init__(self, provider_id: str = "<20240101.abc@mg.example.com>", error: Exception | None = None) -> None:
        self.provider_id = provider_id
        self.error = error
        self.sent = []
        self.configs = []

    def factory(self, mailgun_config):
        self.configs.append(mailgun_config)
        return self

    def send(self, message):
        self.sent.append(message)
        if self.error is not None:
            raise self.error
        return SendResult(provider_id=self.provider_id, message="Queued. Thank you.")


@pytest.fixture
def fake_mailgun():
    return FakeMailgunClient()


@pytest.fixture
def make_account(db_session):
    def _make(name: str = "Muster GmbH", settings: dict | None = None) -> Account:
        account = Account(name=name)
        db_session.add(account)
        db_session.flush()
        if settings is not None:
            db_session.add(AccountSettings(account_id=account.id, settings=settings))
        db_session.commit()
        return account

    return _make


@pytest.fixture
def make_lead(db_session):
    def _make(account: Account, **fields) -> Lead:
        company = fields.pop("company", None)
        if company is None:
            company = Company(
                account_id=account.id,
                external_id=f"place-{account.id}-{fields.get('email') or fields.get('name', 'x')}",
                name=fields.pop("company_name", "Beispiel AG"),
                address="Hauptstraße 5",
                city="Berlin",
                zip_code="10115",
            )
            db_session.add(company)
            db_session.flush()
        values = {"name": "Max Mustermann", "email": "max@kunde.de", "source": "Website"}
        values.update(fields)
        lead = Lead(account_id=account.id, company_id=company.id, **values)
        db_session.add(lead)
        db_session.commit()
        return lead

    return _make


@pytest.fixture
def make_webhook(db_session):
    def _make(account: Account, **fields) -> Webhook:
        values = {"webhook_id": "wh-token-1", "name": "Landing page", "source": "Landingpage", "settings": {}}
        values.update(fields)
        webhook = Webhook(account_id=account.id, **values)
        db_session.add(webhook)
        db_session.commit()
        return webhook

    return _make


@pytest.fixture
def make_user(db_session):
    def _make(account: Account, **fields) -> User:
        values = {"email": "anna@muster.de", "name": "Anna Vertrieb", "role": "sales"}
        values.update(fields)
        user = User(account_id=account.id, **values)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def make_outbound_email(db_session):
    def _make(lead: Lead, mailgun_id: str, **fields) -> Communication:
        values = {
            "type": CommunicationType.EMAIL.value,
            "direction": CommunicationDirection.OUTBOUND.value,
            "subject": "Ihre Anfrage",
            "content": "Danke!",
            "status": "sent",
            "event_metadata": {"type": "manual"},
        }
        values.update(fields)
        communication = Communication(lead_id=lead.id, mailgun_id=mailgun_id, **values)
        db_session.add(communication)
        db_session.commit()
        return communication

    return _make


@pytest.fixture
def auth_header():
    def _make(user: User | None = None, role: str = "admin", account_id: int = 1) -> dict[str, str]:
        cfg = get_config()
        token = create_access_token(
            user_id=user.id if user else 1,
            account_id=user.account_id if user else account_id,
            role=user.role if user else role,
            secret=cfg.JWT_SECRET,
            email=user.email if user else "admin@muster.de",
            name=user.name if user else None,
            permissions_version=cfg.JWT_PERMISSIONS_VERSION,
        )
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def api_client(session_factory, mailgun_config, monkeypatch):
    """TestClient bound to the in-memory database with Mailgun calls stubbed out."""
    sent = []

    class _Response:
        status_code = 200
        ok = True

        @staticmethod
        def json():
            return {"id": f"<msg-{len(sent)}@mg.example.com>", "message": "Queued. Thank you."}

    def _post(url, **kwargs):
        sent.append({"url": url, **kwargs})
        return _Response()

    def _override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(mailgun_module.requests, "post", _post)
    monkeypatch.setattr(email_module, "get_config", lambda: mailgun_config)
    fastapi_app.dependency_overrides[get_db_session] = _override_db
    client = TestClient(fastapi_app)
    client.sent = sent
    yield client
    fastapi_app.dependency_overrides.clear()
