from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import pytest
import requests

import app.services.mailgun_client as mailgun_module
from app.core.config import get_config
from app.core.exceptions import ConfigurationError, TransportError
from app.services.mailgun_client import (
    Attachment,
    MailgunClient,
    MailgunConfig,
    OutboundMessage,
    build_form_data,
    delivery_time,
    resolve_mailgun_config,
)


class _Response:
    def __init__(self, status_code: int, body: dict | None = None) -> None:
        self.status_code = status_code
        self._body = body

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


def _env(**overrides):
    values = {
        "MAILGUN_API_KEY": None,
        "MAILGUN_DOMAIN": None,
        "MAILGUN_REGION": None,
    }
    values.update(overrides)
    return replace(get_config(), **values)


def _message(**overrides) -> OutboundMessage:
    values = {
        "to": "erika@kunde.de",
        "from_email": "info@mg.example.com",
        "subject": "Ihre Anfrage",
        "html": "Hallo<br>Erika",
    }
    values.update(overrides)
    return OutboundMessage(**values)


def test_resolve_config_prefers_environment():
    cfg = resolve_mailgun_config(
        {"mailgunApiKey": "acct-key", "mailgunDomain": "acct.example.com", "mailgunRegion": "us"},
        _env(MAILGUN_API_KEY="env-key", MAILGUN_DOMAIN="env.example.com"),
    )
    assert cfg == MailgunConfig(api_key="env-key", domain="env.example.com", region="us")


def test_resolve_config_uses_account_settings_and_default_region():
    cfg = resolve_mailgun_config({"mailgunApiKey": "acct-key", "mailgunDomain": "acct.example.com"}, _env())
    assert cfg.domain == "acct.example.com"
    assert cfg.region == "eu"
    assert cfg.messages_url == "https://api.eu.mailgun.net/v3/acct.example.com/messages"


def test_resolve_config_without_credentials_raises():
    with pytest.raises(ConfigurationError):
        resolve_mailgun_config({"mailgunDomain": "acct.example.com"}, _env())


def test_delivery_time_is_rfc2822():
    now = datetime(2024, 5, 6, 10, 0, tzinfo=timezone.utc)
    assert delivery_time(15, now) == "Mon, 06 May 2024 10:15:00 GMT"


def test_build_form_data_includes_optional_fields():
    data = build_form_data(
        _message(
            from_name="Muster GmbH",
            reply_to="anna@muster.de",
            cc="chef@muster.de",
            text="Hallo\nErika",
            delay_minutes=5,
            metadata={"leadId": 7, "type": "auto-reply"},
        )
    )

    assert data["from"] == "Muster GmbH <info@mg.example.com>"
    assert data["h:Reply-To"] == "anna@muster.de"
    assert data["cc"] == "chef@muster.de"
    assert "bcc" not in data
    assert data["text"] == "Hallo\nErika"
    assert "o:deliverytime" in data
    assert data["v:leadId"] == "7"
    assert data["v:type"] == "auto-reply"


def test_build_form_data_reply_to_defaults_to_sender():
    data = build_form_data(_message())
    assert data["from"] == "info@mg.example.com"
    assert data["h:Reply-To"] == "info@mg.example.com"
    assert "o:deliverytime" not in data


def test_send_posts_form_with_basic_auth(monkeypatch):
    calls = []

    def _post(url, **kwargs):
        calls.append((url, kwargs))
        return _Response(200, {"id": "<abc@mg.example.com>", "message": "Queued. Thank you."})

    monkeypatch.setattr(mailgun_module.requests, "post", _post)
    client = MailgunClient(MailgunConfig(api_key="key", domain="mg.example.com", region="us"), timeout_seconds=7)

    result = client.send(_message(attachments=[Attachment("angebot.pdf", b"%PDF", "application/pdf")]))

    assert result.provider_id == "<abc@mg.example.com>"
    url, kwargs = calls[0]
    assert url == "https://api.mailgun.net/v3/mg.example.com/messages"
    assert kwargs["auth"] == ("api", "key")
    assert kwargs["timeout"] == (5, 7)
    assert kwargs["files"] == [("attachment", ("angebot.pdf", b"%PDF", "application/pdf"))]


@pytest.mark.parametrize(
    ("status_code", "body", "fragment"),
    [
        (401, None, "Unauthorized"),
        (403, None, "Forbidden"),
        (400, {"message": "to parameter is not a valid address"}, "not a valid address"),
        (500, None, "status 500"),
    ],
)
def test_send_rejection_raises_transport_error(monkeypatch, status_code, body, fragment):
    monkeypatch.setattr(mailgun_module.requests, "post", lambda url, **kwargs: _Response(status_code, body))
    client = MailgunClient(MailgunConfig(api_key="key", domain="mg.example.com"), timeout_seconds=7)

    with pytest.raises(TransportError, match=fragment) as exc:
        client.send(_message())
    assert exc.value.status_code == status_code


def test_send_network_failure_raises_transport_error(monkeypatch):
    def _post(url, **kwargs):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(mailgun_module.requests, "post", _post)
    client = MailgunClient(MailgunConfig(api_key="key", domain="mg.example.com"), timeout_seconds=7)

    with pytest.raises(TransportError, match="refused"):
        client.send(_message())
