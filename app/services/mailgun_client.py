"""Thin Mailgun HTTP client built on ``requests``."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Any

import requests

from app.core.config import Config, get_config
from app.core.exceptions import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

MAILGUN_BASE_URLS = {
    "eu": "https://api.eu.mailgun.net",
    "us": "https://api.mailgun.net",
}
DEFAULT_REGION = "eu"


@dataclass(frozen=True)
class MailgunConfig:
    api_key: str
    domain: str
    region: str = DEFAULT_REGION

    @property
    def base_url(self) -> str:
        return MAILGUN_BASE_URLS.get(self.region, MAILGUN_BASE_URLS[DEFAULT_REGION])

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/v3/{self.domain}/messages"


@dataclass(frozen=True)
class Attachment:
    filename: str
    data: bytes
    content_type: str = "application/octet-stream"


@dataclass
class OutboundMessage:
    to: str
    from_email: str
    subject: str
    html: str
    text: str | None = None
    from_name: str | None = None
    reply_to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    delay_minutes: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def from_header(self) -> str:
        if self.from_name:
            return f"{self.from_name} <{self.from_email}>"
        return self.from_email


@dataclass(frozen=True)
class SendResult:
    provider_id: str
    message: str


def _account_value(settings: Mapping[str, Any], key: str) -> str | None:
    value = settings.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_mailgun_config(account_settings: Mapping[str, Any] | None, config: Config | None = None) -> MailgunConfig:
    """Merge environment and account Mailgun settings; environment wins.

    Raises ``ConfigurationError`` when no api key or no domain resolves.
    """
    config = config or get_config()
    settings = account_settings or {}

    api_key = config.MAILGUN_API_KEY or _account_value(settings, "mailgunApiKey")
    domain = config.MAILGUN_DOMAIN or _account_value(settings, "mailgunDomain")
    account_region = (_account_value(settings, "mailgunRegion") or "").lower()
    region = config.MAILGUN_REGION or (account_region if account_region in MAILGUN_BASE_URLS else DEFAULT_REGION)

    if not api_key or not domain:
        raise ConfigurationError("Mailgun is not configured: api key and domain are required.")
    return MailgunConfig(api_key=api_key, domain=domain, region=region)


def delivery_time(delay_minutes: int, now: datetime | None = None) -> str:
    """RFC 2822 timestamp ``delay_minutes`` from now, as Mailgun expects for ``o:deliverytime``."""
    base = now or datetime.now(timezone.utc)
    return format_datetime(base + timedelta(minutes=delay_minutes), usegmt=True)


def build_form_data(message: OutboundMessage) -> dict[str, Any]:
    data: dict[str, Any] = {
        "from": message.from_header,
        "to": message.to,
        "subject": message.subject,
        "html": message.html,
        "h:Reply-To": message.reply_to or message.from_email,
    }
    if message.cc:
        data["cc"] = message.cc
    if message.bcc:
        data["bcc"] = message.bcc
    if message.text:
        data["text"] = message.text
    if message.delay_minutes > 0:
        data["o:deliverytime"] = delivery_time(message.delay_minutes)
    for key, value in message.metadata.items():
        data[f"v:{key}"] = value if isinstance(value, str) else str(value)
    return data


def _error_message(response: requests.Response) -> str:
    if response.status_code == 401:
        return "Unauthorized: check the Mailgun API key, domain and region (US/EU)."
    if response.status_code == 403:
        return "Forbidden: check the Mailgun IP allowlist or the API key permissions."
    if response.status_code == 400:
        try:
            detail = response.json().get("message", "")
        except ValueError:
            detail = ""
        return f"Bad Request: {detail or 'check the email parameters (from, to, subject, content)'}"
    return f"Mailgun request failed with status {response.status_code}"


class MailgunClient:
    """Sends one message per call; failures surface as ``TransportError`` without retry."""

    def __init__(self, mailgun_config: MailgunConfig, timeout_seconds: int | None = None) -> None:
        self.mailgun_config = mailgun_config
        self.timeout_seconds = timeout_seconds or get_config().MAILGUN_TIMEOUT_SECONDS

    def send(self, message: OutboundMessage) -> SendResult:
        data = build_form_data(message)
        files = [
            ("attachment", (item.filename, item.data, item.content_type))
            for item in message.attachments
        ]

        logger.info(
            "mailgun.send.started",
            extra={
                "event": "mailgun.send.started",
                "domain": self.mailgun_config.domain,
                "region": self.mailgun_config.region,
                "delay_minutes": message.delay_minutes,
                "attachment_count": len(files),
            },
        )
        try:
            response = requests.post(
                self.mailgun_config.messages_url,
                auth=("api", self.mailgun_config.api_key),
                data=data,
                files=files or None,
                timeout=(5, self.timeout_seconds),
            )
        except requests.exceptions.RequestException as exc:
            logger.error(
                "mailgun.send.unreachable",
                extra={"event": "mailgun.send.unreachable", "domain": self.mailgun_config.domain, "error": str(exc)},
            )
            raise TransportError(f"Mailgun request failed: {exc}") from exc

        if not response.ok:
            message_text = _error_message(response)
            logger.error(
                "mailgun.send.rejected",
                extra={
                    "event": "mailgun.send.rejected",
                    "domain": self.mailgun_config.domain,
                    "status_code": response.status_code,
                },
            )
            raise TransportError(message_text, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError:
            body = {}
        result = SendResult(
            provider_id=body.get("id") or "",
            message=body.get("message") or "Queued. Thank you.",
        )
        logger.info(
            "mailgun.send.succeeded",
            extra={"event": "mailgun.send.succeeded", "provider_id": result.provider_id},
        )
        return result
