"""Outbound email dispatch for leads: templating, sender policy and recording."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import Config, get_config
from app.core.exceptions import ValidationError
from app.core.logging import LogContext, build_log_event
from app.models import (
    Account,
    AccountSettings,
    Communication,
    CommunicationDirection,
    CommunicationStatus,
    CommunicationType,
    Lead,
    MessageClass,
    SecurityEventType,
)
from app.models.base import utcnow
from app.services.base_service import BaseService
from app.services.lead_service import LeadService
from app.services.mailgun_client import (
    Attachment,
    MailgunClient,
    MailgunConfig,
    OutboundMessage,
    resolve_mailgun_config,
)
from app.services.security_event_service import SecurityEventService
from app.utils.validators import email_domain, is_valid_email, sanitize_text

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"{{\s*([^{}]*?)\s*}}")
MAX_SUBJECT_LENGTH = 200
MAX_CONTENT_LENGTH = 50000

PostSendHook = Callable[[Session, Lead, Communication], None]
ClientFactory = Callable[[MailgunConfig], MailgunClient]


@dataclass(frozen=True)
class ActingUser:
    user_id: int | None
    email: str
    name: str | None = None


@dataclass
class DispatchResult:
    provider_id: str
    status: str
    from_email: str
    from_name: str | None
    message_class: str
    communication_id: int | None = None
    provider_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "providerId": self.provider_id,
            "status": self.status,
            "fromEmail": self.from_email,
            "fromName": self.from_name,
            "messageClass": self.message_class,
            "communicationId": self.communication_id,
            "message": self.provider_message,
        }


@dataclass
class TemplateSettings:
    subject: str = ""
    content: str = ""

    @classmethod
    def from_mapping(cls, value: Any) -> "TemplateSettings":
        if not isinstance(value, Mapping):
            return cls()
        return cls(subject=value.get("subject") or "", content=value.get("content") or "")


@dataclass
class EmailSettings:
    """Typed view over ``settings["emailSettings"]``."""

    auto_reply_enabled: bool = False
    auto_reply_webhook_ids: list[str] = field(default_factory=list)
    auto_reply_delay_minutes: int = 0
    lead_template: TemplateSettings = field(default_factory=TemplateSettings)
    owner_notification_enabled: bool = False
    owner_notification_email: str | None = None
    owner_template: TemplateSettings = field(default_factory=TemplateSettings)
    sender_email: str | None = None
    sender_name: str | None = None
    reply_to: str | None = None

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any] | None) -> "EmailSettings":
        raw = (settings or {}).get("emailSettings") or {}
        try:
            delay = int(raw.get("autoReplyDelayMinutes") or 0)
        except (TypeError, ValueError):
            delay = 0
        return cls(
            auto_reply_enabled=bool(raw.get("autoReplyEnabled")),
            auto_reply_webhook_ids=[str(item) for item in raw.get("autoReplyWebhookIds") or []],
            auto_reply_delay_minutes=max(delay, 0),
            lead_template=TemplateSettings.from_mapping(raw.get("leadTemplate")),
            owner_notification_enabled=bool(raw.get("ownerNotificationEnabled")),
            owner_notification_email=raw.get("ownerNotificationEmail") or None,
            owner_template=TemplateSettings.from_mapping(raw.get("ownerTemplate")),
            sender_email=raw.get("senderEmail") or None,
            sender_name=raw.get("senderName") or None,
            reply_to=raw.get("replyTo") or None,
        )


def render_template(template: str, variables: Mapping[str, str | None]) -> str:
    """Substitute ``{{ token }}`` placeholders case-insensitively.

    Placeholders without a matching variable are replaced by an empty string.
    Substituted values are inserted verbatim and never expanded again.
    """
    lookup = {key.lower(): value for key, value in variables.items()}

    def _replace(match: re.Match) -> str:
        return lookup.get(match.group(1).strip().lower()) or ""

    return PLACEHOLDER_RE.sub(_replace, template or "")


def template_variables(lead: Lead, recipient_name: str | None = None) -> dict[str, str]:
    name_parts = (lead.name or "").split(" ")
    company = lead.company
    latest = lead.communications[0].content if lead.communications else None
    variables = {
        "vorname": lead.first_name or name_parts[0] or "",
        "nachname": lead.last_name or " ".join(name_parts[1:]) or "",
        "name": lead.name or "",
        "email": lead.email or "",
        "telefon": lead.phone or "",
        "firma": company.name if company is not None and company.name else "",
        "adresse": company.address if company is not None and company.address else "",
        "stadt": company.city if company is not None and company.city else "",
        "plz": company.zip_code if company is not None and company.zip_code else "",
        "anfrage": latest or "",
    }
    if recipient_name:
        variables["empfaenger"] = recipient_name
    return variables


def uses_account_domain(account_settings: Mapping[str, Any], config: Config) -> bool:
    has_account_mailgun = bool(account_settings.get("mailgunApiKey") or account_settings.get("mailgunDomain"))
    return has_account_mailgun and not config.MAILGUN_DOMAIN


def resolve_from_email(
    sending_domain: str,
    account_sender: str | None,
    account_domain_in_use: bool,
    config: Config,
) -> str:
    """Pick the sender address; it must always belong to the sending domain."""
    if account_domain_in_use:
        candidate = account_sender or config.MAILGUN_FROM_EMAIL
    else:
        candidate = config.MAILGUN_FROM_EMAIL or account_sender

    fallback = f"info@{sending_domain}"
    if not candidate:
        logger.info("email.sender.fallback", extra={"event": "email.sender.fallback", "from_email": fallback})
        return fallback
    if email_domain(candidate) != sending_domain.lower():
        logger.info(
            "email.sender.domain_mismatch",
            extra={"event": "email.sender.domain_mismatch", "configured": candidate, "from_email": fallback},
        )
        return fallback
    return candidate


def resolve_from_name(
    user_name: str | None,
    account_name: str | None,
    configured_name: str | None,
    default_name: str | None = None,
) -> str | None:
    return user_name or account_name or configured_name or default_name or None


def _html_body(content: str) -> str:
    return content.replace("\n", "<br>")


def mark_lead_contacted(db: Session, lead: Lead, communication: Communication) -> None:
    """Default post-send hook for manual emails: NEW -> CONTACTED plus task completion."""
    moved = LeadService(db).mark_contacted(lead)
    context = LogContext(
        account_id=str(lead.account_id),
        lead_id=str(lead.id),
        message_class=MessageClass.MANUAL.value,
    )
    logger.info(
        "email.post_send.lead_contacted",
        extra=build_log_event(
            "email.post_send.lead_contacted",
            context,
            communication_id=communication.id,
            status_changed=moved,
        ),
    )


class EmailService(BaseService):
    """Email dispatch adapter for the three message classes."""

    def __init__(
        self,
        db: Session | None = None,
        client_factory: ClientFactory | None = None,
        post_send_hooks: Sequence[PostSendHook] | None = None,
        config: Config | None = None,
    ) -> None:
        super().__init__(db)
        self.config = config or get_config()
        self.client_factory = client_factory or (
            lambda mailgun_config: MailgunClient(mailgun_config, self.config.MAILGUN_TIMEOUT_SECONDS)
        )
        self.post_send_hooks: list[PostSendHook] = (
            list(post_send_hooks) if post_send_hooks is not None else [mark_lead_contacted]
        )

    def _account_settings(self, account_id: int) -> dict[str, Any]:
        row = self.db.query(AccountSettings).filter(AccountSettings.account_id == account_id).first()
        return dict(row.settings or {}) if row is not None else {}

    def _account_name(self, account_id: int) -> str | None:
        account = self.db.get(Account, account_id)
        return account.name if account is not None else None

    def _sender(self, mailgun_config: MailgunConfig, settings: Mapping[str, Any], email_settings: EmailSettings) -> str:
        return resolve_from_email(
            mailgun_config.domain,
            email_settings.sender_email,
            uses_account_domain(settings, self.config),
            self.config,
        )

    def send_to_lead(
        self,
        account_id: int,
        lead_id: int,
        message_class: MessageClass | str,
        recipient_email: str | None,
        recipient_name: str | None = None,
    ) -> DispatchResult:
        """Send an auto-reply to the lead or a notification to the lead owner."""
        message_class = MessageClass(message_class)
        if message_class == MessageClass.MANUAL:
            raise ValidationError("Manual emails are sent through send_manual")

        lead = LeadService(self.db).get_lead(account_id, lead_id)
        settings = self._account_settings(account_id)
        email_settings = EmailSettings.from_settings(settings)
        mailgun_config = resolve_mailgun_config(settings, self.config)

        if message_class == MessageClass.AUTO_REPLY:
            if not email_settings.auto_reply_enabled:
                raise ValidationError("Auto-reply is not enabled for this account")
            template = email_settings.lead_template
            delay_minutes = email_settings.auto_reply_delay_minutes
            variables = template_variables(lead)
        else:
            if not email_settings.owner_notification_enabled:
                raise ValidationError("Owner notification is not enabled for this account")
            template = email_settings.owner_template
            delay_minutes = 0
            variables = template_variables(lead, recipient_name)

        subject = render_template(template.subject, variables)
        content = render_template(template.content, variables)
        self._validate(subject, content, recipient_email)

        from_email = self._sender(mailgun_config, settings, email_settings)
        from_name = resolve_from_name(
            None,
            self._account_name(account_id),
            email_settings.sender_name,
            self.config.MAILGUN_DEFAULT_SENDER_NAME,
        )
        message = OutboundMessage(
            to=recipient_email.strip(),
            from_email=from_email,
            from_name=from_name,
            subject=subject,
            html=_html_body(content),
            text=content,
            reply_to=email_settings.reply_to or email_settings.sender_email,
            delay_minutes=delay_minutes,
            metadata={"leadId": lead.id, "accountId": account_id, "type": message_class.value},
        )
        sent = self.client_factory(mailgun_config).send(message)

        status = CommunicationStatus.SCHEDULED.value if delay_minutes > 0 else CommunicationStatus.SENT.value
        communication_id = None
        if message_class == MessageClass.AUTO_REPLY:
            communication = self._record(
                lead,
                subject,
                content,
                status,
                sent.provider_id,
                {
                    "type": message_class.value,
                    "recipientEmail": recipient_email,
                    "delayMinutes": delay_minutes,
                    "sentAt": utcnow().isoformat(),
                },
            )
            self.commit()
            communication_id = communication.id

        self._log_sent(lead, message_class, sent.provider_id, None)
        return DispatchResult(
            provider_id=sent.provider_id,
            status=status,
            from_email=from_email,
            from_name=from_name,
            message_class=message_class.value,
            communication_id=communication_id,
            provider_message=sent.message,
        )

    def send_manual(
        self,
        account_id: int,
        lead_id: int,
        user: ActingUser,
        subject: str,
        content: str,
        cc: str | None = None,
        bcc: str | None = None,
        attachments: Sequence[Attachment] = (),
    ) -> DispatchResult:
        """Send a user-written email and run post-send hooks in the same transaction."""
        subject = sanitize_text(subject, MAX_SUBJECT_LENGTH + 1)
        content = sanitize_text(content, MAX_CONTENT_LENGTH + 1)
        if len(subject) > MAX_SUBJECT_LENGTH:
            raise ValidationError(f"Subject is too long (max. {MAX_SUBJECT_LENGTH} characters)")
        if len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError(f"Content is too long (max. {MAX_CONTENT_LENGTH} characters)")
        for label, address in (("CC", cc), ("BCC", bcc)):
            if address and not is_valid_email(address):
                raise ValidationError(f"Invalid {label} email address")

        lead = LeadService(self.db).get_lead(account_id, lead_id)
        if not lead.email:
            raise ValidationError("Lead has no email address")
        self._validate(subject, content, lead.email)

        settings = self._account_settings(account_id)
        email_settings = EmailSettings.from_settings(settings)
        mailgun_config = resolve_mailgun_config(settings, self.config)

        from_email = self._sender(mailgun_config, settings, email_settings)
        from_name = resolve_from_name(
            user.name,
            self._account_name(account_id),
            email_settings.sender_name,
            self.config.MAILGUN_DEFAULT_SENDER_NAME,
        )
        message = OutboundMessage(
            to=lead.email,
            from_email=from_email,
            from_name=from_name,
            subject=subject,
            html=_html_body(content),
            text=content,
            reply_to=user.email,
            cc=cc or None,
            bcc=bcc or None,
            attachments=list(attachments),
            metadata={
                "leadId": lead.id,
                "accountId": account_id,
                "type": MessageClass.MANUAL.value,
                "originalFromEmail": user.email,
            },
        )
        sent = self.client_factory(mailgun_config).send(message)

        try:
            communication = self._record(
                lead,
                subject,
                content,
                CommunicationStatus.SENT.value,
                sent.provider_id,
                {"type": MessageClass.MANUAL.value, "sentAt": utcnow().isoformat()},
            )
            for hook in self.post_send_hooks:
                hook(self.db, lead, communication)
            self.commit()
        except Exception:
            self.rollback()
            logger.exception(
                "email.manual.record_failed",
                extra={"event": "email.manual.record_failed", "lead_id": lead.id, "provider_id": sent.provider_id},
            )
            raise

        self._log_sent(lead, MessageClass.MANUAL, sent.provider_id, user.user_id)
        return DispatchResult(
            provider_id=sent.provider_id,
            status=CommunicationStatus.SENT.value,
            from_email=from_email,
            from_name=from_name,
            message_class=MessageClass.MANUAL.value,
            communication_id=communication.id,
            provider_message=sent.message,
        )

    @staticmethod
    def _validate(subject: str, content: str, recipient: str | None) -> None:
        if not subject or not subject.strip():
            raise ValidationError("Email subject is empty after template substitution")
        if not content or not content.strip():
            raise ValidationError("Email content is empty after template substitution")
        if not recipient or not recipient.strip():
            raise ValidationError("Recipient address is missing")

    def _record(
        self,
        lead: Lead,
        subject: str,
        content: str,
        status: str,
        provider_id: str,
        metadata: dict[str, Any],
    ) -> Communication:
        communication = Communication(
            lead_id=lead.id,
            type=CommunicationType.EMAIL.value,
            direction=CommunicationDirection.OUTBOUND.value,
            subject=subject,
            content=content,
            status=status,
            mailgun_id=provider_id or None,
            event_metadata=metadata,
        )
        self.db.add(communication)
        self.db.flush()
        return communication

    def _log_sent(self, lead: Lead, message_class: MessageClass, provider_id: str, user_id: int | None) -> None:
        logger.info(
            "email.sent",
            extra={
                "event": "email.sent",
                "account_id": lead.account_id,
                "lead_id": lead.id,
                "message_class": message_class.value,
                "provider_id": provider_id,
            },
        )
        SecurityEventService(self.db).log_event(
            account_id=lead.account_id,
            event_type=SecurityEventType.EMAIL_SENT,
            description=f"{message_class.value} email sent to lead {lead.id}",
            user_id=user_id,
            entity_type="lead",
            entity_id=lead.id,
            metadata={"messageClass": message_class.value, "providerId": provider_id},
        )
