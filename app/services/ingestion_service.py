"""Inbound webhook lead ingestion.

One delivery to ``/webhooks/incoming/{token}`` becomes: a WebhookLog row, a
normalized Lead attached to a Company, an open contact task, an inbound note
holding the enquiry text and any configured tags. Follow-up emails are sent
after the HTTP response by ``dispatch_follow_up_emails``.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DuplicateLeadError,
    NotFoundError,
    ValidationError,
)
from app.database import db as database
from app.models import (
    AccountSettings,
    Communication,
    CommunicationDirection,
    CommunicationType,
    Company,
    Lead,
    LeadTag,
    LeadType,
    MessageClass,
    SecurityEventType,
    Tag,
    Webhook,
    WebhookLog,
)
from app.services.base_service import BaseService
from app.services.deduplication_service import DeduplicationService
from app.services.email_service import EmailService, EmailSettings
from app.services.lead_normalizer import NormalizedLead, normalize
from app.services.lead_service import LeadService
from app.services.security_event_service import SecurityEventService

logger = logging.getLogger(__name__)

PROCESSING_MARKER = "Wird verarbeitet..."
DEFAULT_SUBJECT = "Anfrage per Webhook"
PRIVACY_NOTE = "Datenschutz akzeptiert: Ja (Standard)"
DEFAULT_TAG_COLOR = "#3B82F6"


@dataclass
class IngestionResult:
    account_id: int
    webhook_pk: int
    lead_id: int
    company_id: int
    lead_email: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"success": True, "leadId": self.lead_id, "companyId": self.company_id}


def provided_secret(headers: Mapping[str, str]) -> str | None:
    """Secret sent as ``Authorization: Bearer <secret>`` or ``X-Webhook-Secret``."""
    lowered = {key.lower(): value for key, value in headers.items()}
    authorization = lowered.get("authorization")
    if authorization:
        return authorization.replace("Bearer ", "", 1)
    return lowered.get("x-webhook-secret")


def synthesize_external_id() -> str:
    return f"webhook-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def inquiry_content(message: str | None) -> str:
    if not message:
        return f"Anfrage erhalten\n{PRIVACY_NOTE}"
    return f"{message}\n\n{PRIVACY_NOTE}"


def webhook_settings(webhook: Webhook) -> dict[str, Any]:
    return dict(webhook.settings or {})


def field_mapping_for(settings: Mapping[str, Any]) -> dict[str, str]:
    """The configured fieldMapping; anything but a mapping counts as none."""
    field_mapping = settings.get("fieldMapping")
    return dict(field_mapping) if isinstance(field_mapping, Mapping) else {}


class IngestionService(BaseService):
    def get_webhook(self, webhook_token: str) -> Webhook:
        webhook = self.db.query(Webhook).filter(Webhook.webhook_id == webhook_token).first()
        if webhook is None:
            raise NotFoundError("Invalid webhook")
        return webhook

    def authenticate(
        self,
        webhook: Webhook,
        secret: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        if not webhook.is_active:
            raise AuthorizationError("Webhook is disabled")
        if webhook.secret and secret != webhook.secret:
            logger.warning(
                "webhook.auth.failed",
                extra={"event": "webhook.auth.failed", "webhook_id": webhook.id, "account_id": webhook.account_id},
            )
            SecurityEventService(self.db).log_event(
                account_id=webhook.account_id,
                event_type=SecurityEventType.WEBHOOK_AUTH_FAILED,
                description=f"Rejected delivery to webhook {webhook.name}: invalid secret",
                entity_type="webhook",
                entity_id=webhook.id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise AuthenticationError("Invalid webhook authentication")

    def ingest(
        self,
        webhook_token: str,
        payload: Mapping[str, Any],
        secret: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> IngestionResult:
        webhook = self.get_webhook(webhook_token)
        self.authenticate(webhook, secret, ip_address, user_agent)

        log = WebhookLog(webhook_id=webhook.id, payload=dict(payload), success=False, error=PROCESSING_MARKER)
        self.db.add(log)
        self.commit()
        log_id = log.id

        try:
            result = self._create_lead(webhook, payload, log)
        except Exception as exc:
            self.rollback()
            self._mark_failed(log_id, str(exc))
            raise

        logger.info(
            "webhook.lead.created",
            extra={
                "event": "webhook.lead.created",
                "account_id": result.account_id,
                "webhook_id": webhook.id,
                "lead_id": result.lead_id,
            },
        )
        return result

    def _create_lead(self, webhook: Webhook, payload: Mapping[str, Any], log: WebhookLog) -> IngestionResult:
        settings = webhook_settings(webhook)
        normalized = normalize(payload, field_mapping_for(settings), webhook.source).lead

        if settings.get("checkDuplicates") is not False:
            existing = DeduplicationService(self.db).find_duplicate_lead(
                webhook.account_id, normalized.email, normalized.phone
            )
            if existing is not None:
                raise DuplicateLeadError("Lead already exists", existing_lead_id=existing.id)

        company = self._company_for(webhook.account_id, normalized)

        lead = Lead(account_id=webhook.account_id, company_id=company.id, **normalized.lead_fields())
        lead.type = LeadType.CONTACT.value
        self.db.add(lead)
        self.db.flush()

        LeadService(self.db).create_contact_task(lead)
        self.db.add(
            Communication(
                lead_id=lead.id,
                type=CommunicationType.NOTE.value,
                direction=CommunicationDirection.INBOUND.value,
                subject=normalized.subject or DEFAULT_SUBJECT,
                content=inquiry_content(normalized.message),
            )
        )
        self._apply_tags(webhook.account_id, lead, settings.get("autoTags"))

        log.success = True
        log.error = None
        log.lead_id = lead.id
        self.commit()

        return IngestionResult(
            account_id=webhook.account_id,
            webhook_pk=webhook.id,
            lead_id=lead.id,
            company_id=company.id,
            lead_email=lead.email,
        )

    def _company_for(self, account_id: int, normalized: NormalizedLead) -> Company:
        external_id = normalized.external_id
        existing = DeduplicationService(self.db).find_company_by_external_id(external_id)
        if existing is not None and existing.account_id == account_id:
            return existing
        if existing is not None or not external_id:
            # Unknown or foreign ids get a synthesized anchor of their own.
            external_id = synthesize_external_id()

        company = Company(account_id=account_id, external_id=external_id, **normalized.company_fields())
        self.db.add(company)
        self.db.flush()
        return company

    def _apply_tags(self, account_id: int, lead: Lead, tag_names: Any) -> None:
        if not isinstance(tag_names, list):
            return
        names = list(dict.fromkeys(str(raw_name).strip() for raw_name in tag_names))
        for name in names:
            if not name:
                continue
            tag = self.db.query(Tag).filter(Tag.account_id == account_id, Tag.name == name).first()
            if tag is None:
                tag = Tag(account_id=account_id, name=name, color=DEFAULT_TAG_COLOR)
                self.db.add(tag)
                self.db.flush()
            linked = (
                self.db.query(LeadTag)
                .filter(LeadTag.lead_id == lead.id, LeadTag.tag_id == tag.id)
                .first()
            )
            if linked is None:
                self.db.add(LeadTag(lead_id=lead.id, tag_id=tag.id))
        self.db.flush()

    def _mark_failed(self, log_id: int, error: str) -> None:
        log = self.db.get(WebhookLog, log_id)
        if log is None:
            return
        log.success = False
        log.error = error[:2000]
        self.commit()
        logger.warning(
            "webhook.lead.failed",
            extra={"event": "webhook.lead.failed", "webhook_log_id": log_id, "error": error},
        )

    def test_mapping(self, account_id: int, webhook_id: int, test_payload: Any) -> dict[str, Any]:
        """Dry-run normalization for a stored webhook; nothing is persisted."""
        webhook = (
            self.db.query(Webhook)
            .filter(Webhook.id == webhook_id, Webhook.account_id == account_id)
            .first()
        )
        if webhook is None:
            raise NotFoundError(f"Webhook {webhook_id} not found")
        if not isinstance(test_payload, Mapping) or not test_payload:
            raise ValidationError("testPayload is required")

        field_mapping = field_mapping_for(webhook_settings(webhook))
        result = normalize(test_payload, field_mapping, webhook.source)
        return {
            "success": True,
            "originalPayload": dict(test_payload),
            "mappedData": result.lead.to_camel_dict(),
            "mappingDetails": result.details_as_dict(),
            "fieldMapping": field_mapping,
        }


def planned_follow_ups(db: Session, result: IngestionResult) -> list[tuple[MessageClass, str]]:
    """Which follow-up emails the account settings ask for after an ingestion."""
    row = db.query(AccountSettings).filter(AccountSettings.account_id == result.account_id).first()
    if row is None:
        return []
    email_settings = EmailSettings.from_settings(row.settings)

    planned: list[tuple[MessageClass, str]] = []
    webhook = db.get(Webhook, result.webhook_pk)
    selected_ids = set(email_settings.auto_reply_webhook_ids)
    webhook_selected = webhook is not None and (
        str(webhook.id) in selected_ids or webhook.webhook_id in selected_ids
    )
    if email_settings.auto_reply_enabled and webhook_selected and result.lead_email:
        planned.append((MessageClass.AUTO_REPLY, result.lead_email))
    if email_settings.owner_notification_enabled and email_settings.owner_notification_email:
        planned.append((MessageClass.OWNER_NOTIFICATION, email_settings.owner_notification_email))
    return planned


def dispatch_follow_up_emails(
    result: IngestionResult,
    session_factory: Callable[[], Session] | None = None,
) -> None:
    """Send auto-reply and owner notification; failures are logged, never raised.

    Runs after the webhook response, on a session of its own.
    """
    factory = session_factory or database.SessionLocal
    db = factory()
    try:
        for message_class, recipient in planned_follow_ups(db, result):
            try:
                EmailService(db).send_to_lead(result.account_id, result.lead_id, message_class, recipient)
            except Exception:
                db.rollback()
                logger.exception(
                    "webhook.follow_up.failed",
                    extra={
                        "event": "webhook.follow_up.failed",
                        "lead_id": result.lead_id,
                        "message_class": message_class.value,
                    },
                )
    except SQLAlchemyError:
        logger.exception(
            "webhook.follow_up.settings_failed",
            extra={"event": "webhook.follow_up.settings_failed", "lead_id": result.lead_id},
        )
    finally:
        db.close()
