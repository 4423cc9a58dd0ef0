"""Reconcile Mailgun delivery callbacks with stored outbound communications.

Mailgun posts one callback per delivery event. Callbacks arrive as JSON
(``{"signature": {...}, "event-data": {...}}``), as legacy URL-encoded forms,
or as a form whose single field holds the JSON document. Every shape is
normalized to a ``CallbackEvent`` before it touches the database.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Union
from urllib.parse import parse_qsl

from sqlalchemy.orm import Session

from app.core.config import Config, get_config
from app.core.exceptions import AuthenticationError, ValidationError
from app.models import Communication, CommunicationDirection, CommunicationStatus, CommunicationType
from app.services.base_service import BaseService
from app.utils.validators import strip_angle_brackets

logger = logging.getLogger(__name__)

MESSAGE_ID_KEYS = ("message-id", "Message-Id", "messageId")


@dataclass(frozen=True)
class CallbackEvent:
    event_type: str | None
    message_id: str | None
    recipient: str
    timestamp: str | None
    url: str | None = None
    code: str | None = None
    reason: str | None = None
    failure_reason: str | None = None


@dataclass
class ReconciliationResult:
    matched: bool
    new_status: str | None = None
    test: bool = False
    communication_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"matched": self.matched}
        if self.new_status is not None:
            payload["newStatus"] = self.new_status
        if self.test:
            payload["test"] = True
        return payload


# Typed per-status metadata. Field names map to the persisted camelCase keys.


@dataclass(frozen=True)
class DeliveredFields:
    status: ClassVar[str] = CommunicationStatus.DELIVERED.value
    delivered_at: str

    def merge_into(self, metadata: dict[str, Any]) -> None:
        metadata["deliveredAt"] = self.delivered_at


@dataclass(frozen=True)
class OpenedFields:
    status: ClassVar[str] = CommunicationStatus.OPENED.value
    opened_at: str

    def merge_into(self, metadata: dict[str, Any]) -> None:
        metadata["openedAt"] = metadata.get("openedAt") or self.opened_at
        metadata["openedCount"] = int(metadata.get("openedCount") or 0) + 1


@dataclass(frozen=True)
class ClickedFields:
    status: ClassVar[str] = CommunicationStatus.CLICKED.value
    clicked_at: str
    clicked_url: str | None

    def merge_into(self, metadata: dict[str, Any]) -> None:
        metadata["clickedAt"] = metadata.get("clickedAt") or self.clicked_at
        metadata["clickedCount"] = int(metadata.get("clickedCount") or 0) + 1
        metadata["clickedUrl"] = self.clicked_url or metadata.get("clickedUrl")


@dataclass(frozen=True)
class BouncedFields:
    status: ClassVar[str] = CommunicationStatus.BOUNCED.value
    bounced_at: str
    bounce_code: str
    bounce_reason: str

    def merge_into(self, metadata: dict[str, Any]) -> None:
        metadata["bouncedAt"] = self.bounced_at
        metadata["bounceCode"] = self.bounce_code
        metadata["bounceReason"] = self.bounce_reason


@dataclass(frozen=True)
class FailedFields:
    status: ClassVar[str] = CommunicationStatus.FAILED.value
    failed_at: str
    failure_reason: str

    def merge_into(self, metadata: dict[str, Any]) -> None:
        metadata["failedAt"] = self.failed_at
        metadata["failureReason"] = self.failure_reason


@dataclass(frozen=True)
class ComplainedFields:
    status: ClassVar[str] = CommunicationStatus.COMPLAINED.value
    complained_at: str

    def merge_into(self, metadata: dict[str, Any]) -> None:
        metadata["complainedAt"] = self.complained_at


@dataclass(frozen=True)
class UnsubscribedFields:
    status: ClassVar[str] = CommunicationStatus.UNSUBSCRIBED.value
    unsubscribed_at: str

    def merge_into(self, metadata: dict[str, Any]) -> None:
        metadata["unsubscribedAt"] = self.unsubscribed_at


EventFields = Union[
    DeliveredFields,
    OpenedFields,
    ClickedFields,
    BouncedFields,
    FailedFields,
    ComplainedFields,
    UnsubscribedFields,
]


def _unwrap_single_json_field(fields: dict[str, Any]) -> dict[str, Any]:
    if len(fields) == 1:
        only = next(iter(fields.values()))
        if isinstance(only, str):
            try:
                parsed = json.loads(only)
            except ValueError:
                return fields
            if isinstance(parsed, dict):
                return parsed
    return fields


def parse_form_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize already-decoded form fields (multipart or urlencoded)."""
    return _unwrap_single_json_field(dict(fields))


def parse_callback(body: bytes, content_type: str | None) -> dict[str, Any]:
    """Decode a raw callback body into a dict, whatever encoding Mailgun used."""
    content_type = (content_type or "").lower()
    text = body.decode("utf-8", errors="replace")

    if "application/json" in content_type:
        try:
            decoded = json.loads(text or "{}")
        except ValueError as exc:
            raise ValidationError("Callback body is not valid JSON") from exc
    elif "application/x-www-form-urlencoded" in content_type:
        decoded = parse_form_fields(dict(parse_qsl(text, keep_blank_values=True)))
    else:
        try:
            decoded = json.loads(text)
        except ValueError:
            decoded = parse_form_fields(dict(parse_qsl(text, keep_blank_values=True)))

    if not isinstance(decoded, dict):
        raise ValidationError("Callback body must be an object")
    return decoded


def _signature_block(body: Mapping[str, Any]) -> dict[str, Any]:
    signature = body.get("signature")
    if isinstance(signature, Mapping):
        return dict(signature)
    # Legacy form callbacks carry the signature fields at the top level.
    if isinstance(signature, str) and "token" in body and "timestamp" in body:
        return {"timestamp": body.get("timestamp"), "token": body.get("token"), "signature": signature}
    return {}


def _first_text(*values: Any) -> str | None:
    for value in values:
        if value is None or value == "":
            continue
        return str(value)
    return None


def extract_event(body: Mapping[str, Any]) -> CallbackEvent:
    event_data = body.get("event-data")
    if not isinstance(event_data, Mapping) or not event_data:
        event_data = body
    signature = _signature_block(body)

    message = event_data.get("message")
    headers = message.get("headers") if isinstance(message, Mapping) else None
    headers = headers if isinstance(headers, Mapping) else {}
    message_id = _first_text(
        headers.get("message-id"),
        headers.get("Message-Id"),
        *(event_data.get(key) for key in MESSAGE_ID_KEYS),
    )
    delivery_status = event_data.get("delivery-status")
    delivery_status = delivery_status if isinstance(delivery_status, Mapping) else {}

    return CallbackEvent(
        event_type=_first_text(event_data.get("event")),
        message_id=message_id,
        recipient=_first_text(event_data.get("recipient")) or "",
        timestamp=_first_text(event_data.get("timestamp"), signature.get("timestamp")),
        url=_first_text(event_data.get("url")),
        code=_first_text(event_data.get("code"), event_data.get("bounce-code"), delivery_status.get("code")),
        reason=_first_text(event_data.get("reason"), event_data.get("bounce-reason")),
        failure_reason=_first_text(event_data.get("reason"), event_data.get("failure-reason")),
    )


def verify_signature(body: Mapping[str, Any], signing_key: str | None) -> None:
    """Check Mailgun's HMAC signature when a signing key is configured."""
    if not signing_key:
        return
    signature = _signature_block(body)
    if not signature:
        return
    timestamp = str(signature.get("timestamp") or "")
    token = str(signature.get("token") or "")
    expected = hmac.new(signing_key.encode("utf-8"), f"{timestamp}{token}".encode("utf-8"), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, str(signature.get("signature") or "")):
        raise AuthenticationError("Invalid Mailgun callback signature")


def event_time(timestamp: str | None, now: datetime | None = None) -> str:
    """ISO-8601 time for a unix-seconds timestamp; current time when missing or invalid."""
    if timestamp:
        try:
            return datetime.fromtimestamp(int(float(timestamp)), tz=timezone.utc).isoformat()
        except (TypeError, ValueError, OverflowError, OSError):
            pass
    return (now or datetime.now(timezone.utc)).isoformat()


def event_fields(event: CallbackEvent, now: datetime | None = None) -> EventFields | None:
    """Map one callback to its typed metadata update; None for unknown event types."""
    at = event_time(event.timestamp, now)
    event_type = event.event_type
    if event_type == "delivered":
        return DeliveredFields(delivered_at=at)
    if event_type == "opened":
        return OpenedFields(opened_at=at)
    if event_type == "clicked":
        return ClickedFields(clicked_at=at, clicked_url=event.url)
    if event_type in {"bounced", "permanent_fail"}:
        return BouncedFields(bounced_at=at, bounce_code=event.code or "", bounce_reason=event.reason or "")
    if event_type in {"failed", "temporary_fail"}:
        return FailedFields(failed_at=at, failure_reason=event.failure_reason or "")
    if event_type == "complained":
        return ComplainedFields(complained_at=at)
    if event_type == "unsubscribed":
        return UnsubscribedFields(unsubscribed_at=at)
    return None


class DeliveryEventService(BaseService):
    def __init__(self, db: Session | None = None, config: Config | None = None) -> None:
        super().__init__(db)
        self.config = config or get_config()

    def find_communication(self, message_id: str) -> Communication | None:
        normalized = strip_angle_brackets(message_id)
        candidates = {normalized, f"<{normalized}>", message_id}
        return (
            self.db.query(Communication)
            .filter(
                Communication.mailgun_id.in_(candidates),
                Communication.type == CommunicationType.EMAIL.value,
                Communication.direction == CommunicationDirection.OUTBOUND.value,
            )
            .order_by(Communication.id.asc())
            .first()
        )

    def apply_event(self, body: Mapping[str, Any]) -> ReconciliationResult:
        """Apply one decoded callback.

        Missing event type raises ``ValidationError``. A missing message id is a
        test ping; an unknown message id or event type is acknowledged without
        any write. Later events overwrite the status (last event wins).
        """
        verify_signature(body, self.config.MAILGUN_WEBHOOK_SIGNING_KEY)
        event = extract_event(body)

        if not event.event_type:
            raise ValidationError("Missing required field: event")
        if not event.message_id:
            logger.info("mailgun.callback.test", extra={"event": "mailgun.callback.test", "event_type": event.event_type})
            return ReconciliationResult(matched=False, test=True)

        communication = self.find_communication(event.message_id)
        if communication is None:
            logger.info(
                "mailgun.callback.unmatched",
                extra={"event": "mailgun.callback.unmatched", "message_id": event.message_id},
            )
            return ReconciliationResult(matched=False)

        fields = event_fields(event)
        if fields is None:
            logger.info(
                "mailgun.callback.ignored",
                extra={"event": "mailgun.callback.ignored", "event_type": event.event_type},
            )
            return ReconciliationResult(matched=True, communication_id=communication.id)

        metadata = dict(communication.event_metadata or {})
        fields.merge_into(metadata)
        # Reassign so the JSON column is flagged dirty.
        communication.event_metadata = metadata
        communication.status = fields.status
        self.commit()

        logger.info(
            "mailgun.callback.applied",
            extra={
                "event": "mailgun.callback.applied",
                "communication_id": communication.id,
                "status": fields.status,
            },
        )
        return ReconciliationResult(matched=True, new_status=fields.status, communication_id=communication.id)
