"""Append-only security audit log with age-based retention."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import ValidationError
from app.models import SecurityEvent, SecurityEventType
from app.models.base import utcnow
from app.services.base_service import BaseService

logger = logging.getLogger(__name__)

CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip", "x-client-ip")
MAX_RETENTION_DAYS = 365


def client_ip(headers: Mapping[str, str]) -> str | None:
    """First client address found in the usual proxy headers."""
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in CLIENT_IP_HEADERS:
        value = lowered.get(name)
        if not value:
            continue
        if name == "x-forwarded-for":
            first = value.split(",")[0].strip()
            return first or None
        return value.strip()
    return None


def user_agent(headers: Mapping[str, str]) -> str | None:
    lowered = {key.lower(): value for key, value in headers.items()}
    return lowered.get("user-agent") or None


class SecurityEventService(BaseService):
    def log_event(
        self,
        account_id: int,
        event_type: SecurityEventType | str,
        description: str,
        user_id: int | None = None,
        entity_type: str | None = None,
        entity_id: str | int | None = None,
        metadata: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SecurityEvent | None:
        """Persist one audit event.

        Audit failures never break the calling operation: they are logged and
        ``None`` is returned. Call this only after the caller's own commit.
        """
        event = SecurityEvent(
            account_id=account_id,
            user_id=user_id,
            event_type=event_type.value if isinstance(event_type, SecurityEventType) else str(event_type),
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            description=description,
            event_metadata=metadata or None,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
        )
        try:
            self.db.add(event)
            self.commit()
        except SQLAlchemyError:
            logger.exception(
                "security_event.log.failed",
                extra={"event": "security_event.log.failed", "account_id": account_id, "event_type": event.event_type},
            )
            return None
        return event

    def list_events(
        self,
        account_id: int,
        event_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[SecurityEvent], int]:
        query = self.db.query(SecurityEvent).filter(SecurityEvent.account_id == account_id)
        if event_type:
            query = query.filter(SecurityEvent.event_type == event_type)
        total = query.count()
        rows = (
            query.order_by(SecurityEvent.created_at.desc(), SecurityEvent.id.desc())
            .offset(max(offset, 0))
            .limit(max(min(limit, 500), 1))
            .all()
        )
        return rows, total

    def cleanup(self, account_id: int, older_than_days: int, user_id: int | None = None) -> dict[str, Any]:
        """Delete this account's events older than ``older_than_days`` days."""
        if older_than_days < 1 or older_than_days > MAX_RETENTION_DAYS:
            raise ValidationError(f"older_than_days must be between 1 and {MAX_RETENTION_DAYS}")

        cutoff = utcnow() - timedelta(days=older_than_days)
        deleted = (
            self.db.query(SecurityEvent)
            .filter(SecurityEvent.account_id == account_id, SecurityEvent.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.commit()

        logger.info(
            "security_event.cleanup.completed",
            extra={"event": "security_event.cleanup.completed", "account_id": account_id, "deleted": deleted},
        )
        self.log_event(
            account_id=account_id,
            event_type=SecurityEventType.SECURITY_EVENTS_CLEANUP,
            description=f"{deleted} security events older than {older_than_days} days deleted",
            user_id=user_id,
            metadata={"deleted": deleted, "olderThanDays": older_than_days, "cutoffDate": cutoff.isoformat()},
        )
        return {"deleted": deleted, "cutoffDate": cutoff.isoformat(), "olderThanDays": older_than_days}
