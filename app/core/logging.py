"""Structured logging helpers for request-scoped events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Normalized context fields expected in structured logs."""

    account_id: str | None = None
    user_id: str | None = None
    lead_id: str | None = None
    message_class: str | None = None
    trace_id: str | None = None


def build_log_event(event: str, context: LogContext, **fields: Any) -> dict[str, Any]:
    """Build a normalized structured log payload."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "account_id": context.account_id,
        "user_id": context.user_id,
        "lead_id": context.lead_id,
        "message_class": context.message_class,
        "trace_id": context.trace_id,
    }
    payload.update(fields)
    return payload
