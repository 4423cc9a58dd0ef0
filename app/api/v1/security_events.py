"""Security audit log endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from app.api.v1._authz import authorize, to_http_exception
from app.core.config import get_config
from app.core.dependencies import get_db_session
from app.core.exceptions import CRMException
from app.schemas.security_events import CleanupRequest, CleanupResponse, SecurityEventItem, SecurityEventList
from app.services.security_event_service import SecurityEventService

router = APIRouter(prefix="/security-events", tags=["security-events"])


@router.get("", response_model=SecurityEventList)
def list_security_events(
    event_type: str | None = Query(default=None, alias="eventType"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> SecurityEventList:
    try:
        user = authorize(authorization=authorization, scopes=["security.read"])
        rows, total = SecurityEventService(db).list_events(user.account_id, event_type, limit, offset)
    except CRMException as exc:
        raise to_http_exception(exc) from exc

    items = [
        SecurityEventItem(
            id=row.id,
            user_id=row.user_id,
            event_type=row.event_type,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            description=row.description,
            metadata=row.event_metadata,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            created_at=row.created_at,
        )
        for row in rows
    ]
    return SecurityEventList(items=items, total=total, limit=limit, offset=offset)


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_security_events(
    payload: CleanupRequest | None = None,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> CleanupResponse:
    older_than_days = (payload.older_than_days if payload else None) or get_config().SECURITY_EVENT_RETENTION_DAYS
    try:
        user = authorize(authorization=authorization, scopes=["security.cleanup"])
        result = SecurityEventService(db).cleanup(user.account_id, older_than_days, user_id=user.user_id)
    except CRMException as exc:
        raise to_http_exception(exc) from exc
    return CleanupResponse(**result)
