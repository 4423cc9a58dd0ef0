"""Inbound lead webhooks and Mailgun delivery callbacks for API v1."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request, status
from sqlalchemy.orm import Session

from app.api.v1._authz import authorize, to_http_exception
from app.core.dependencies import get_db_session
from app.core.exceptions import CRMException, ValidationError
from app.schemas.common import ErrorEnvelope
from app.schemas.webhooks import CallbackAck, IngestionResponse, MappingTestRequest, MappingTestResponse
from app.services.delivery_event_service import DeliveryEventService, parse_callback, parse_form_fields
from app.services.ingestion_service import IngestionService, dispatch_follow_up_emails, provided_secret
from app.services.security_event_service import client_ip, user_agent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def _form_fields(request: Request) -> dict[str, Any]:
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


async def read_lead_payload(request: Request) -> dict[str, Any]:
    """Inbound lead payload from a JSON, urlencoded or multipart body."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise to_http_exception(ValidationError("Request body is not valid JSON")) from exc
    elif any(kind in content_type for kind in FORM_CONTENT_TYPES):
        payload = await _form_fields(request)
    else:
        body = await request.body()
        try:
            payload = json.loads(body or b"{}")
        except ValueError:
            payload = await _form_fields(request)
    if not isinstance(payload, dict):
        raise to_http_exception(ValidationError("Payload must be an object"))
    return payload


async def read_callback_body(request: Request) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    try:
        if "multipart/form-data" in content_type:
            return parse_form_fields(await _form_fields(request))
        return parse_callback(await request.body(), content_type)
    except ValidationError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    "/incoming/{webhook_id}",
    response_model=IngestionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={401: {"model": ErrorEnvelope}, 403: {"model": ErrorEnvelope}, 404: {"model": ErrorEnvelope}},
)
def receive_lead(
    webhook_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    payload: dict[str, Any] = Depends(read_lead_payload),
    db: Session = Depends(get_db_session),
) -> IngestionResponse:
    headers = dict(request.headers)
    try:
        result = IngestionService(db).ingest(
            webhook_id,
            payload,
            secret=provided_secret(headers),
            ip_address=client_ip(headers),
            user_agent=user_agent(headers),
        )
    except CRMException as exc:
        raise to_http_exception(exc) from exc

    background_tasks.add_task(dispatch_follow_up_emails, result)
    return IngestionResponse(lead_id=result.lead_id, company_id=result.company_id)


@router.post("/mailgun", response_model=CallbackAck, response_model_exclude_none=True)
def mailgun_callback(
    body: dict[str, Any] = Depends(read_callback_body),
    db: Session = Depends(get_db_session),
) -> CallbackAck:
    try:
        result = DeliveryEventService(db).apply_event(body)
    except CRMException as exc:
        raise to_http_exception(exc) from exc
    return CallbackAck(**result.to_dict())


@router.get("/mailgun")
def mailgun_verification() -> dict:
    return {"status": "ok"}


@router.post("/{webhook_pk}/test", response_model=MappingTestResponse)
def test_webhook_mapping(
    webhook_pk: int,
    payload: MappingTestRequest,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> MappingTestResponse:
    try:
        user = authorize(authorization=authorization, scopes=["webhooks.manage"])
        result = IngestionService(db).test_mapping(user.account_id, webhook_pk, payload.test_payload)
    except CRMException as exc:
        raise to_http_exception(exc) from exc
    return MappingTestResponse(**result)
