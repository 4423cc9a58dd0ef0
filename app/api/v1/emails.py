"""Manual email send endpoint for API v1."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, Header, UploadFile
from sqlalchemy.orm import Session

from app.api.v1._authz import authorize, to_http_exception
from app.core.dependencies import get_db_session
from app.core.exceptions import CRMException, ValidationError
from app.schemas.emails import SendEmailResponse
from app.services.email_service import ActingUser, EmailService
from app.services.mailgun_client import Attachment

logger = logging.getLogger(__name__)

router = APIRouter(tags=["emails"])

MAX_ATTACHMENTS = 10
MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


def _read_attachments(uploads: list[UploadFile]) -> list[Attachment]:
    attachments: list[Attachment] = []
    for upload in uploads[:MAX_ATTACHMENTS]:
        data = upload.file.read()
        if not data or len(data) > MAX_ATTACHMENT_BYTES:
            logger.info(
                "email.attachment.skipped",
                extra={"event": "email.attachment.skipped", "attachment_name": upload.filename, "size": len(data)},
            )
            continue
        attachments.append(
            Attachment(
                filename=(upload.filename or "attachment")[:255],
                data=data,
                content_type=upload.content_type or "application/octet-stream",
            )
        )
    return attachments


@router.post("/leads/{lead_id}/send-email", response_model=SendEmailResponse)
def send_email(
    lead_id: int,
    subject: str = Form(default=""),
    content: str = Form(default=""),
    cc: str = Form(default=""),
    bcc: str = Form(default=""),
    attachments: list[UploadFile] = File(default=[]),
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> SendEmailResponse:
    try:
        user = authorize(authorization=authorization, scopes=["emails.send"])
        if not user.email:
            raise ValidationError("Acting user has no email address for Reply-To")
        result = EmailService(db).send_manual(
            account_id=user.account_id,
            lead_id=lead_id,
            user=ActingUser(user_id=user.user_id, email=user.email, name=user.name),
            subject=subject,
            content=content,
            cc=cc.strip() or None,
            bcc=bcc.strip() or None,
            attachments=_read_attachments(attachments),
        )
    except CRMException as exc:
        raise to_http_exception(exc) from exc

    return SendEmailResponse(
        provider_id=result.provider_id,
        status=result.status,
        from_email=result.from_email,
        from_name=result.from_name,
        communication_id=result.communication_id,
        message=result.provider_message,
    )
