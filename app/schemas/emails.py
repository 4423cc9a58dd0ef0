"""Manual email send schema module."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SendEmailResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    provider_id: str = Field(alias="providerId")
    status: str
    from_email: str = Field(alias="fromEmail")
    from_name: str | None = Field(default=None, alias="fromName")
    communication_id: int | None = Field(default=None, alias="communicationId")
    message: str | None = None
