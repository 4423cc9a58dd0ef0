"""Security event schema module."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SecurityEventItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: int
    user_id: int | None = Field(default=None, alias="userId")
    event_type: str = Field(alias="eventType")
    entity_type: str | None = Field(default=None, alias="entityType")
    entity_id: str | None = Field(default=None, alias="entityId")
    description: str
    metadata: dict[str, Any] | None = None
    ip_address: str | None = Field(default=None, alias="ipAddress")
    user_agent: str | None = Field(default=None, alias="userAgent")
    created_at: datetime = Field(alias="createdAt")


class SecurityEventList(BaseModel):
    items: list[SecurityEventItem]
    total: int
    limit: int
    offset: int


class CleanupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    older_than_days: int | None = Field(default=None, alias="olderThanDays", ge=1, le=365)


class CleanupResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    deleted: int
    cutoff_date: str = Field(alias="cutoffDate")
    older_than_days: int = Field(alias="olderThanDays")
