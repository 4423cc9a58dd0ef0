"""Webhook ingestion and delivery-callback schema module."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class IngestionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    lead_id: int = Field(alias="leadId")
    company_id: int = Field(alias="companyId")
    message: str = "Lead created"


class MappingTestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    test_payload: dict[str, Any] = Field(alias="testPayload")


class MappingDetailResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mapped_from: str = Field(alias="mappedFrom")
    value: Any = None
    found: bool


class MappingTestResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    original_payload: dict[str, Any] = Field(alias="originalPayload")
    mapped_data: dict[str, Any] = Field(alias="mappedData")
    mapping_details: dict[str, MappingDetailResponse] = Field(alias="mappingDetails")
    field_mapping: dict[str, str] = Field(alias="fieldMapping")


class CallbackAck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    received: bool = True
    matched: bool = False
    new_status: str | None = Field(default=None, alias="newStatus")
    test: bool | None = None
