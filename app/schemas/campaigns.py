"""Campaign attribution schema module."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CampaignItem(_CamelModel):
    source: str
    source_display: str = Field(alias="sourceDisplay")
    campaign: str
    medium: str | None = None
    term: str | None = None
    content: str | None = None
    lead_count: int = Field(alias="leadCount")
    first_lead: str = Field(alias="firstLead")
    last_lead: str = Field(alias="lastLead")


class CampaignStatsResponse(_CamelModel):
    campaigns: list[CampaignItem]
    total_leads: int = Field(alias="totalLeads")
    total_campaigns: int = Field(alias="totalCampaigns")
    sources: list[str]


class TimelineEntryItem(BaseModel):
    date: str
    leads: int


class TimelineResponse(_CamelModel):
    period: str
    timeline: list[TimelineEntryItem]
    total_leads: int = Field(alias="totalLeads")


class CampaignLeadItem(_CamelModel):
    id: int
    name: str
    email: str | None = None
    phone: str | None = None
    status: str
    utm_source: str | None = Field(default=None, alias="utmSource")
    utm_medium: str | None = Field(default=None, alias="utmMedium")
    utm_campaign: str | None = Field(default=None, alias="utmCampaign")
    created_at: datetime = Field(alias="createdAt")


class CampaignLeadsResponse(_CamelModel):
    source: str
    campaign: str
    leads: list[CampaignLeadItem]
    total_leads: int = Field(alias="totalLeads")
