"""Pydantic schema package for API contracts."""

from app.schemas.campaigns import (
    CampaignItem,
    CampaignLeadItem,
    CampaignLeadsResponse,
    CampaignStatsResponse,
    TimelineEntryItem,
    TimelineResponse,
)
from app.schemas.common import ErrorEnvelope
from app.schemas.emails import SendEmailResponse
from app.schemas.security_events import CleanupRequest, CleanupResponse, SecurityEventItem, SecurityEventList
from app.schemas.webhooks import (
    CallbackAck,
    IngestionResponse,
    MappingDetailResponse,
    MappingTestRequest,
    MappingTestResponse,
)

__all__ = [
    "CallbackAck",
    "CampaignItem",
    "CampaignLeadItem",
    "CampaignLeadsResponse",
    "CampaignStatsResponse",
    "CleanupRequest",
    "CleanupResponse",
    "ErrorEnvelope",
    "IngestionResponse",
    "MappingDetailResponse",
    "MappingTestRequest",
    "MappingTestResponse",
    "SecurityEventItem",
    "SecurityEventList",
    "SendEmailResponse",
    "TimelineEntryItem",
    "TimelineResponse",
]
