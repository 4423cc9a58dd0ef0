"""Campaign attribution endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from app.api.v1._authz import authorize, to_http_exception
from app.core.dependencies import get_db_session
from app.core.exceptions import CRMException
from app.schemas.campaigns import CampaignLeadItem, CampaignLeadsResponse, CampaignStatsResponse, TimelineResponse
from app.services.campaign_service import CampaignService

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


@router.get("/stats", response_model=CampaignStatsResponse)
def campaign_stats(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> CampaignStatsResponse:
    try:
        user = authorize(authorization=authorization, scopes=["campaigns.read"])
        stats = CampaignService(db).stats(user.account_id)
    except CRMException as exc:
        raise to_http_exception(exc) from exc
    return CampaignStatsResponse(**stats)


@router.get("/{source}/{campaign}/timeline", response_model=TimelineResponse)
def campaign_timeline(
    source: str,
    campaign: str,
    period: str = Query(default="day"),
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> TimelineResponse:
    try:
        user = authorize(authorization=authorization, scopes=["campaigns.read"])
        timeline = CampaignService(db).timeline(user.account_id, source, campaign, period)
    except CRMException as exc:
        raise to_http_exception(exc) from exc
    return TimelineResponse(**timeline)


@router.get("/{source}/{campaign}/leads", response_model=CampaignLeadsResponse)
def campaign_leads(
    source: str,
    campaign: str,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> CampaignLeadsResponse:
    try:
        user = authorize(authorization=authorization, scopes=["campaigns.read"])
        leads = CampaignService(db).campaign_leads(user.account_id, source, campaign)
    except CRMException as exc:
        raise to_http_exception(exc) from exc

    items = [
        CampaignLeadItem(
            id=lead.id,
            name=lead.name,
            email=lead.email,
            phone=lead.phone,
            status=lead.status,
            utm_source=lead.utm_source,
            utm_medium=lead.utm_medium,
            utm_campaign=lead.utm_campaign,
            created_at=lead.created_at,
        )
        for lead in leads
    ]
    return CampaignLeadsResponse(source=source, campaign=campaign, leads=items, total_leads=len(items))
