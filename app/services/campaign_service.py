"""Campaign attribution from lead UTM parameters."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol

from sqlalchemy import func, or_

from app.core.exceptions import ValidationError
from app.models import Lead
from app.services.base_service import BaseService

logger = logging.getLogger(__name__)

UNKNOWN_SOURCE = "Unbekannt"
NO_CAMPAIGN = "Ohne Kampagne"
TIMELINE_PERIODS = ("day", "week", "month")

# Checked in order; the first family whose token occurs in the source wins.
SOURCE_FAMILIES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("facebook", "meta"), "Meta (Facebook)"),
    (("google",), "Google"),
    (("linkedin",), "LinkedIn"),
    (("tiktok",), "TikTok"),
)


class AttributedLead(Protocol):
    utm_source: str | None
    utm_medium: str | None
    utm_campaign: str | None
    utm_term: str | None
    utm_content: str | None
    created_at: datetime


@dataclass
class Campaign:
    source: str
    source_display: str
    campaign: str
    medium: str | None
    term: str | None
    content: str | None
    lead_count: int
    first_lead: datetime
    last_lead: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "sourceDisplay": self.source_display,
            "campaign": self.campaign,
            "medium": self.medium,
            "term": self.term,
            "content": self.content,
            "leadCount": self.lead_count,
            "firstLead": self.first_lead.isoformat(),
            "lastLead": self.last_lead.isoformat(),
        }


@dataclass(frozen=True)
class TimelineEntry:
    date: str
    leads: int

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "leads": self.leads}


def _family_tokens(source: str) -> tuple[str, ...] | None:
    lowered = source.lower()
    for tokens, _ in SOURCE_FAMILIES:
        if any(token in lowered for token in tokens):
            return tokens
    return None


def normalize_source(utm_source: str | None) -> str:
    """Map a raw ``utm_source`` to its display family (substring match)."""
    if not utm_source:
        return UNKNOWN_SOURCE
    lowered = utm_source.lower()
    for tokens, display in SOURCE_FAMILIES:
        if any(token in lowered for token in tokens):
            return display
    return utm_source


def aggregate_by_campaign(leads: Iterable[AttributedLead]) -> list[Campaign]:
    """Group leads by (source family, campaign) with counts and first/last timestamps."""
    campaigns: dict[tuple[str, str], Campaign] = {}

    for lead in leads:
        source_display = normalize_source(lead.utm_source)
        campaign_name = lead.utm_campaign or NO_CAMPAIGN
        key = (source_display, campaign_name)

        entry = campaigns.get(key)
        if entry is None:
            entry = Campaign(
                source=lead.utm_source.lower() if lead.utm_source else "unknown",
                source_display=source_display,
                campaign=campaign_name,
                medium=lead.utm_medium or None,
                term=lead.utm_term or None,
                content=lead.utm_content or None,
                lead_count=0,
                first_lead=lead.created_at,
                last_lead=lead.created_at,
            )
            campaigns[key] = entry

        entry.lead_count += 1
        if lead.created_at < entry.first_lead:
            entry.first_lead = lead.created_at
        if lead.created_at > entry.last_lead:
            entry.last_lead = lead.created_at

    # sorted() is stable, so ties keep first-encountered order.
    return sorted(campaigns.values(), key=lambda item: item.lead_count, reverse=True)


def campaign_stats(leads: Iterable[AttributedLead]) -> dict[str, Any]:
    campaigns = aggregate_by_campaign(leads)
    sources: list[str] = []
    for item in campaigns:
        if item.source_display not in sources:
            sources.append(item.source_display)
    return {
        "campaigns": [item.to_dict() for item in campaigns],
        "totalLeads": sum(item.lead_count for item in campaigns),
        "totalCampaigns": len(campaigns),
        "sources": sources,
    }


def iso_week_key(value: date) -> str:
    """``YYYY-Www`` per ISO-8601 (week of the Thursday of the given date)."""
    iso_year, iso_week, _ = value.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def bucket_key(created_at: datetime, period: str) -> str:
    if period == "day":
        return created_at.strftime("%Y-%m-%d")
    if period == "week":
        return iso_week_key(created_at.date())
    if period == "month":
        return created_at.strftime("%Y-%m")
    raise ValidationError(f"Unsupported timeline period: {period}")


def bucket_timeline(leads: Iterable[AttributedLead], period: str = "day") -> list[TimelineEntry]:
    """Count leads per day/ISO week/month bucket, ascending by key."""
    if period not in TIMELINE_PERIODS:
        raise ValidationError(f"Unsupported timeline period: {period}")

    counts: dict[str, int] = {}
    for lead in leads:
        key = bucket_key(lead.created_at, period)
        counts[key] = counts.get(key, 0) + 1
    return [TimelineEntry(date=key, leads=counts[key]) for key in sorted(counts)]


def source_family_filter(source: str):
    """SQL filter selecting leads whose ``utm_source`` belongs to ``source``'s family.

    Family members are matched by substring, so an unrelated source that happens
    to contain a family token is counted in that family.
    """
    tokens = _family_tokens(source)
    if tokens is None:
        return func.lower(Lead.utm_source) == source.lower()
    return or_(*(Lead.utm_source.ilike(f"%{token}%") for token in tokens))


class CampaignService(BaseService):
    """Account-scoped lead queries feeding the campaign aggregators."""

    def attributed_leads(self, account_id: int) -> list[Lead]:
        return (
            self.db.query(Lead)
            .filter(Lead.account_id == account_id)
            .filter(or_(Lead.utm_source.isnot(None), Lead.utm_campaign.isnot(None)))
            .all()
        )

    def campaign_leads(self, account_id: int, source: str, campaign: str) -> list[Lead]:
        return (
            self.db.query(Lead)
            .filter(Lead.account_id == account_id)
            .filter(source_family_filter(source))
            .filter(Lead.utm_campaign == campaign)
            .order_by(Lead.created_at.desc())
            .all()
        )

    def stats(self, account_id: int) -> dict[str, Any]:
        return campaign_stats(self.attributed_leads(account_id))

    def timeline(self, account_id: int, source: str, campaign: str, period: str = "day") -> dict[str, Any]:
        leads = self.campaign_leads(account_id, source, campaign)
        timeline = bucket_timeline(leads, period)
        logger.debug(
            "campaign.timeline.built",
            extra={"event": "campaign.timeline.built", "account_id": account_id, "buckets": len(timeline)},
        )
        return {
            "period": period,
            "timeline": [entry.to_dict() for entry in timeline],
            "totalLeads": len(leads),
        }
