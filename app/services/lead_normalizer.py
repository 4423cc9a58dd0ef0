"""Build normalized lead records from raw inbound webhook payloads."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from app.models.enums import LeadPriority, LeadStatus, LeadType
from app.services.field_mapper import (
    BUSINESS_NAME,
    FIRST_NAME,
    FULL_NAME,
    LAST_NAME,
    LEAD_FIELD_SPECS,
    FieldMapper,
    MappingDetail,
)
from app.utils.address import parse_address

UNKNOWN_NAME = "Unbekannt"


@dataclass
class NormalizedLead:
    name: str
    source: str
    status: str = LeadStatus.NEW.value
    priority: str = LeadPriority.MEDIUM.value
    type: str = LeadType.CONTACT.value
    first_name: str | None = None
    last_name: str | None = None
    business_name: str | None = None
    email: str | None = None
    phone: str | None = None
    website: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = "DE"
    category: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None
    external_id: str | None = None
    subject: str | None = None
    message: str | None = None

    def lead_fields(self) -> dict[str, Any]:
        """Columns accepted by the ``Lead`` model."""
        data = asdict(self)
        for key in ("business_name", "external_id", "subject", "message"):
            data.pop(key)
        return data

    def company_fields(self) -> dict[str, Any]:
        """Columns accepted by the ``Company`` model (minus ``external_id``)."""
        return {
            "name": self.business_name or self.name or UNKNOWN_NAME,
            "business_name": self.business_name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "phone": self.phone,
            "website": self.website,
            "category": self.category,
        }

    def to_camel_dict(self) -> dict[str, Any]:
        """Payload-style view used by the mapping test endpoint."""
        return {_to_camel(key): value for key, value in asdict(self).items()}


@dataclass
class NormalizationResult:
    lead: NormalizedLead
    mapping_details: dict[str, MappingDetail] = field(default_factory=dict)

    def details_as_dict(self) -> dict[str, dict[str, Any]]:
        return {key: detail.to_dict() for key, detail in self.mapping_details.items()}


def _to_camel(snake: str) -> str:
    head, *rest = snake.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def compose_name(
    first_name: str | None,
    last_name: str | None,
    full_name: str | None,
    business_name: str | None,
) -> str:
    """Pick the display name for a lead.

    A lone first or last name is concatenated without a separator, which
    keeps compatibility with names already stored by earlier ingestion.
    """
    if first_name and last_name:
        return f"{first_name} {last_name}"
    if first_name or last_name:
        return (first_name or "") + (last_name or "")
    if full_name:
        return full_name
    return business_name or UNKNOWN_NAME


def normalize(
    raw_payload: Mapping[str, Any],
    field_mapping: Mapping[str, str] | None,
    source_label: str,
) -> NormalizationResult:
    """Map an arbitrary inbound payload onto the canonical lead fields."""
    mapper = FieldMapper(raw_payload, field_mapping)

    first_name = _as_text(mapper.resolve(FIRST_NAME))
    last_name = _as_text(mapper.resolve(LAST_NAME))
    full_name = _as_text(mapper.resolve(FULL_NAME))
    business_name = _as_text(mapper.resolve(BUSINESS_NAME))
    name = compose_name(first_name, last_name, full_name, business_name)
    mapper.record("name", name)

    fields = {key: _as_text(value) for key, value in mapper.resolve_many(LEAD_FIELD_SPECS).items()}

    city, zip_code, state = fields["city"], fields["zipCode"], fields["state"]
    if fields["address"] and not city:
        parsed = parse_address(fields["address"])
        city = city or parsed.city or None
        zip_code = zip_code or parsed.zip_code or None
        state = state or parsed.state or None
        mapper.record("city", city)
        mapper.record("zipCode", zip_code)
        mapper.record("state", state)

    lead = NormalizedLead(
        name=name,
        source=source_label,
        status=fields["status"] or LeadStatus.NEW.value,
        priority=fields["priority"] or LeadPriority.MEDIUM.value,
        first_name=first_name,
        last_name=last_name,
        business_name=business_name,
        email=fields["email"],
        phone=fields["phone"],
        website=fields["website"],
        address=fields["address"],
        city=city,
        state=state,
        zip_code=zip_code,
        country=fields["country"],
        category=fields["category"],
        utm_source=fields["utmSource"],
        utm_medium=fields["utmMedium"],
        utm_campaign=fields["utmCampaign"],
        utm_term=fields["utmTerm"],
        utm_content=fields["utmContent"],
        external_id=fields["externalId"],
        subject=fields["subject"],
        message=fields["message"],
    )
    return NormalizationResult(lead=lead, mapping_details=mapper.details)
