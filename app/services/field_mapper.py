"""Configurable field resolution for inbound lead payloads.

Inbound lead sources (form builders, landing pages, ad platforms) name the same
field differently. Each canonical lead field is described by a ``FieldSpec``
listing its known synonyms; a per-webhook ``field_mapping`` can point any
canonical or synonym name at a different payload key.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FieldSpec:
    canonical: str
    synonyms: tuple[str, ...] = ()
    default: str | None = None
    lookup_order: tuple[str, ...] = ()

    def names(self) -> tuple[str, ...]:
        """Payload names in lookup order; canonical first unless overridden."""
        return self.lookup_order or (self.canonical, *self.synonyms)


@dataclass(frozen=True)
class MappingDetail:
    mapped_from: str
    value: Any
    found: bool

    def to_dict(self) -> dict[str, Any]:
        return {"mappedFrom": self.mapped_from, "value": self.value, "found": self.found}


FIRST_NAME = FieldSpec("firstName", ("first_name",))
LAST_NAME = FieldSpec("lastName", ("last_name",))
FULL_NAME = FieldSpec("fullName", ("name", "full_name"), lookup_order=("name", "fullName", "full_name"))
BUSINESS_NAME = FieldSpec("businessName", ("company", "firma"))

LEAD_FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("email", ("emailAddress",)),
    FieldSpec("phone", ("telephone", "phoneNumber")),
    FieldSpec("website", ("url", "websiteUrl")),
    FieldSpec("address", ("formatted_address", "street")),
    FieldSpec("city"),
    FieldSpec("state", ("province",)),
    FieldSpec("zipCode", ("zip", "postalCode", "postcode")),
    FieldSpec("country", default="DE"),
    FieldSpec("category", ("type", "industry")),
    FieldSpec("status", default="NEW"),
    FieldSpec("priority", default="MEDIUM"),
    FieldSpec("utmSource", ("utm_source",)),
    FieldSpec("utmMedium", ("utm_medium",)),
    FieldSpec("utmCampaign", ("utm_campaign",)),
    FieldSpec("utmTerm", ("utm_term",)),
    FieldSpec("utmContent", ("utm_content",)),
    FieldSpec("externalId", ("googlePlaceId", "placeId", "place_id")),
    FieldSpec("subject", ("betreff",)),
    FieldSpec("message", ("nachricht", "content", "text")),
)


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def candidate_keys(
    canonical: str,
    field_mapping: Mapping[str, str] | None,
    fallback_names: Sequence[str] = (),
) -> Iterator[str]:
    """Yield payload keys to try, mapped override first for every name."""
    mapping = field_mapping or {}
    seen: set[str] = set()
    for name in (canonical, *fallback_names):
        mapped = mapping.get(name)
        for key in (mapped, name):
            if key and key not in seen:
                seen.add(key)
                yield key


def resolve_field(
    payload: Mapping[str, Any],
    canonical: str,
    field_mapping: Mapping[str, str] | None = None,
    fallback_names: Sequence[str] = (),
) -> Any | None:
    """Return the first non-empty payload value for a canonical field, else None."""
    for key in candidate_keys(canonical, field_mapping, fallback_names):
        value = payload.get(key)
        if _is_present(value):
            return value.strip() if isinstance(value, str) else value
    return None


class FieldMapper:
    """Resolves ``FieldSpec`` entries against one payload and records how."""

    def __init__(self, payload: Mapping[str, Any], field_mapping: Mapping[str, str] | None = None) -> None:
        self.payload = payload
        self.field_mapping = dict(field_mapping) if isinstance(field_mapping, Mapping) else {}
        self.details: dict[str, MappingDetail] = {}

    def resolve(self, spec: FieldSpec, apply_default: bool = True) -> Any | None:
        first, *rest = spec.names()
        keys = list(candidate_keys(first, self.field_mapping, rest))
        value = resolve_field(self.payload, first, self.field_mapping, rest)
        used_key = next(
            (key for key in keys if _is_present(self.payload.get(key))),
            self.field_mapping.get(spec.canonical) or spec.canonical,
        )
        if value is None and apply_default:
            value = spec.default
        self.details[spec.canonical] = MappingDetail(
            mapped_from=used_key,
            value=value,
            found=any(key in self.payload for key in keys),
        )
        return value

    def resolve_many(self, specs: Sequence[FieldSpec]) -> dict[str, Any]:
        return {spec.canonical: self.resolve(spec) for spec in specs}

    def record(self, canonical: str, value: Any) -> None:
        """Record a derived value (e.g. the composed name) in the mapping details."""
        previous = self.details.get(canonical)
        self.details[canonical] = MappingDetail(
            mapped_from=previous.mapped_from if previous else canonical,
            value=value,
            found=previous.found if previous else False,
        )
