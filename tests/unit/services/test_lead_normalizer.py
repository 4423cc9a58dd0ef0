from __future__ import annotations

from app.services.lead_normalizer import compose_name, normalize


def test_normalize_uses_mapping_override():
    result = normalize({"vorname": "Erika", "nachname": "Muster"}, {"firstName": "vorname", "lastName": "nachname"}, "Website")
    assert result.lead.name == "Erika Muster"
    assert result.lead.first_name == "Erika"
    assert result.lead.last_name == "Muster"


def test_normalize_falls_back_to_synonyms_and_defaults():
    result = normalize({"first_name": "Erika", "last_name": "Muster"}, {}, "Website")
    lead = result.lead

    assert lead.name == "Erika Muster"
    assert lead.status == "NEW"
    assert lead.priority == "MEDIUM"
    assert lead.country == "DE"
    assert lead.source == "Website"


def test_normalize_name_falls_back_to_business_name():
    result = normalize({"company": "Bäckerei Schmidt"}, {}, "Website")
    assert result.lead.name == "Bäckerei Schmidt"
    assert result.lead.business_name == "Bäckerei Schmidt"


def test_normalize_without_any_name_is_unknown():
    assert normalize({"email": "a@b.de"}, {}, "Website").lead.name == "Unbekannt"


def test_compose_name_single_part_has_no_separator():
    assert compose_name("Erika", None, None, None) == "Erika"
    assert compose_name(None, "Muster", "Ignored", None) == "Muster"
    assert compose_name(None, None, "Erika Muster", "Firma") == "Erika Muster"


def test_normalize_parses_address_only_when_city_missing():
    payload = {"name": "Erika", "formatted_address": "Musterstraße 1, 12345 Berlin, Deutschland"}
    lead = normalize(payload, {}, "Website").lead

    assert lead.address == "Musterstraße 1, 12345 Berlin, Deutschland"
    assert lead.city == "Berlin"
    assert lead.zip_code == "12345"
    assert lead.state is None


def test_normalize_parsed_address_never_overrides_mapped_zip():
    payload = {"name": "Erika", "address": "Musterstraße 1, 12345 Berlin, Deutschland", "zip": "99999"}
    lead = normalize(payload, {}, "Website").lead

    assert lead.city == "Berlin"
    assert lead.zip_code == "99999"


def test_normalize_keeps_explicit_city():
    payload = {"name": "Erika", "address": "Musterstraße 1, 12345 Berlin, Deutschland", "city": "Potsdam"}
    lead = normalize(payload, {}, "Website").lead

    assert lead.city == "Potsdam"
    assert lead.zip_code is None


def test_normalize_extracts_utm_fields():
    payload = {
        "name": "Erika",
        "utm_source": "facebook",
        "utm_medium": "cpc",
        "utm_campaign": "Frühling",
        "utmTerm": "fenster",
        "utm_content": "video",
    }
    lead = normalize(payload, {}, "Meta Ads").lead

    assert (lead.utm_source, lead.utm_medium, lead.utm_campaign) == ("facebook", "cpc", "Frühling")
    assert (lead.utm_term, lead.utm_content) == ("fenster", "video")
    assert lead.source == "Meta Ads"


def test_normalize_splits_lead_and_company_fields():
    payload = {"name": "Erika", "company": "Muster AG", "placeId": "abc", "message": "Hallo"}
    lead = normalize(payload, {}, "Website").lead

    assert "external_id" not in lead.lead_fields()
    assert "message" not in lead.lead_fields()
    assert lead.company_fields()["name"] == "Muster AG"
    assert lead.external_id == "abc"
    assert lead.message == "Hallo"


def test_normalize_mapping_details_are_camel_case():
    result = normalize({"email": "erika@muster.de"}, {}, "Website")
    details = result.details_as_dict()

    assert details["email"] == {"mappedFrom": "email", "value": "erika@muster.de", "found": True}
    assert details["name"]["value"] == "Unbekannt"
    assert result.lead.to_camel_dict()["zipCode"] is None


def test_normalize_prefers_name_over_full_name():
    result = normalize({"name": "Anna Firma", "fullName": "Anna Schmidt"}, {}, "Web")
    assert result.lead.name == "Anna Firma"


def test_normalize_uses_full_name_when_name_missing():
    assert normalize({"fullName": "Anna Schmidt"}, {}, "Web").lead.name == "Anna Schmidt"


def test_normalize_ignores_field_mapping_that_is_not_an_object():
    result = normalize({"email": "a@b.de", "name": "Anna"}, ["email"], "Web")
    assert result.lead.email == "a@b.de"
    assert result.lead.name == "Anna"
