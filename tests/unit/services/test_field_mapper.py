from __future__ import annotations

from app.services.field_mapper import FIRST_NAME, FULL_NAME, FieldMapper, FieldSpec, candidate_keys, resolve_field


def test_resolve_field_prefers_mapped_key():
    payload = {"vorname": "Erika", "firstName": "Ignored"}
    assert resolve_field(payload, "firstName", {"firstName": "vorname"}, ["first_name"]) == "Erika"


def test_resolve_field_falls_back_when_mapped_key_missing():
    payload = {"first_name": "Erika"}
    assert resolve_field(payload, "firstName", {"firstName": "vorname"}, ["first_name"]) == "Erika"


def test_resolve_field_skips_empty_values():
    payload = {"firstName": "   ", "first_name": None, "fname": "Erika"}
    assert resolve_field(payload, "firstName", {"first_name": "fname"}, ["first_name"]) == "Erika"


def test_resolve_field_returns_none_when_nothing_matches():
    assert resolve_field({"other": "x"}, "email", None, ["emailAddress"]) is None


def test_resolve_field_keeps_non_string_values():
    assert resolve_field({"rating": 4.5}, "rating") == 4.5


def test_candidate_keys_order_and_dedup():
    keys = list(candidate_keys("email", {"email": "mail", "emailAddress": "mail"}, ["emailAddress"]))
    assert keys == ["mail", "email", "emailAddress"]


def test_field_mapper_records_mapping_details():
    mapper = FieldMapper({"first_name": "Erika"}, {})
    assert mapper.resolve(FIRST_NAME) == "Erika"

    detail = mapper.details["firstName"]
    assert detail.to_dict() == {"mappedFrom": "first_name", "value": "Erika", "found": True}


def test_field_mapper_applies_default_for_missing_field():
    mapper = FieldMapper({}, {"country": "land"})
    value = mapper.resolve(FieldSpec("country", default="DE"))

    assert value == "DE"
    assert mapper.details["country"].mapped_from == "land"
    assert mapper.details["country"].found is False


def test_field_mapper_record_keeps_origin():
    mapper = FieldMapper({"zip": "10115"})
    mapper.resolve(FieldSpec("zipCode", ("zip",)))
    mapper.record("zipCode", "10117")

    assert mapper.details["zipCode"].mapped_from == "zip"
    assert mapper.details["zipCode"].value == "10117"


def test_full_name_tries_name_first_and_honours_mapping():
    mapper = FieldMapper({"name": "Anna Firma", "fullName": "Anna Schmidt"})
    assert mapper.resolve(FULL_NAME) == "Anna Firma"
    assert mapper.details["fullName"].mapped_from == "name"

    mapped = FieldMapper({"kunde": "Erika Muster"}, {"fullName": "kunde"})
    assert mapped.resolve(FULL_NAME) == "Erika Muster"


def test_field_mapper_treats_non_mapping_as_no_mapping():
    mapper = FieldMapper({"first_name": "Erika"}, ["firstName"])
    assert mapper.field_mapping == {}
    assert mapper.resolve(FIRST_NAME) == "Erika"
