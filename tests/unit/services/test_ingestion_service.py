from __future__ import annotations

import pytest

import app.services.ingestion_service as ingestion_module
from app.core.exceptions import AuthenticationError, AuthorizationError, DuplicateLeadError, NotFoundError, ValidationError
from app.models import (
    Communication,
    Company,
    Lead,
    LeadTag,
    MessageClass,
    SecurityEvent,
    Tag,
    Task,
    WebhookLog,
)
from app.services.ingestion_service import (
    IngestionResult,
    IngestionService,
    dispatch_follow_up_emails,
    inquiry_content,
    planned_follow_ups,
    provided_secret,
)

PAYLOAD = {
    "first_name": "Erika",
    "last_name": "Muster",
    "email": "erika@kunde.de",
    "phone": "030 1234",
    "formatted_address": "Musterstraße 1, 12345 Berlin, Deutschland",
    "utm_source": "facebook",
    "utm_campaign": "Frühling",
    "message": "Bitte um Rückruf",
}


def test_provided_secret_reads_bearer_or_header():
    assert provided_secret({"Authorization": "Bearer s3cret"}) == "s3cret"
    assert provided_secret({"X-Webhook-Secret": "s3cret"}) == "s3cret"
    assert provided_secret({}) is None


def test_inquiry_content_appends_privacy_note():
    assert inquiry_content("Hallo").startswith("Hallo\n\n")
    assert inquiry_content(None).startswith("Anfrage erhalten\n")


def test_ingest_creates_lead_company_task_note_and_tags(db_session, make_account, make_webhook):
    account = make_account()
    webhook = make_webhook(account, settings={"autoTags": ["Webformular", " ", "Webformular"]})

    result = IngestionService(db=db_session).ingest(webhook.webhook_id, PAYLOAD)

    lead = db_session.get(Lead, result.lead_id)
    assert lead.account_id == account.id
    assert lead.name == "Erika Muster"
    assert lead.source == "Landingpage"
    assert lead.city == "Berlin"
    assert lead.zip_code == "12345"
    assert lead.utm_campaign == "Frühling"
    assert lead.type == "CONTACT"

    company = db_session.get(Company, result.company_id)
    assert company.account_id == account.id
    assert company.external_id.startswith("webhook-")

    assert db_session.query(Task).one().title == "Erika Muster kontaktieren"
    note = db_session.query(Communication).one()
    assert note.type == "NOTE"
    assert note.direction == "INBOUND"
    assert note.subject == "Anfrage per Webhook"
    assert note.content.startswith("Bitte um Rückruf")

    assert [tag.name for tag in db_session.query(Tag).all()] == ["Webformular"]
    assert db_session.query(LeadTag).count() == 1

    log = db_session.query(WebhookLog).one()
    assert log.success is True
    assert log.error is None
    assert log.lead_id == lead.id
    assert result.to_dict() == {"success": True, "leadId": lead.id, "companyId": company.id}


def test_ingest_applies_field_mapping(db_session, make_account, make_webhook):
    account = make_account()
    webhook = make_webhook(account, settings={"fieldMapping": {"email": "kontakt_email", "fullName": "kunde"}})

    result = IngestionService(db=db_session).ingest(webhook.webhook_id, {"kunde": "Erika Muster", "kontakt_email": "e@k.de"})

    lead = db_session.get(Lead, result.lead_id)
    assert lead.name == "Erika Muster"
    assert lead.email == "e@k.de"


def test_ingest_reuses_company_with_same_external_id(db_session, make_account, make_webhook):
    account = make_account()
    webhook = make_webhook(account, settings={"checkDuplicates": False})
    service = IngestionService(db=db_session)

    first = service.ingest(webhook.webhook_id, {"name": "A", "email": "a@k.de", "placeId": "ChIJ1"})
    second = service.ingest(webhook.webhook_id, {"name": "B", "email": "b@k.de", "placeId": "ChIJ1"})

    assert first.company_id == second.company_id
    assert db_session.get(Company, first.company_id).external_id == "ChIJ1"


def test_ingest_does_not_share_companies_across_accounts(db_session, make_account, make_webhook):
    account = make_account()
    other = make_account(name="Andere GmbH")
    first_hook = make_webhook(account)
    other_hook = make_webhook(other, webhook_id="wh-token-2")
    service = IngestionService(db=db_session)

    first = service.ingest(first_hook.webhook_id, {"name": "A", "placeId": "ChIJ1"})
    second = service.ingest(other_hook.webhook_id, {"name": "B", "placeId": "ChIJ1"})

    assert first.company_id != second.company_id
    assert db_session.get(Company, second.company_id).account_id == other.id


def test_ingest_rejects_duplicate_email(db_session, make_account, make_webhook):
    webhook = make_webhook(make_account())
    service = IngestionService(db=db_session)
    first = service.ingest(webhook.webhook_id, PAYLOAD)

    with pytest.raises(DuplicateLeadError) as exc:
        service.ingest(webhook.webhook_id, PAYLOAD)

    assert exc.value.existing_lead_id == first.lead_id
    assert db_session.query(Lead).count() == 1
    failed_log = db_session.query(WebhookLog).order_by(WebhookLog.id.desc()).first()
    assert failed_log.success is False
    assert failed_log.error == "Lead already exists"


def test_ingest_ignores_field_mapping_that_is_not_an_object(db_session, make_account, make_webhook):
    webhook = make_webhook(make_account(), settings={"fieldMapping": ["email"]})

    result = IngestionService(db=db_session).ingest(webhook.webhook_id, PAYLOAD)

    lead = db_session.get(Lead, result.lead_id)
    assert lead.email == "erika@kunde.de"
    log = db_session.query(WebhookLog).one()
    assert log.success is True
    assert log.lead_id == lead.id


def test_ingest_marks_log_failed_on_unexpected_error(db_session, make_account, make_webhook, monkeypatch):
    webhook = make_webhook(make_account())

    def _broken_normalize(*args, **kwargs):
        raise RuntimeError("mapper exploded")

    monkeypatch.setattr(ingestion_module, "normalize", _broken_normalize)

    with pytest.raises(RuntimeError):
        IngestionService(db=db_session).ingest(webhook.webhook_id, PAYLOAD)

    log = db_session.query(WebhookLog).one()
    assert log.success is False
    assert log.error == "mapper exploded"
    assert db_session.query(Lead).count() == 0


def test_ingest_unknown_token(db_session):
    with pytest.raises(NotFoundError):
        IngestionService(db=db_session).ingest("missing", PAYLOAD)


def test_ingest_inactive_webhook(db_session, make_account, make_webhook):
    webhook = make_webhook(make_account(), is_active=False)
    with pytest.raises(AuthorizationError):
        IngestionService(db=db_session).ingest(webhook.webhook_id, PAYLOAD)


def test_ingest_wrong_secret_is_audited(db_session, make_account, make_webhook):
    account = make_account()
    webhook = make_webhook(account, secret="s3cret")
    service = IngestionService(db=db_session)

    with pytest.raises(AuthenticationError):
        service.ingest(webhook.webhook_id, PAYLOAD, secret="wrong", ip_address="203.0.113.9")

    event = db_session.query(SecurityEvent).one()
    assert event.event_type == "WEBHOOK_AUTH_FAILED"
    assert event.ip_address == "203.0.113.9"
    assert db_session.query(WebhookLog).count() == 0

    result = service.ingest(webhook.webhook_id, PAYLOAD, secret="s3cret")
    assert result.lead_id is not None


def test_mapping_test_is_a_dry_run(db_session, make_account, make_webhook):
    account = make_account()
    webhook = make_webhook(account, settings={"fieldMapping": {"email": "mail"}})

    result = IngestionService(db=db_session).test_mapping(account.id, webhook.id, {"mail": "e@k.de", "name": "Erika"})

    assert result["mappedData"]["email"] == "e@k.de"
    assert result["mappingDetails"]["email"]["mappedFrom"] == "mail"
    assert result["fieldMapping"] == {"email": "mail"}
    assert db_session.query(Lead).count() == 0


def test_mapping_test_validation(db_session, make_account, make_webhook):
    account = make_account()
    webhook = make_webhook(account)
    service = IngestionService(db=db_session)

    with pytest.raises(ValidationError):
        service.test_mapping(account.id, webhook.id, {})
    with pytest.raises(NotFoundError):
        service.test_mapping(account.id + 1, webhook.id, {"name": "x"})


def _follow_up_settings(webhook_ids):
    return {
        "emailSettings": {
            "autoReplyEnabled": True,
            "autoReplyWebhookIds": webhook_ids,
            "leadTemplate": {"subject": "Danke {{vorname}}", "content": "Wir melden uns."},
            "ownerNotificationEnabled": True,
            "ownerNotificationEmail": "chef@muster.de",
            "ownerTemplate": {"subject": "Neuer Lead", "content": "{{name}}"},
        }
    }


def test_planned_follow_ups_respects_webhook_selection(db_session, make_account, make_webhook):
    account = make_account(settings=_follow_up_settings(["wh-token-1"]))
    selected = make_webhook(account)
    other = make_webhook(account, webhook_id="wh-token-2")

    def _result(webhook):
        return IngestionResult(account.id, webhook.id, lead_id=1, company_id=1, lead_email="e@k.de")

    assert planned_follow_ups(db_session, _result(selected)) == [
        (MessageClass.AUTO_REPLY, "e@k.de"),
        (MessageClass.OWNER_NOTIFICATION, "chef@muster.de"),
    ]
    assert planned_follow_ups(db_session, _result(other)) == [(MessageClass.OWNER_NOTIFICATION, "chef@muster.de")]


def test_dispatch_follow_ups_logs_failures_and_continues(session_factory, db_session, make_account, make_webhook, monkeypatch):
    account = make_account(settings=_follow_up_settings(["wh-token-1"]))
    make_webhook(account)
    calls = []

    class _FailingEmailService:
        def __init__(self, db):
            self.db = db

        def send_to_lead(self, account_id, lead_id, message_class, recipient):
            calls.append((message_class, recipient))
            raise RuntimeError("provider exploded")

    monkeypatch.setattr(ingestion_module, "EmailService", _FailingEmailService)
    result = IngestionService(db=db_session).ingest("wh-token-1", PAYLOAD)

    dispatch_follow_up_emails(result, session_factory)

    assert calls == [
        (MessageClass.AUTO_REPLY, "erika@kunde.de"),
        (MessageClass.OWNER_NOTIFICATION, "chef@muster.de"),
    ]
