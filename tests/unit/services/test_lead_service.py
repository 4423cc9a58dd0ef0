from __future__ import annotations

import pytest

from app.core.exceptions import NotFoundError
from app.models import LeadStatus, Task, TaskStatus
from app.services.lead_service import LeadService


def test_get_lead_is_account_scoped(db_session, make_account, make_lead):
    account = make_account()
    other = make_account(name="Andere GmbH")
    lead = make_lead(account)
    service = LeadService(db=db_session)

    assert service.get_lead(account.id, lead.id).id == lead.id
    with pytest.raises(NotFoundError):
        service.get_lead(other.id, lead.id)


def test_create_contact_task_is_idempotent(db_session, make_account, make_lead):
    lead = make_lead(make_account())
    service = LeadService(db=db_session)

    first = service.create_contact_task(lead)
    second = service.create_contact_task(lead)
    db_session.commit()

    assert first is not None
    assert first.id == second.id
    assert first.title == "Max Mustermann kontaktieren"
    assert db_session.query(Task).count() == 1


def test_create_contact_task_skips_non_new_leads(db_session, make_account, make_lead):
    lead = make_lead(make_account(), status=LeadStatus.QUALIFIED.value)
    assert LeadService(db=db_session).create_contact_task(lead) is None


def test_mark_contacted_completes_open_tasks(db_session, make_account, make_lead):
    lead = make_lead(make_account())
    service = LeadService(db=db_session)
    service.create_contact_task(lead)
    db_session.commit()

    assert service.mark_contacted(lead) is True
    db_session.commit()

    task = db_session.query(Task).one()
    assert lead.status == LeadStatus.CONTACTED.value
    assert task.status == TaskStatus.COMPLETED.value
    assert task.completed_at is not None


def test_mark_contacted_leaves_advanced_leads_alone(db_session, make_account, make_lead):
    lead = make_lead(make_account(), status=LeadStatus.WON.value)
    assert LeadService(db=db_session).mark_contacted(lead) is False
    assert lead.status == LeadStatus.WON.value
