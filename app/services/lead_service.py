"""Lead lookups, status transitions and contact-task bookkeeping."""

from __future__ import annotations

import logging

from app.core.exceptions import NotFoundError
from app.models import Lead, LeadStatus, Task, TaskStatus, TaskType
from app.models.base import utcnow
from app.services.base_service import BaseService

logger = logging.getLogger(__name__)


class LeadService(BaseService):
    """Lead operations shared by ingestion and email dispatch.

    Mutating helpers only stage changes on the session; the caller commits so
    that related writes land in one transaction.
    """

    def get_lead(self, account_id: int, lead_id: int) -> Lead:
        lead = (
            self.db.query(Lead)
            .filter(Lead.id == lead_id, Lead.account_id == account_id)
            .first()
        )
        if lead is None:
            raise NotFoundError(f"Lead {lead_id} not found")
        return lead

    def open_contact_tasks(self, lead: Lead) -> list[Task]:
        return (
            self.db.query(Task)
            .filter(
                Task.lead_id == lead.id,
                Task.account_id == lead.account_id,
                Task.type == TaskType.CONTACT_LEAD.value,
                Task.status == TaskStatus.OPEN.value,
            )
            .all()
        )

    def create_contact_task(self, lead: Lead) -> Task | None:
        """Open a "contact this lead" task for NEW leads, at most one at a time."""
        if lead.status != LeadStatus.NEW.value:
            return None
        existing = self.open_contact_tasks(lead)
        if existing:
            return existing[0]

        task = Task(
            account_id=lead.account_id,
            lead_id=lead.id,
            type=TaskType.CONTACT_LEAD.value,
            status=TaskStatus.OPEN.value,
            title=f"{lead.name} kontaktieren",
        )
        self.db.add(task)
        self.db.flush()
        return task

    def complete_contact_tasks(self, lead: Lead) -> int:
        now = utcnow()
        tasks = self.open_contact_tasks(lead)
        for task in tasks:
            task.status = TaskStatus.COMPLETED.value
            task.completed_at = now
        return len(tasks)

    def mark_contacted(self, lead: Lead) -> bool:
        """Move a NEW lead to CONTACTED and close its contact tasks.

        Returns False when the lead was already past NEW.
        """
        if lead.status != LeadStatus.NEW.value:
            return False
        lead.status = LeadStatus.CONTACTED.value
        completed = self.complete_contact_tasks(lead)
        logger.info(
            "lead.status.contacted",
            extra={"event": "lead.status.contacted", "lead_id": lead.id, "completed_tasks": completed},
        )
        return True
