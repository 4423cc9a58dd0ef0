"""Duplicate detection for ingested leads and companies."""

from __future__ import annotations

import logging

from app.models import Company, Lead
from app.services.base_service import BaseService

logger = logging.getLogger(__name__)


class DeduplicationService(BaseService):
    """Strict-equality lookups used before creating leads or companies."""

    def find_company_by_external_id(self, external_id: str | None) -> Company | None:
        if not external_id or not external_id.strip():
            return None
        return self.db.query(Company).filter(Company.external_id == external_id.strip()).first()

    def exists_by_external_id(self, external_id: str | None) -> bool:
        """Return True when a company with this upstream id is already stored.

        A missing id cannot be checked and is reported as not duplicate.
        """
        return self.find_company_by_external_id(external_id) is not None

    def find_duplicate_lead(self, account_id: int, email: str | None, phone: str | None) -> Lead | None:
        """Match by email, or by phone when the payload carries no email."""
        query = self.db.query(Lead).filter(Lead.account_id == account_id)
        if email:
            query = query.filter(Lead.email == email)
        elif phone:
            query = query.filter(Lead.phone == phone)
        else:
            return None

        existing = query.order_by(Lead.id.asc()).first()
        if existing is not None:
            logger.info(
                "dedup.lead.match",
                extra={"event": "dedup.lead.match", "account_id": account_id, "lead_id": existing.id},
            )
        return existing
