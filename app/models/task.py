"""Follow-up task model module."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AccountScopedMixin, AuditMixin, Base
from app.models.enums import TaskStatus, TaskType


class Task(Base, AuditMixin, AccountScopedMixin):
    __tablename__ = "tasks"
    __table_args__ = (Index("idx_tasks_lead_type_status", "lead_id", "type", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(40), default=TaskType.CONTACT_LEAD.value, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=TaskStatus.OPEN.value, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    lead = relationship("Lead", back_populates="tasks")
