"""Communication model module."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AuditMixin, Base
from app.models.enums import CommunicationDirection


class Communication(Base, AuditMixin):
    """One contact event on a lead. Account scope is inherited from the lead."""

    __tablename__ = "communications"
    __table_args__ = (
        Index("idx_communications_lead", "lead_id"),
        Index("idx_communications_mailgun_id", "mailgun_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    direction: Mapped[str] = mapped_column(String(20), default=CommunicationDirection.OUTBOUND.value, nullable=False)
    subject: Mapped[str | None] = mapped_column(String(500))
    content: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str | None] = mapped_column(String(40))
    mailgun_id: Mapped[str | None] = mapped_column(String(255))
    # `metadata` is reserved on declarative classes; the column keeps the wire name.
    event_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON)

    lead = relationship("Lead", back_populates="communications")
