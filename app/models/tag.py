"""Tag and lead-tag association models."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AccountScopedMixin, AuditMixin, Base


class Tag(Base, AuditMixin, AccountScopedMixin):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("account_id", "name", name="uq_tags_account_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    color: Mapped[str] = mapped_column(String(7), default="#3B82F6", nullable=False)


class LeadTag(Base):
    __tablename__ = "lead_tags"
    __table_args__ = (UniqueConstraint("lead_id", "tag_id", name="uq_lead_tags_lead_tag"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    tag_id: Mapped[int] = mapped_column(ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)

    lead = relationship("Lead", back_populates="tags")
    tag = relationship("Tag")
