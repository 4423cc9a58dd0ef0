"""Lead model module."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AccountScopedMixin, AuditMixin, Base
from app.models.enums import LeadPriority, LeadStatus, LeadType


class Lead(Base, AuditMixin, AccountScopedMixin):
    __tablename__ = "leads"
    __table_args__ = (
        Index("idx_leads_account_status", "account_id", "status"),
        Index("idx_leads_account_utm", "account_id", "utm_source", "utm_campaign"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int | None] = mapped_column(ForeignKey("companies.id", ondelete="SET NULL"))
    type: Mapped[str] = mapped_column(String(20), default=LeadType.CONTACT.value, nullable=False)
    status: Mapped[str] = mapped_column(String(40), default=LeadStatus.NEW.value, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default=LeadPriority.MEDIUM.value, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(120))
    last_name: Mapped[str | None] = mapped_column(String(120))
    email: Mapped[str | None] = mapped_column(String(320), index=True)
    phone: Mapped[str | None] = mapped_column(String(60))
    website: Mapped[str | None] = mapped_column(String(500))
    address: Mapped[str | None] = mapped_column(String(500))
    city: Mapped[str | None] = mapped_column(String(120))
    state: Mapped[str | None] = mapped_column(String(120))
    zip_code: Mapped[str | None] = mapped_column(String(20))
    country: Mapped[str | None] = mapped_column(String(60))
    category: Mapped[str | None] = mapped_column(String(120))
    source: Mapped[str | None] = mapped_column(String(120))
    utm_source: Mapped[str | None] = mapped_column(String(255))
    utm_medium: Mapped[str | None] = mapped_column(String(255))
    utm_campaign: Mapped[str | None] = mapped_column(String(255))
    utm_term: Mapped[str | None] = mapped_column(String(255))
    utm_content: Mapped[str | None] = mapped_column(String(255))

    account = relationship("Account")
    company = relationship("Company", back_populates="leads")
    communications = relationship(
        "Communication",
        back_populates="lead",
        order_by="Communication.created_at.desc()",
        cascade="all, delete-orphan",
    )
    tags = relationship("LeadTag", back_populates="lead", cascade="all, delete-orphan")
    tasks = relationship("Task", back_populates="lead", cascade="all, delete-orphan")
