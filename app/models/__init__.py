"""Modular SQLAlchemy model package for the account-scoped CRM schema."""

from app.models.account import Account, AccountSettings
from app.models.base import Base
from app.models.communication import Communication
from app.models.company import Company
from app.models.enums import (
    CommunicationDirection,
    CommunicationStatus,
    CommunicationType,
    LeadPriority,
    LeadStatus,
    LeadType,
    MessageClass,
    SecurityEventType,
    TaskStatus,
    TaskType,
    UserRole,
)
from app.models.lead import Lead
from app.models.security_event import SecurityEvent
from app.models.tag import LeadTag, Tag
from app.models.task import Task
from app.models.user import User
from app.models.webhook import Webhook, WebhookLog

__all__ = [
    "Account",
    "AccountSettings",
    "Base",
    "Communication",
    "CommunicationDirection",
    "CommunicationStatus",
    "CommunicationType",
    "Company",
    "Lead",
    "LeadPriority",
    "LeadStatus",
    "LeadTag",
    "LeadType",
    "MessageClass",
    "SecurityEvent",
    "SecurityEventType",
    "Tag",
    "Task",
    "TaskStatus",
    "TaskType",
    "User",
    "UserRole",
    "Webhook",
    "WebhookLog",
]
