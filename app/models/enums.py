"""Canonical enum values for the account-scoped schema."""

from __future__ import annotations

import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    SALES = "sales"
    VIEWER = "viewer"


class LeadType(str, enum.Enum):
    CONTACT = "CONTACT"
    COMPANY = "COMPANY"


class LeadStatus(str, enum.Enum):
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    QUALIFIED = "QUALIFIED"
    PROPOSAL = "PROPOSAL"
    NEGOTIATION = "NEGOTIATION"
    WON = "WON"
    LOST = "LOST"


class LeadPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class CommunicationType(str, enum.Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    CALL = "CALL"
    NOTE = "NOTE"


class CommunicationDirection(str, enum.Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class CommunicationStatus(str, enum.Enum):
    SENT = "sent"
    SCHEDULED = "scheduled"
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    BOUNCED = "bounced"
    FAILED = "failed"
    COMPLAINED = "complained"
    UNSUBSCRIBED = "unsubscribed"


class MessageClass(str, enum.Enum):
    AUTO_REPLY = "auto-reply"
    OWNER_NOTIFICATION = "owner-notification"
    MANUAL = "manual"


class TaskType(str, enum.Enum):
    CONTACT_LEAD = "CONTACT_LEAD"


class TaskStatus(str, enum.Enum):
    OPEN = "OPEN"
    COMPLETED = "COMPLETED"


class SecurityEventType(str, enum.Enum):
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    ROLE_CHANGED = "ROLE_CHANGED"
    SETTINGS_CHANGED = "SETTINGS_CHANGED"
    WEBHOOK_CREATED = "WEBHOOK_CREATED"
    WEBHOOK_DELETED = "WEBHOOK_DELETED"
    WEBHOOK_AUTH_FAILED = "WEBHOOK_AUTH_FAILED"
    EMAIL_SENT = "EMAIL_SENT"
    LEAD_DELETED = "LEAD_DELETED"
    SECURITY_EVENTS_CLEANUP = "SECURITY_EVENTS_CLEANUP"
