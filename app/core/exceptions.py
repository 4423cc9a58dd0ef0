"""Custom exceptions for the CRM core."""


class CRMException(Exception):
    """Base exception for the CRM application."""

    pass


class ValidationError(CRMException):
    """Raised when validation fails."""

    pass


class NotFoundError(CRMException):
    """Raised when a resource is not found or belongs to another account."""

    pass


class ConfigurationError(CRMException):
    """Raised when configuration is invalid or provider credentials are missing."""

    pass


class TransportError(CRMException):
    """Raised when an outbound provider call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(CRMException):
    """Raised when authentication fails."""

    pass


class AuthorizationError(CRMException):
    """Raised when an authenticated caller lacks access."""

    pass


class DuplicateLeadError(CRMException):
    """Raised when an ingested lead already exists for the account."""

    def __init__(self, message: str, existing_lead_id: int) -> None:
        super().__init__(message)
        self.existing_lead_id = existing_lead_id
