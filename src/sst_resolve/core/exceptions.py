"""
Core Exceptions
================

Every error that can leave an operation is one of these. The HTTP layer maps
each class to a status code through ``status_code`` so handlers never need
to know which bounded context raised it.
"""

from typing import Optional


class ApplicationException(Exception):
    """Root of every error an operation may raise; carries a message and a details dict."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class UnauthenticatedException(ApplicationException):
    """No identity could be established for the caller."""

    status_code = 401
    error_code = "unauthenticated"

    def __init__(self, message: str = "Unauthorized", details: Optional[dict] = None):
        super().__init__(message, details)


class ForbiddenException(ApplicationException):
    """Caller is known but not allowed to perform the operation."""

    status_code = 403
    error_code = "forbidden"


class ResourceNotFoundException(ApplicationException):
    """A ticket, user or outbox event id that does not exist."""

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        label = f"{resource_type} {resource_id}" if resource_id else resource_type
        super().__init__(f"{label} not found", details)


class InvalidStateException(ApplicationException):
    """Transition not permitted from the ticket's current status."""

    status_code = 409
    error_code = "invalid_state"

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.current_status = current_status
        details = dict(details or {})
        if current_status is not None:
            details.setdefault("current_status", current_status)
        super().__init__(message, details)


class ValidationException(ApplicationException):
    """Bad input: empty domain, unknown status, out-of-range rating, unparseable TAT."""

    status_code = 400
    error_code = "validation_error"


class RepositoryException(ApplicationException):
    """Storage failed or returned something inconsistent."""

    status_code = 503
    error_code = "dependency_failure"


class DependencyFailureException(RepositoryException):
    """A dependency (database, identity store, config) is unavailable."""

    def __init__(
        self,
        dependency: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.dependency = dependency
        super().__init__(f"{dependency}: {message}", details)


class ConfigurationException(ApplicationException):
    """The SLA configuration is missing or malformed."""


class ExternalServiceException(ApplicationException):
    """A call to a third-party service (Slack) failed."""

    status_code = 502
    error_code = "external_service_error"

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class NotificationException(ExternalServiceException):
    """A notification could not be delivered on the named channel."""

    def __init__(self, channel: str, message: str, details: Optional[dict] = None):
        super().__init__(f"Notification ({channel})", message, details)
