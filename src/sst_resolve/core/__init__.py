"""
Core Module
============

Framework-free error types shared by the tickets, SLA and notification
contexts.
"""

from sst_resolve.core.exceptions import (
    ApplicationException,
    UnauthenticatedException,
    ForbiddenException,
    ResourceNotFoundException,
    InvalidStateException,
    ValidationException,
    RepositoryException,
    DependencyFailureException,
    ConfigurationException,
    ExternalServiceException,
    NotificationException,
)

__all__ = [
    "ApplicationException",
    "UnauthenticatedException",
    "ForbiddenException",
    "ResourceNotFoundException",
    "InvalidStateException",
    "ValidationException",
    "RepositoryException",
    "DependencyFailureException",
    "ConfigurationException",
    "ExternalServiceException",
    "NotificationException",
]
