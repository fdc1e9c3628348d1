"""
Core Exceptions
================

Error types shared by the SLA and routing modules.

Each exception carries the HTTP status the API layer answers with, so
the exception handler does not need to know every subclass.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationException(ApplicationException):
    """Request values that pass schema validation but make no sense together."""

    status_code = 400


class ResourceNotFoundException(ApplicationException):
    """A policy, instance or ticket that does not exist for the tenant."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type} '{resource_id}' not found" if resource_id else f"{resource_type} not found"
        super().__init__(message, details)


class RepositoryException(ApplicationException):
    """Storage read or write failure."""


class ConcurrencyConflictException(RepositoryException):
    """A write based on a stale version of a record."""

    status_code = 409

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        expected_version: Optional[int] = None,
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.expected_version = expected_version
        super().__init__(
            f"{resource_type} '{resource_id}' was modified concurrently",
            {"resource_id": resource_id, "expected_version": expected_version}
        )


class ConfigurationException(ApplicationException):
    """Missing or inconsistent settings."""


class ExternalServiceException(ApplicationException):
    """Failure of a collaborator outside this service."""

    status_code = 502

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Content analysis call or response parsing failed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)
