"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.

SLA engine taxonomy:
- ConfigurationMissing: no calendar or policy resolves (non-fatal, null deadlines)
- ComputationOverflow: deadline walk exceeded its iteration bound
- ActionExecutionFailure: one automation action failed, siblings continue
- PersistenceFailure: a write or read against the ticket store failed
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Any] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id is not None:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class ConfigurationMissing(ApplicationException):
    """
    No calendar or SLA policy resolves for a contract.

    Callers treat this as "no SLA applicable", never as a crash.
    """

    def __init__(
        self,
        what: str,
        contract_id: Optional[Any] = None,
        details: Optional[dict] = None
    ):
        self.what = what
        self.contract_id = contract_id
        super().__init__(
            f"No {what} configured for contract {contract_id}",
            details or {"what": what, "contract_id": contract_id}
        )


class ComputationOverflow(DomainException):
    """Raised when the business-time walk exceeds its iteration bound."""

    def __init__(
        self,
        minutes_required: int,
        iterations: int,
        details: Optional[dict] = None
    ):
        self.minutes_required = minutes_required
        self.iterations = iterations
        super().__init__(
            f"Deadline computation exceeded {iterations} iterations "
            f"for {minutes_required} business minutes",
            details or {"minutes_required": minutes_required, "iterations": iterations}
        )


class ActionExecutionFailure(DomainException):
    """A single automation action could not be executed."""

    def __init__(
        self,
        action_type: str,
        reason: str,
        ticket_id: Optional[Any] = None,
        details: Optional[dict] = None
    ):
        self.action_type = action_type
        self.reason = reason
        self.ticket_id = ticket_id
        super().__init__(
            f"Action '{action_type}' failed on ticket {ticket_id}: {reason}",
            details or {"action_type": action_type, "ticket_id": ticket_id}
        )


class PersistenceFailure(RepositoryException):
    """The ticket store rejected a read or write."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}", details)
