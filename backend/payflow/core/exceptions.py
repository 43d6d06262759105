# backend/payflow/core/exceptions.py
"""
Domain-specific exceptions for the payment lifecycle orchestrator.

These exceptions carry business-focused messages that batch jobs classify
per item and the API layer converts into HTTP responses.

Batch classification:
- DataIntegrityAnomaly, ConflictError: the item is skipped
- everything else raised from an item handler: the item is an error
- FatalError: raised before the candidate loop, aborts the run
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    """Raised when the caller did not present a valid secret."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Payment lifecycle exceptions


class ConflictError(ConflictException):
    """Optimistic state guard lost: the row was not in the expected prior state."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        payment_id: Optional[str] = None,
        expected_status: Optional[str] = None,
    ):
        super().__init__(
            message=message or "Payment is no longer in the expected state",
            code="PAYMENT_STATE_CONFLICT",
            details={"payment_id": payment_id, "expected_status": expected_status},
        )


class AlreadyProcessedError(ConflictException):
    """Raised when a cancellation or no-show was already applied."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="ALREADY_PROCESSED", details=details or {})


class ProcessorError(ServiceException):
    """External payment processor call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        processor_code: Optional[str] = None,
    ):
        self.retryable = retryable
        self.processor_code = processor_code
        super().__init__(
            message=message,
            code="PROCESSOR_ERROR",
            details={"retryable": retryable, "processor_code": processor_code},
        )


class ConfigurationError(ServiceException):
    """Required configuration is missing (e.g. a connected account id)."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="CONFIGURATION_ERROR", details=details or {})


class DataIntegrityAnomaly(DomainException):
    """A record lacks a field it should never lack. Skip it, log it, continue."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="DATA_INTEGRITY_ANOMALY", details=details or {})


class FatalError(ServiceException):
    """Failure before the candidate set was fetched; the whole run aborts."""

    def __init__(self, message: str, *, job_name: Optional[str] = None):
        super().__init__(message=message, code="FATAL_ERROR", details={"job": job_name})


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
