"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes for the finance domain and the global
exception handlers registered on the FastAPI application.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """Raised when the caller is not allowed to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class InvalidParameterError(AppException):
    """Raised when request parameters are malformed or inconsistent."""

    def __init__(self, message: str = "Invalid parameters", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PARAM_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


# Not found

class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    error_code = "ERR_NOT_FOUND_001"

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code=type(self).error_code,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class SettlementNotFoundError(ResourceNotFoundError):
    error_code = "ERR_SETTLEMENT_NOT_FOUND"

    def __init__(self, settlement_id: Any = None):
        super().__init__("Settlement", settlement_id)


class WithdrawalNotFoundError(ResourceNotFoundError):
    error_code = "ERR_WITHDRAWAL_NOT_FOUND"

    def __init__(self, withdrawal_id: Any = None):
        super().__init__("Withdrawal", withdrawal_id)


class MerchantNotFoundError(ResourceNotFoundError):
    error_code = "ERR_MERCHANT_NOT_FOUND"

    def __init__(self, merchant_id: Any = None):
        super().__init__("Merchant", merchant_id)


class DistributorNotFoundError(ResourceNotFoundError):
    error_code = "ERR_DISTRIBUTOR_NOT_FOUND"

    def __init__(self, distributor_id: Any = None):
        super().__init__("Distributor", distributor_id)


# Conflicts and illegal transitions

class DuplicateRecordError(AppException):
    """Raised when a settlement already exists for the requested period."""

    def __init__(self, message: str = "Record already exists", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_DUPLICATE_RECORD",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class InvalidOperationError(AppException):
    """Raised when an operation is not permitted in the record's current state."""

    error_code = "ERR_INVALID_OPERATION"

    def __init__(self, message: str = "Operation not allowed", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=type(self).error_code,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class WithdrawalStatusError(InvalidOperationError):
    """Raised when a withdrawal is not in a status that allows the action."""

    error_code = "ERR_WITHDRAWAL_STATUS"


class FrozenBalanceError(InvalidOperationError):
    """Raised when a frozen bucket cannot cover the amount being released."""

    error_code = "ERR_FROZEN_BALANCE"


# Infrastructure

class DatabaseError(AppException):
    """Raised when the persistence layer fails. Always carries the cause."""

    def __init__(self, cause: Exception, message: str = "Database error"):
        super().__init__(
            message=message,
            error_code="ERR_DATABASE",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"cause": f"{type(cause).__name__}: {cause}"}
        )
        self.__cause__ = cause


class ExportError(AppException):
    """Raised when a CSV export cannot be produced."""

    def __init__(self, cause: Exception, message: str = "Export failed"):
        super().__init__(
            message=message,
            error_code="ERR_EXPORT_FAILED",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"cause": f"{type(cause).__name__}: {cause}"}
        )
        self.__cause__ = cause


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
