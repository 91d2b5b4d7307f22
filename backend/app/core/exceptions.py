"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers. Every
error leaves the API as ``{"success": false, "error": ..., "errorCode": ...}``.
"""

import logging
from decimal import Decimal
from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
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


class UnauthorizedError(AppException):
    """Raised when the caller lacks the permission or relationship for an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None, error_code: str = "ERR_NOT_FOUND_001"):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AccountNotFoundError(ResourceNotFoundError):
    """Raised when a student has no account of the requested type."""

    def __init__(self, student_id: int, account_type: str):
        AppException.__init__(
            self,
            message=f"{account_type.title()} account not found for student {student_id}",
            error_code="ERR_ACCOUNT_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": "Bank account", "student_id": student_id, "account_type": account_type}
        )


class NotEnrolledError(AppException):
    """Raised when a teacher has no enrollment relationship with a student."""

    def __init__(self, student_id: int):
        super().__init__(
            message=f"Student {student_id} is not enrolled in any of your classes",
            error_code="ERR_NOT_ENROLLED",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"student_id": student_id}
        )


class InsufficientFundsError(AppException):
    """Raised when a debit, purchase or removal exceeds the account balance."""

    def __init__(self, account_id: int, balance: Decimal = None, needed: Decimal = None):
        details: Dict[str, Any] = {"account_id": account_id}
        if balance is not None:
            details["current_balance"] = str(balance)
        if needed is not None:
            details["needed"] = str(needed)
        super().__init__(
            message="Insufficient funds",
            error_code="ERR_INSUFFICIENT_FUNDS",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class ItemUnavailableError(AppException):
    """Raised when a store item cannot be sold in the requested quantity."""

    def __init__(self, message: str = "This item is not available for purchase", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_ITEM_UNAVAILABLE",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class ValidationError(AppException):
    """Raised for malformed amounts, missing fields or out-of-range periods."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class StatementInProgressError(AppException):
    """Raised when the same statement is already being generated."""

    def __init__(self, account_id: int, month: int, year: int):
        super().__init__(
            message="Statement generation already in progress",
            error_code="ERR_STATEMENT_IN_PROGRESS",
            status_code=status.HTTP_409_CONFLICT,
            details={"account_id": account_id, "month": month, "year": year}
        )


def error_body(message: str, error_code: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error": message,
        "errorCode": error_code,
        "details": jsonable_encoder(details or {}),
    }


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.error_code, exc.details)
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.detail, error_code),
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body("Validation error", "ERR_VALIDATION", {"errors": exc.errors()})
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(
        "Unhandled exception on %s %s: %s",
        request.method, request.url.path, type(exc).__name__
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("An internal server error occurred", "ERR_INTERNAL_SERVER")
    )
