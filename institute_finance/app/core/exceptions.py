"""
Custom exceptions and error handlers for consistent error responses.

Every domain failure carries a stable ``kind`` from the finance error taxonomy
(validation_error, invalid_transition, concurrency_conflict, storage_failure, ...)
plus a human-readable message. Handlers render all errors in one JSON shape.
"""

import logging
from decimal import Decimal
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("institute_finance.errors")


class AppException(Exception):
    """Base application exception."""

    kind: str = "internal_error"

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Rejected input (before any write). The caller corrects the request."""

    kind = "validation_error"

    def __init__(self, message: str, error_code: str = "ERR_VALIDATION_001", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class InvalidAmountError(ValidationError):
    """Raised when an amount is zero or negative."""

    def __init__(self, amount: Any):
        super().__init__(
            message=f"Amount must be greater than zero (got {amount})",
            error_code="ERR_VALIDATION_AMOUNT",
            details={"amount": str(amount)}
        )


class SameHolderError(ValidationError):
    """Raised when a transfer names the same holder on both sides."""

    def __init__(self, holder_id: int):
        super().__init__(
            message="Sender and receiver must be different holders",
            error_code="ERR_VALIDATION_SAME_HOLDER",
            details={"holder_id": holder_id}
        )


class DebitExceedsBalanceError(ValidationError):
    """Raised when negative float is forbidden and a debit would overdraw."""

    def __init__(self, holder_id: int, balance: Decimal, amount: Decimal):
        super().__init__(
            message=f"Insufficient float balance for holder {holder_id}: balance {balance}, required {amount}",
            error_code="ERR_VALIDATION_BALANCE",
            details={"holder_id": holder_id, "balance": str(balance), "amount": str(amount)}
        )


class HolderInactiveError(ValidationError):
    """Raised when a retired holder is named in a new posting."""

    def __init__(self, holder_id: int):
        super().__init__(
            message=f"Holder {holder_id} is retired and cannot hold float",
            error_code="ERR_VALIDATION_HOLDER_INACTIVE",
            details={"holder_id": holder_id}
        )


class InvalidTransitionError(AppException):
    """Raised when a status transition is not allowed from the current state."""

    kind = "invalid_transition"

    def __init__(self, entity: str, entity_id: Any, current: str, attempted: str):
        super().__init__(
            message=f"{entity} {entity_id} cannot move to '{attempted}' from '{current}'",
            error_code="ERR_TRANSITION_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"entity": entity, "id": entity_id, "current": current, "attempted": attempted}
        )


class ConcurrencyConflictError(AppException):
    """Lock or serialization failure. No partial effect; retry the whole operation."""

    kind = "concurrency_conflict"

    def __init__(self, message: str = "Concurrent update detected, please retry", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class StorageFailureError(AppException):
    """Persistence unavailable. The request failed without partial effect."""

    kind = "storage_failure"

    def __init__(self, message: str = "Storage is unavailable", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_STORAGE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    kind = "not_found"

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class HolderNotFoundError(ValidationError):
    """Raised when a request names a float holder that does not exist."""

    def __init__(self, holder_id: Any):
        super().__init__(
            message=f"Holder {holder_id} does not exist",
            error_code="ERR_VALIDATION_HOLDER_NOT_FOUND",
            details={"holder_id": holder_id}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "kind": exc.kind,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: ("ERR_BAD_REQUEST", "validation_error"),
        401: ("ERR_UNAUTHORIZED", "unauthorized"),
        403: ("ERR_FORBIDDEN", "forbidden"),
        404: ("ERR_NOT_FOUND", "not_found"),
        500: ("ERR_INTERNAL_SERVER", "internal_error")
    }

    error_code, kind = error_code_map.get(exc.status_code, ("ERR_UNKNOWN", "internal_error"))

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "kind": kind,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "kind": "validation_error",
            "message": "Validation error",
            "details": {
                "errors": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
                    for err in exc.errors()
                ]
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
            "kind": "internal_error",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
