"""
Commission Tracker - Error Handling

Every failure leaves the API in the same ``{"detail": {...}}`` envelope:
- AppException subclasses raised by services carry their own code
- Bare HTTPExceptions from routers and auth dependencies are mapped by status
- Payload validation errors list each invalid field
- Database failures are translated into client-safe messages
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("commission_tracker.errors")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    BULK_IMPORT_ERROR = "BULK_IMPORT_ERROR"

    # Authentication/Authorization Errors (401/403)
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    RESET_TOKEN_INVALID = "RESET_TOKEN_INVALID"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # Business Logic Errors (422)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    ADVISOR_REQUIRED = "ADVISOR_REQUIRED"
    CALCULATION_NEEDS_REVIEW = "CALCULATION_NEEDS_REVIEW"

    # External Service Errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    EMAIL_SERVICE_ERROR = "EMAIL_SERVICE_ERROR"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = _timestamp()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Request Exceptions
# ============================================================================

class BadRequestException(AppException):
    """Malformed or unusable request (400)"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_INPUT,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            field=field,
        )


class BulkImportException(BadRequestException):
    """Uploaded spreadsheet cannot be processed as a whole"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.BULK_IMPORT_ERROR,
            details=details,
            field="file",
        )


# ============================================================================
# Access Exceptions
# ============================================================================

class AuthorizationException(AppException):
    """Authorization denied exception"""

    def __init__(
        self,
        message: str = "Permission denied",
        required_permission: Optional[str] = None,
        code: ErrorCode = ErrorCode.FORBIDDEN,
    ):
        details = {}
        if required_permission:
            details["required_permission"] = required_permission
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
        )


class InsufficientPermissionsException(AuthorizationException):
    """Role is not allowed on this route"""

    def __init__(self, required_roles: str):
        super().__init__(
            message=f"Insufficient permissions. Required role: {required_roles}",
            required_permission=required_roles,
            code=ErrorCode.INSUFFICIENT_PERMISSIONS,
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, int, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id is not None:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={
                "resource_type": resource_type,
                "resource_id": str(resource_id) if resource_id is not None else None,
            },
        )


class RecordNotFoundException(NotFoundException):
    """Commission record missing or not visible to the caller"""

    def __init__(self, record_id: Union[str, UUID]):
        super().__init__(
            resource_type="Record",
            resource_id=record_id,
            code=ErrorCode.RECORD_NOT_FOUND,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class DuplicateEntryException(ConflictException):
    """Duplicate entry exception"""

    def __init__(self, resource_type: str, field: str, value: str):
        super().__init__(
            message=f"{resource_type} with {field} '{value}' already exists",
            resource_type=resource_type,
            code=ErrorCode.DUPLICATE_ENTRY,
            details={"field": field, "value": value},
        )


# ============================================================================
# Business Logic Exceptions
# ============================================================================

class BusinessRuleException(AppException):
    """Business rule violation exception"""

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if rule:
            _details["violated_rule"] = rule
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=_details,
        )


# ============================================================================
# External Service Exceptions
# ============================================================================

class ExternalServiceException(AppException):
    """External service error exception"""

    def __init__(
        self,
        service_name: str,
        message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        original_error: Optional[Exception] = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details={"service": service_name},
            original_error=original_error,
        )


class EmailDeliveryException(ExternalServiceException):
    """Email could not be handed to the mail server"""

    def __init__(self, original_error: Optional[Exception] = None):
        super().__init__(
            service_name="smtp",
            message="The email could not be sent. Please try again later.",
            code=ErrorCode.EMAIL_SERVICE_ERROR,
            original_error=original_error,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


# ============================================================================
# Handlers
# ============================================================================

# Codes for plain HTTPExceptions raised by routers and auth dependencies
HTTP_STATUS_CODES = {
    status.HTTP_400_BAD_REQUEST: ErrorCode.INVALID_INPUT,
    status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: ErrorCode.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    status.HTTP_409_CONFLICT: ErrorCode.RESOURCE_CONFLICT,
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: ErrorCode.BULK_IMPORT_ERROR,
    status.HTTP_422_UNPROCESSABLE_ENTITY: ErrorCode.VALIDATION_ERROR,
}

# Request sections that prefix every pydantic error location
REQUEST_SECTIONS = {"body", "query", "path", "header", "cookie"}


def _request_context(request: Request) -> Dict[str, str]:
    return {"path": request.url.path, "method": request.method}


def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Build the ``{"detail": {...}}`` envelope every error response shares."""
    detail: Dict[str, Any] = {
        "code": code.value,
        "message": message,
        "timestamp": _timestamp(),
    }
    if field:
        detail["field"] = field
    if details:
        detail["details"] = details
    return JSONResponse(status_code=status_code, content={"detail": detail})


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"{request.method} {request.url.path} rejected with {exc.code.value}: {exc.message}",
        extra=_request_context(request),
        exc_info=exc.original_error,
    )
    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


def http_error_code(status_code: int) -> ErrorCode:
    """Error code for a bare HTTP status; unknown client errors count as bad input."""
    if status_code in HTTP_STATUS_CODES:
        return HTTP_STATUS_CODES[status_code]
    if status_code < 500:
        return ErrorCode.INVALID_INPUT
    return ErrorCode.INTERNAL_ERROR


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    logger.info(
        f"{request.method} {request.url.path} answered {exc.status_code}: {message}",
        extra=_request_context(request),
    )

    response = create_error_response(
        code=http_error_code(exc.status_code),
        message=message,
        status_code=exc.status_code,
    )
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


def field_path(location: Any) -> str:
    """Dotted field name for a pydantic error location, without the request section."""
    parts = [str(part) for part in location]
    if parts and parts[0] in REQUEST_SECTIONS:
        parts = parts[1:]
    return ".".join(parts)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Report every invalid field of a request payload.

    The first offending field is also exposed as ``field`` so forms can
    focus it directly.
    """
    errors = [
        {"field": field_path(error["loc"]), "message": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    logger.info(
        f"{request.method} {request.url.path} has {len(errors)} invalid field(s)",
        extra=_request_context(request),
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Some fields are missing or invalid.",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
        field=errors[0]["field"] if errors else None,
    )


def classify_database_error(exc: SQLAlchemyError):
    """(code, message, status) shown to the client for a failed statement."""
    if isinstance(exc, IntegrityError):
        reason = str(exc.orig).lower() if exc.orig else ""
        if "unique" in reason or "duplicate" in reason:
            return (
                ErrorCode.DUPLICATE_ENTRY,
                "This entry already exists.",
                status.HTTP_409_CONFLICT,
            )
        if "foreign key" in reason:
            return (
                ErrorCode.DATA_INTEGRITY_ERROR,
                "The referenced advisor, program or record does not exist.",
                status.HTTP_422_UNPROCESSABLE_ENTITY,
            )
        return (
            ErrorCode.DATA_INTEGRITY_ERROR,
            "The change conflicts with stored records.",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    if isinstance(exc, OperationalError):
        return (
            ErrorCode.CONNECTION_ERROR,
            "The records database is unavailable. Please try again later.",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    if isinstance(exc, DataError):
        return (
            ErrorCode.DATABASE_ERROR,
            "A value does not fit the stored column.",
            status.HTTP_422_UNPROCESSABLE_ENTITY,
        )
    return (
        ErrorCode.DATABASE_ERROR,
        "The records database could not complete the request.",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    code, message, status_code = classify_database_error(exc)
    logger.error(
        f"{request.method} {request.url.path} failed in the database ({type(exc).__name__}): {exc}",
        extra=_request_context(request),
        exc_info=True,
    )
    return create_error_response(code=code, message=message, status_code=status_code)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical(
        f"{request.method} {request.url.path} crashed ({type(exc).__name__}): {exc}",
        extra=_request_context(request),
        exc_info=True,
    )
    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="Something went wrong on our side. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    "AppException",
    "ErrorCode",
    "BadRequestException",
    "BulkImportException",
    "AuthorizationException",
    "InsufficientPermissionsException",
    "NotFoundException",
    "RecordNotFoundException",
    "ConflictException",
    "DuplicateEntryException",
    "BusinessRuleException",
    "ExternalServiceException",
    "EmailDeliveryException",
    "setup_exception_handlers",
    "create_error_response",
]
