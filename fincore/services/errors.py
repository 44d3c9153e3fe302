"""
fincore error handling

Specific error types with user-friendly messages and debugging context.
Engines return these inside a failed ``Result`` instead of raising them.
"""
from typing import Optional, Dict, Any
from fastapi import HTTPException
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    NOT_FOUND = "not_found"
    PERSISTENCE = "persistence"
    INTERNAL = "internal"


class ErrorCode(str, Enum):
    """Standardized error codes for client handling."""
    # Input errors
    VALIDATION_FAILED = "VALIDATION_FAILED"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_MATCH_SCORE = "INVALID_MATCH_SCORE"

    # Business rules
    DUPLICATE_MATCH = "DUPLICATE_MATCH"
    INVOICE_CANCELLED = "INVOICE_CANCELLED"
    TRANSACTION_ALREADY_MATCHED = "TRANSACTION_ALREADY_MATCHED"
    TRANSACTION_IS_RECONCILED = "TRANSACTION_IS_RECONCILED"
    LOW_CONFIDENCE_SCORE = "LOW_CONFIDENCE_SCORE"
    INSUFFICIENT_TRAINING_DATA = "INSUFFICIENT_TRAINING_DATA"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Lookups
    NOT_FOUND = "NOT_FOUND"

    # Processing errors
    DATABASE_ERROR = "DATABASE_ERROR"
    CATEGORIZATION_FAILED = "CATEGORIZATION_FAILED"
    FEEDBACK_RECORDING_FAILED = "FEEDBACK_RECORDING_FAILED"
    NOT_CONFIGURED = "NOT_CONFIGURED"


class FincoreError(Exception):
    """Base exception with structured error info."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.detail = detail
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        result = {
            "error": self.code.value,
            "kind": self.kind.value,
            "message": self.message
        }
        if self.detail:
            result["detail"] = self.detail
        if self.context:
            result["context"] = self.context
        return result


class ValidationError(FincoreError):
    """Malformed or missing input, detected before any state change."""

    kind = ErrorKind.VALIDATION

    def __init__(self, field: str, detail: str, code: ErrorCode = ErrorCode.VALIDATION_FAILED):
        super().__init__(
            code=code,
            message=f"Invalid value for '{field}'",
            detail=detail,
            context={"field": field}
        )


class BusinessRuleError(FincoreError):
    kind = ErrorKind.BUSINESS_RULE

    def __init__(self, code: ErrorCode, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(code=code, message=message, context=context)


class NotFoundError(FincoreError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{entity} not found",
            detail=f"No {entity.lower()} with id '{entity_id}'",
            context={"entity": entity, "id": entity_id}
        )


class PersistenceError(FincoreError):
    """Store unavailable or write failure. The store exception is kept as ``__cause__``."""

    kind = ErrorKind.PERSISTENCE

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(
            code=ErrorCode.DATABASE_ERROR,
            message=f"Store operation '{operation}' failed",
            detail=str(cause),
            context={"operation": operation}
        )
        self.__cause__ = cause


class CategorizationError(FincoreError):
    """Error during categorization."""

    kind = ErrorKind.PERSISTENCE

    def __init__(self, detail: str, cause: Optional[BaseException] = None):
        super().__init__(
            code=ErrorCode.CATEGORIZATION_FAILED,
            message="Transaction categorization failed",
            detail=detail
        )
        if cause is not None:
            self.__cause__ = cause


def from_pydantic(exc: Exception, default_field: str = "input") -> ValidationError:
    """Convert a pydantic validation failure into a fincore ValidationError."""
    errors = getattr(exc, "errors", None)
    if callable(errors):
        details = errors()
        if details:
            first = details[0]
            loc = ".".join(str(part) for part in first.get("loc", ())) or default_field
            return ValidationError(field=loc, detail=first.get("msg", str(exc)))
    return ValidationError(field=default_field, detail=str(exc))


def to_http_exception(error: FincoreError) -> HTTPException:
    """Convert FincoreError to HTTPException."""
    status_map = {
        ErrorKind.VALIDATION: 400,
        ErrorKind.BUSINESS_RULE: 422,
        ErrorKind.NOT_FOUND: 404,
        ErrorKind.PERSISTENCE: 500,
        ErrorKind.INTERNAL: 500,
    }
    if error.code == ErrorCode.DUPLICATE_MATCH:
        status_code = 409
    else:
        status_code = status_map.get(error.kind, 500)

    return HTTPException(
        status_code=status_code,
        detail=error.to_dict()
    )
