"""
Error Handling for the JLPT backend

This module provides:
1. The exception hierarchy raised by the assessment engine
2. Conversion of arbitrary exceptions into structured error info
3. Error response generation and logging for the API layer
"""

import logging
import traceback
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

from jlpt_backend.common.logger import app_logger

logger = app_logger.getChild("error_handling")


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Error codes surfaced to API clients"""
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND_ERROR = "not_found_error"
    PERMISSION_DENIED = "permission_denied"

    # Assessment engine
    TEST_NOT_FOUND = "test_not_found"
    QUESTION_SET_NOT_FOUND = "question_set_not_found"
    ATTEMPT_NOT_FOUND = "attempt_not_found"
    NOT_ENTITLED = "not_entitled"
    COMPOSITION_VIOLATION = "composition_violation"
    INSUFFICIENT_CONTENT = "insufficient_content"

    DATABASE_ERROR = "database_error"


_SEVERITY_LEVELS = {
    ErrorSeverity.DEBUG: logging.DEBUG,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def split_stack_trace(cls, v):
        if isinstance(v, str):
            return v.splitlines()
        return v


class JLPTError(Exception):
    """Base exception class for all JLPT backend errors"""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            stack_trace=traceback.format_exc() if include_stack_trace else None,
            context=self.context
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a dictionary"""
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {self.cause}"
        return base_str


class ValidationError(JLPTError):
    """Malformed input: bad level, bad count, bad translation payload."""

    http_status = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class NotFoundError(JLPTError):
    """A Test, QuestionSet, Attempt or Entitlement does not exist."""

    http_status = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND_ERROR,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        details.update({"resource_type": resource_type, "resource_id": resource_id})
        super().__init__(
            message=message or f"{resource_type} {resource_id} not found",
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details,
            context=context
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class TestNotFoundError(NotFoundError):
    """Raised when a Test id does not resolve."""

    __test__ = False

    def __init__(self, test_id: int, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            resource_type="Test",
            resource_id=test_id,
            code=ErrorCode.TEST_NOT_FOUND,
            context=context
        )


class QuestionSetNotFoundError(NotFoundError):
    """Raised when one or more QuestionSet ids do not resolve."""

    def __init__(self, question_set_ids: Sequence[int], message: Optional[str] = None):
        ids = sorted(set(question_set_ids))
        super().__init__(
            resource_type="QuestionSet",
            resource_id=ids,
            message=message or f"QuestionSet(s) not found: {ids}",
            code=ErrorCode.QUESTION_SET_NOT_FOUND,
            details={"question_set_ids": ids}
        )
        self.question_set_ids = ids


class NotEntitledError(NotFoundError):
    """The user holds no Entitlement for the requested Test."""

    def __init__(self, user_id: int, test_id: int):
        super().__init__(
            resource_type="Entitlement",
            resource_id={"user_id": user_id, "test_id": test_id},
            message=f"User {user_id} is not entitled to test {test_id}",
            code=ErrorCode.NOT_ENTITLED
        )


class PermissionDeniedError(JLPTError):
    """The caller does not own the resource it tries to modify."""

    http_status = 403

    def __init__(
        self,
        message: str = "You do not have permission to modify this resource",
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.PERMISSION_DENIED,
            severity=ErrorSeverity.WARNING,
            details=details,
            context=context
        )


class CompositionViolation(JLPTError):
    """
    A QuestionSet grouping breaks the Test kind's composition rule.

    ``rule`` names the broken rule and ``question_set_ids`` lists the
    offending sets; both are echoed in ``details`` for API clients.
    """

    http_status = 400

    def __init__(
        self,
        rule: str,
        question_set_ids: Sequence[int],
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        ids = list(question_set_ids)
        payload = {"rule": rule, "question_set_ids": ids}
        payload.update(details or {})
        super().__init__(
            message=message,
            code=ErrorCode.COMPOSITION_VIOLATION,
            severity=ErrorSeverity.WARNING,
            details=payload
        )
        self.rule = rule
        self.question_set_ids = ids


class InsufficientContentError(JLPTError):
    """The candidate pool cannot satisfy a strategy that does not degrade."""

    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.INSUFFICIENT_CONTENT,
            severity=ErrorSeverity.WARNING,
            details=details
        )


class DatabaseError(JLPTError):
    """Unexpected failure talking to the relational store."""

    http_status = 500

    def __init__(self, message: str, cause: Optional[Exception] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.DATABASE_ERROR,
            severity=ErrorSeverity.ERROR,
            cause=cause,
            context=context
        )


def convert_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    context: Optional[Dict[str, Any]] = None
) -> JLPTError:
    """Wrap a foreign exception into a :class:`JLPTError`."""
    if isinstance(exception, JLPTError):
        if context:
            exception.context.update(context)
        return exception

    return JLPTError(
        message=str(exception) or default_message,
        code=ErrorCode.UNKNOWN_ERROR,
        severity=ErrorSeverity.ERROR,
        cause=exception,
        context=context
    )


def error_response(
    error: Union[JLPTError, Exception],
    include_details: bool = True
) -> Dict[str, Any]:
    """
    Generate the API error envelope.

    Args:
        error: The error to render
        include_details: Whether to include the ``details`` mapping

    Returns:
        ``{"status": "error", "code": ..., "message": ..., "details": ...}``
    """
    if not isinstance(error, JLPTError):
        error = convert_exception(error)

    response: Dict[str, Any] = {
        "status": "error",
        "code": error.code.value,
        "message": error.message
    }

    if include_details and error.details:
        response["details"] = error.to_error_info().details

    return response


def log_error(
    error: Union[JLPTError, Exception],
    include_stack_trace: bool = False,
    context: Optional[Dict[str, Any]] = None
) -> None:
    """Log an error at the level matching its severity."""
    if not isinstance(error, JLPTError):
        error = convert_exception(error, context=context)
        include_stack_trace = True
    elif context:
        error.context.update(context)

    message = f"[{error.code.value}] {error.message}"
    if error.context:
        context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
        message += f" (context: {context_str})"
    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {error.cause}"

    logger.log(
        _SEVERITY_LEVELS.get(error.severity, logging.ERROR),
        message,
        exc_info=include_stack_trace
    )
