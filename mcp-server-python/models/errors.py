"""
Error model for the job board core and its MCP tools.

Provides structured error codes and sanitized error messages. Every failure
that crosses a component boundary is a ``ToolError`` carrying one of the
codes below, so callers can branch on ``error.code`` and decide whether a
retry makes sense from ``error.retryable``.
"""

from enum import Enum
from typing import Optional
import re


class ErrorCode(str, Enum):
    """Structured error codes for the board core and MCP tools."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    LEDGER_CONFLICT = "LEDGER_CONFLICT"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ToolError(Exception):
    """Base exception for board errors with structured error information."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        retryable: bool = False,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize a tool error.

        Args:
            code: The error code
            message: Human-readable error message
            retryable: Whether the operation can be retried
            original_error: The original exception if this wraps another error
        """
        self.code = code
        self.message = message
        self.retryable = retryable
        self.original_error = original_error
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert error to dictionary format for MCP response."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "retryable": self.retryable
            }
        }


def sanitize_path(path: str) -> str:
    """
    Sanitize file paths to avoid exposing sensitive system details.

    Returns only the basename for absolute paths, keeps relative paths.
    """
    import os
    if os.path.isabs(path):
        return os.path.basename(path)
    return path


def sanitize_sql_error(error_msg: str) -> str:
    """
    Sanitize SQL error messages to remove sensitive details.

    Removes SQL fragments and absolute paths, keeping only actionable
    information.

    Args:
        error_msg: The original error message

    Returns:
        Sanitized error message
    """
    sanitized = re.sub(r'SQL:.*', '', error_msg, flags=re.IGNORECASE)
    sanitized = re.sub(
        r'\b(SELECT|INSERT|UPDATE|DELETE)\b.*', '[SQL query]', sanitized, flags=re.IGNORECASE
    )
    sanitized = re.sub(r'/[^\s]+/', '[path]/', sanitized)
    return sanitized.strip()


def sanitize_stack_trace(error_msg: str) -> str:
    """Keep only the first line of a multi-line error message."""
    lines = error_msg.split('\n')
    if lines:
        return lines[0].strip()
    return error_msg


def create_validation_error(message: str) -> ToolError:
    """
    Create a validation error.

    Args:
        message: Description of the validation failure

    Returns:
        ToolError with VALIDATION_ERROR code
    """
    return ToolError(
        code=ErrorCode.VALIDATION_ERROR,
        message=message,
        retryable=False
    )


def create_not_found_error(kind: str, identifier: str) -> ToolError:
    """
    Create a not-found error for a missing job or user.

    Args:
        kind: Record kind for the message (e.g., "Job", "User")
        identifier: The id that was looked up

    Returns:
        ToolError with NOT_FOUND code
    """
    return ToolError(
        code=ErrorCode.NOT_FOUND,
        message=f"{kind} not found: {identifier}",
        retryable=False
    )


def create_forbidden_error(message: str) -> ToolError:
    """
    Create a forbidden error for owner mismatches and anonymous callers.

    Args:
        message: Description of the rejected access

    Returns:
        ToolError with FORBIDDEN code
    """
    return ToolError(
        code=ErrorCode.FORBIDDEN,
        message=message,
        retryable=False
    )


def create_conflict_error(resource: str, attempts: int) -> ToolError:
    """
    Create a conflict error after compare-and-set retries ran out.

    Args:
        resource: Description of the contended record
        attempts: Number of read-modify-write attempts made

    Returns:
        ToolError with LEDGER_CONFLICT code
    """
    return ToolError(
        code=ErrorCode.LEDGER_CONFLICT,
        message=f"{resource} kept changing concurrently; gave up after {attempts} attempts",
        retryable=True
    )


def create_ledger_conflict_error(user_id: str, attempts: int) -> ToolError:
    """Conflict error for a user's stats ledger."""
    return create_conflict_error(f"Stats ledger for user {user_id}", attempts)


def create_transport_error(
    message: str, retryable: bool = True, original_error: Optional[Exception] = None
) -> ToolError:
    """
    Create a transport error for storage that is unavailable or failing.

    Args:
        message: Description of the storage failure
        retryable: Whether the operation can be retried
        original_error: The original exception

    Returns:
        ToolError with TRANSPORT_FAILURE code
    """
    sanitized_message = sanitize_sql_error(message)
    sanitized_message = sanitize_stack_trace(sanitized_message)

    return ToolError(
        code=ErrorCode.TRANSPORT_FAILURE,
        message=f"Storage error: {sanitized_message}",
        retryable=retryable,
        original_error=original_error
    )


def create_internal_error(message: str, original_error: Optional[Exception] = None) -> ToolError:
    """
    Create an internal error for unexpected exceptions.

    Args:
        message: Description of the internal error
        original_error: The original exception

    Returns:
        ToolError with INTERNAL_ERROR code
    """
    sanitized_message = sanitize_stack_trace(message)

    return ToolError(
        code=ErrorCode.INTERNAL_ERROR,
        message=f"Internal error: {sanitized_message}",
        retryable=True,
        original_error=original_error
    )
