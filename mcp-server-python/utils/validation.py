"""
Input validation utilities for the job board tools and core.

Validates job ids, user ids, stages and the db_path override, and provides
the millisecond clock used for job timestamps.
"""

import time
from typing import Any, Dict, Optional

from models.errors import create_validation_error
from models.stage import Stage, allowed_stage_values, parse_stage

# Upper bound for ids coming in from tool calls
MAX_ID_LENGTH = 128


def now_ms() -> int:
    """Current time in milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def _validate_identifier(value, label: str) -> str:
    if value is None:
        raise create_validation_error(f"Invalid {label}: cannot be null")

    if not isinstance(value, str):
        raise create_validation_error(
            f"Invalid {label} type: expected string, got {type(value).__name__}"
        )

    if not value.strip():
        raise create_validation_error(f"Invalid {label}: cannot be empty")

    if value != value.strip():
        raise create_validation_error(
            f"Invalid {label}: '{value}' contains leading or trailing whitespace"
        )

    if "/" in value:
        raise create_validation_error(f"Invalid {label}: '{value}' must not contain '/'")

    if len(value) > MAX_ID_LENGTH:
        raise create_validation_error(
            f"Invalid {label}: length {len(value)} exceeds maximum of {MAX_ID_LENGTH}"
        )

    return value


def validate_job_id(job_id) -> str:
    """
    Validate a job id.

    Args:
        job_id: The job id value to validate

    Returns:
        Validated job id

    Raises:
        ToolError: If job_id is not a non-empty string without surrounding whitespace
    """
    return _validate_identifier(job_id, "job ID")


def validate_user_id(user_id) -> str:
    """Validate a user id with the same rules as job ids."""
    return _validate_identifier(user_id, "user ID")


def validate_stage(stage, field_name: str = "status") -> Stage:
    """
    Validate a pipeline stage value.

    Args:
        stage: A Stage member or its string value (case-sensitive)
        field_name: Name used in error messages

    Returns:
        The Stage member

    Raises:
        ToolError: If the value is null, not a string, or not a known stage
    """
    if stage is None:
        raise create_validation_error(f"Invalid {field_name}: cannot be null")

    if not isinstance(stage, str):
        raise create_validation_error(
            f"Invalid {field_name} type: expected string, got {type(stage).__name__}"
        )

    parsed = parse_stage(stage)
    if parsed is None:
        raise create_validation_error(
            f"Invalid {field_name} value: '{stage}'. Allowed values are: {allowed_stage_values()}"
        )
    return parsed


def validate_optional_stage(stage, field_name: str = "status") -> Optional[Stage]:
    """Like validate_stage, but None means "no stage"."""
    if stage is None:
        return None
    return validate_stage(stage, field_name)


def validate_fields_object(fields: Any, name: str = "fields") -> Dict[str, Any]:
    """Ensure a field payload is a JSON object."""
    if not isinstance(fields, dict):
        raise create_validation_error(
            f"Invalid {name} type: expected object, got {type(fields).__name__}"
        )
    return fields


def validate_db_path(db_path: Optional[str]) -> Optional[str]:
    """
    Validate the db_path parameter.

    Args:
        db_path: The database path (None for default)

    Returns:
        Validated db_path or None for default

    Raises:
        ToolError: If db_path is invalid
    """
    if db_path is None:
        return None

    if not isinstance(db_path, str):
        raise create_validation_error(
            f"Invalid db_path type: expected string, got {type(db_path).__name__}"
        )

    if not db_path.strip():
        raise create_validation_error("Invalid db_path: cannot be empty")

    return db_path
