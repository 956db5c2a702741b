"""
Centralized, type-safe stage definitions for the job application board.

This module is the single source of truth for the pipeline stages a job
application card can sit in. ``Stage`` inherits from ``(str, Enum)`` so that
members compare equal to plain strings and serialize naturally to JSON at the
document and tool boundaries.

Display order is the definition order:
    applied -> interview -> offer -> hired -> rejected
"""

from enum import Enum
from typing import Dict, Optional, Tuple


class Stage(str, Enum):
    """Closed set of pipeline stages, declared in board display order."""

    APPLIED = "applied"
    INTERVIEW = "interview"
    OFFER = "offer"
    HIRED = "hired"
    REJECTED = "rejected"


# Board columns, left to right
STAGE_ORDER: Tuple[Stage, ...] = tuple(Stage)

# Stage assigned to a new job when the caller does not pick one
INITIAL_STAGE = Stage.APPLIED


def allowed_stage_values() -> str:
    """Comma-separated stage values in display order, for error messages."""
    return ", ".join(stage.value for stage in STAGE_ORDER)


def parse_stage(value) -> Optional[Stage]:
    """
    Convert a raw value to a Stage without raising.

    Args:
        value: A Stage member, a stage string, or anything else

    Returns:
        The matching Stage, or None when the value is not a known stage
    """
    if isinstance(value, Stage):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Stage(value)
    except ValueError:
        return None


def empty_counters() -> Dict[str, int]:
    """All-zero counter mapping keyed by stage value, in display order."""
    return {stage.value: 0 for stage in STAGE_ORDER}
