"""
MCP tool handlers for get_stats and rebuild_stats.

get_stats reads the caller's ledger as stored. rebuild_stats is a repair
operation: it recounts the caller's jobs and writes the counters back
through the same compare-and-set loop that normal transitions use.
"""

import logging
from typing import Any, Dict

from pydantic import ValidationError

from db.services import get_services
from models.errors import ToolError, create_internal_error
from models.identity import Identity, require_user
from schemas.board_tools import (
    RebuildStatsRequest,
    RebuildStatsResponse,
    StatsRequest,
    StatsResponse,
)
from utils.pydantic_error_mapper import map_pydantic_validation_error

logger = logging.getLogger(__name__)


async def get_stats(args: Dict[str, Any], identity: Identity) -> Dict[str, Any]:
    """
    Read the caller's stage counters with dashboard totals.

    Args:
        args: Dictionary containing:
            - db_path (str, optional): Database path override
        identity: The caller

    Returns:
        {
            "user_id": str,
            "stats": {"applied": int, ..., "rejected": int},
            "total": int,
            "percentages": {"applied": int, ...}
        }
    """
    try:
        try:
            request = StatsRequest.model_validate(args)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e

        user_id = require_user(identity)
        services = get_services(request.db_path)
        stats = await services.ledger.read(user_id)
        return StatsResponse(user_id=user_id, **stats.summary()).model_dump(exclude_none=True)

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()


async def rebuild_stats(args: Dict[str, Any], identity: Identity) -> Dict[str, Any]:
    """
    Recompute the caller's counters from their jobs.

    Args:
        args: Dictionary containing:
            - dry_run (bool, optional): Report without writing (default false)
            - db_path (str, optional): Database path override
        identity: The caller

    Returns:
        {"user_id", "dry_run", "changed", "before": {...}, "after": {...}}
    """
    try:
        try:
            request = RebuildStatsRequest.model_validate(args)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e

        user_id = require_user(identity)
        services = get_services(request.db_path)
        before, after = await services.ledger.rebuild(user_id, dry_run=request.dry_run)
        changed = before != after
        if changed and request.dry_run:
            logger.info(f"Stats for user {user_id} are out of date (dry run, nothing written)")

        return RebuildStatsResponse(
            user_id=user_id,
            dry_run=request.dry_run,
            changed=changed,
            before=before.counts(),
            after=after.counts(),
        ).model_dump(exclude_none=True)

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()
