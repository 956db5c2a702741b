"""MCP tool handler for get_or_create_user."""

from typing import Any, Dict

from pydantic import ValidationError

from db.services import get_services
from models.errors import ToolError, create_internal_error
from models.identity import Identity, require_user
from schemas.board_tools import UserProfileRequest, UserProfileResponse
from utils.pydantic_error_mapper import map_pydantic_validation_error


async def get_or_create_user(args: Dict[str, Any], identity: Identity) -> Dict[str, Any]:
    """
    Return the caller's user document, creating it on first sign-in.

    Profile fields given here only fill gaps; existing values and the stats
    counters are never overwritten.

    Args:
        args: Dictionary containing optional email, display_name, photo_url
            and db_path
        identity: The caller

    Returns:
        {"uid", "email"?, "displayName"?, "photoURL"?, "stats", "created"}
    """
    try:
        try:
            request = UserProfileRequest.model_validate(args)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e

        user_id = require_user(identity)
        services = get_services(request.db_path)
        user, created = await services.ledger.get_or_create_user(
            user_id,
            email=request.email,
            display_name=request.display_name,
            photo_url=request.photo_url,
        )
        return UserProfileResponse(
            uid=user.uid,
            email=user.email,
            displayName=user.display_name,
            photoURL=user.photo_url,
            stats=user.stats.counts(),
            created=created,
        ).model_dump(exclude_none=True)

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()
