"""MCP tool handler for delete_job."""

from typing import Any, Dict

from pydantic import ValidationError

from db.services import get_services
from models.errors import ToolError, create_internal_error
from models.identity import Identity
from schemas.board_tools import DeleteJobResponse, JobIdRequest
from utils.pydantic_error_mapper import map_pydantic_validation_error


async def delete_job(args: Dict[str, Any], identity: Identity) -> Dict[str, Any]:
    """
    Delete a job owned by the caller and remove it from their stats.

    Deleting a job that is already gone returns NOT_FOUND and leaves the
    stats untouched.

    Args:
        args: Dictionary containing:
            - id (str, required): Job id
            - db_path (str, optional): Database path override
        identity: The caller

    Returns:
        {"id": str, "deleted": true, "status": <stage it was in>}, or an
        error payload
    """
    try:
        try:
            request = JobIdRequest.model_validate(args)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e

        services = get_services(request.db_path)
        job = await services.jobs.delete(identity, request.id)
        return DeleteJobResponse(id=job.id, deleted=True, status=job.status.value).model_dump(
            exclude_none=True
        )

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()
