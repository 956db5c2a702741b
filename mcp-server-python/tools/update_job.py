"""
MCP tool handler for update_job.

Applies a partial edit. A status inside the edit is routed through the
stats ledger like any other stage change, whatever fields ride along.
"""

from typing import Any, Dict

from pydantic import ValidationError

from db.services import get_services
from models.errors import ToolError, create_internal_error
from models.identity import Identity
from schemas.board_tools import JobResponse, UpdateJobRequest, to_job_payload
from utils.pydantic_error_mapper import map_pydantic_validation_error


async def update_job(args: Dict[str, Any], identity: Identity) -> Dict[str, Any]:
    """
    Edit a job owned by the caller.

    Args:
        args: Dictionary containing:
            - id (str, required): Job id
            - changes (dict, required): Any of title, company, logoURL,
              notes, status; id, owner and timestamps are rejected
            - db_path (str, optional): Database path override
        identity: The caller

    Returns:
        {"job": {...}} after the edit, or an error payload
    """
    try:
        try:
            request = UpdateJobRequest.model_validate(args)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e

        services = get_services(request.db_path)
        job = await services.jobs.update(identity, request.id, request.changes)
        return JobResponse(job=to_job_payload(job)).model_dump(exclude_none=True)

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()
