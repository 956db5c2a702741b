"""
MCP tool handler for add_job.

Creates a job card for the calling user. The stats ledger transition for the
new card runs inside the job store; if it cannot be recorded the card is
rolled back and the error is returned.
"""

from typing import Any, Dict

from pydantic import ValidationError

from db.services import get_services
from models.errors import ToolError, create_internal_error
from models.identity import Identity
from schemas.board_tools import AddJobRequest, JobResponse, to_job_payload
from utils.pydantic_error_mapper import map_pydantic_validation_error


async def add_job(args: Dict[str, Any], identity: Identity) -> Dict[str, Any]:
    """
    Add a job application card.

    Args:
        args: Dictionary containing:
            - fields (dict, required): title, company, and optionally
              logoURL, notes, status (default 'applied')
            - db_path (str, optional): Database path override
        identity: The caller

    Returns:
        {"job": {...}} with the stored card, or {"error": {...}} on failure
    """
    try:
        try:
            request = AddJobRequest.model_validate(args)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e

        services = get_services(request.db_path)
        job = await services.jobs.create(identity, request.fields)
        return JobResponse(job=to_job_payload(job)).model_dump(exclude_none=True)

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()
