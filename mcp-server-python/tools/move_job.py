"""
MCP tool handler for move_job.

Moves a card to another stage. Moving a card to the stage it is already in
only refreshes its updatedAt and is reported as action 'noop'.
"""

from typing import Any, Dict

from pydantic import ValidationError

from db.services import get_services
from models.errors import ToolError, create_internal_error
from models.identity import Identity
from schemas.board_tools import MoveJobRequest, MoveJobResponse, to_job_payload
from utils.pydantic_error_mapper import map_pydantic_validation_error
from utils.validation import validate_stage


async def move_job(args: Dict[str, Any], identity: Identity) -> Dict[str, Any]:
    """
    Change the stage of a job owned by the caller.

    Args:
        args: Dictionary containing:
            - id (str, required): Job id
            - status (str, required): Target stage
            - db_path (str, optional): Database path override
        identity: The caller

    Returns:
        {
            "job": {...},
            "from_status": str,
            "to_status": str,
            "action": "moved" | "noop"
        }
        or an error payload (LEDGER_CONFLICT and TRANSPORT_FAILURE leave the
        card in its previous stage)
    """
    try:
        try:
            request = MoveJobRequest.model_validate(args)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e

        target = validate_stage(request.status)
        services = get_services(request.db_path)
        previous, job = await services.jobs.move(identity, request.id, target)

        return MoveJobResponse(
            job=to_job_payload(job),
            from_status=previous.value,
            to_status=job.status.value,
            action="noop" if previous == job.status else "moved",
        ).model_dump(exclude_none=True)

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()
