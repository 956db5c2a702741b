"""
MCP tool handlers for get_job and list_jobs.

Both are read-only. list_jobs returns the caller's cards most recently
created first, either as one flat list or grouped into the board columns.
"""

from typing import Any, Dict

from pydantic import ValidationError

from db.services import get_services
from models.errors import ToolError, create_internal_error
from models.identity import Identity
from models.stage import STAGE_ORDER
from schemas.board_tools import (
    JobIdRequest,
    JobResponse,
    ListJobsRequest,
    ListJobsResponse,
    to_job_payload,
)
from utils.pydantic_error_mapper import map_pydantic_validation_error


async def get_job(args: Dict[str, Any], identity: Identity) -> Dict[str, Any]:
    """
    Fetch one job owned by the caller.

    Args:
        args: Dictionary containing:
            - id (str, required): Job id
            - db_path (str, optional): Database path override
        identity: The caller

    Returns:
        {"job": {...}}, or an error payload (NOT_FOUND, FORBIDDEN, ...)
    """
    try:
        try:
            request = JobIdRequest.model_validate(args)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e

        services = get_services(request.db_path)
        job = await services.jobs.read(identity, request.id)
        return JobResponse(job=to_job_payload(job)).model_dump(exclude_none=True)

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()


async def list_jobs(args: Dict[str, Any], identity: Identity) -> Dict[str, Any]:
    """
    List the caller's jobs.

    Args:
        args: Dictionary containing:
            - group_by_stage (bool, optional): Return board columns instead
              of a flat list (default false)
            - db_path (str, optional): Database path override
        identity: The caller

    Returns:
        {"jobs": [...], "count": int} or, grouped,
        {"columns": {"applied": [...], ..., "rejected": [...]}, "count": int}
    """
    try:
        try:
            request = ListJobsRequest.model_validate(args)
        except ValidationError as e:
            raise map_pydantic_validation_error(e) from e

        services = get_services(request.db_path)
        jobs = await services.jobs.list_by_owner(identity)
        payloads = [to_job_payload(job) for job in jobs]

        if request.group_by_stage:
            columns = {stage.value: [] for stage in STAGE_ORDER}
            for payload in payloads:
                columns[payload.status].append(payload)
            response = ListJobsResponse(columns=columns, count=len(payloads))
        else:
            response = ListJobsResponse(jobs=payloads, count=len(payloads))
        return response.model_dump(exclude_none=True)

    except ToolError as e:
        return e.to_dict()

    except Exception as e:
        return create_internal_error(message=str(e), original_error=e).to_dict()
