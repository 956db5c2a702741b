"""Pydantic schemas for the job board MCP tools."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import field_validator

from schemas.common import (
    DbPathMixin,
    JobIdMixin,
    StrictIgnoreRequest,
    StrictResponse,
    validate_optional_non_empty_str,
)


class JobIdRequest(JobIdMixin, DbPathMixin, StrictIgnoreRequest):
    """Request schema for get_job and delete_job."""


class AddJobRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for add_job; ``fields`` is checked by the job store."""

    fields: dict[str, Any]


class UpdateJobRequest(JobIdMixin, DbPathMixin, StrictIgnoreRequest):
    """Request schema for update_job."""

    changes: dict[str, Any]


class MoveJobRequest(JobIdMixin, DbPathMixin, StrictIgnoreRequest):
    """Request schema for move_job; the stage value is validated downstream."""

    status: str


class ListJobsRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for list_jobs."""

    group_by_stage: bool = False

    @field_validator("group_by_stage", mode="before")
    @classmethod
    def coerce_none(cls, value: Any) -> Any:
        if value is None:
            return False
        return value


class StatsRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for get_stats."""


class RebuildStatsRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for rebuild_stats."""

    dry_run: bool = False

    @field_validator("dry_run", mode="before")
    @classmethod
    def coerce_none(cls, value: Any) -> Any:
        if value is None:
            return False
        return value


class UserProfileRequest(DbPathMixin, StrictIgnoreRequest):
    """Request schema for get_or_create_user."""

    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

    @field_validator("email", "display_name", "photo_url")
    @classmethod
    def validate_profile_field(cls, value: Optional[str], info) -> Optional[str]:
        return validate_optional_non_empty_str(value, info.field_name)


class JobPayload(StrictResponse):
    """Job as returned by the tools (stored camelCase spelling)."""

    id: str
    owner: str
    title: str
    company: str
    logoURL: Optional[str] = None
    status: str
    notes: str = ""
    createdAt: int
    updatedAt: int


class JobResponse(StrictResponse):
    """Response schema for add_job, get_job and update_job."""

    job: JobPayload


class ListJobsResponse(StrictResponse):
    """Response schema for list_jobs."""

    jobs: Optional[list[JobPayload]] = None
    columns: Optional[dict[str, list[JobPayload]]] = None
    count: int


class MoveJobResponse(StrictResponse):
    """Response schema for move_job."""

    job: JobPayload
    from_status: str
    to_status: str
    action: str


class DeleteJobResponse(StrictResponse):
    """Response schema for delete_job."""

    id: str
    deleted: bool
    status: str


class StatsResponse(StrictResponse):
    """Response schema for get_stats."""

    user_id: str
    stats: dict[str, int]
    total: int
    percentages: dict[str, int]


class RebuildStatsResponse(StrictResponse):
    """Response schema for rebuild_stats."""

    user_id: str
    dry_run: bool
    changed: bool
    before: dict[str, int]
    after: dict[str, int]


class UserProfileResponse(StrictResponse):
    """Response schema for get_or_create_user."""

    uid: str
    email: Optional[str] = None
    displayName: Optional[str] = None
    photoURL: Optional[str] = None
    stats: dict[str, int]
    created: bool


def to_job_payload(job) -> JobPayload:
    """Map a stored JobDocument to the tool payload."""
    return JobPayload.model_validate(job.to_document())
