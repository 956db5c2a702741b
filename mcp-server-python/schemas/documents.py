"""
Pydantic models for the persisted job and user documents.

Field names follow the stored document shape (camelCase) through aliases,
while Python code uses snake_case attributes. ``populate_by_name`` lets both
spellings in, and ``to_document()`` always writes the stored spelling.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.stage import INITIAL_STAGE, STAGE_ORDER, Stage
from schemas.common import validate_required_non_empty_str

# Fields an edit may never touch
IMMUTABLE_JOB_FIELDS = ("id", "owner", "createdAt", "created_at", "updatedAt", "updated_at")


class DocumentModel(BaseModel):
    """Base for stored documents: alias-aware, tolerant of unknown keys."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the stored (camelCase, JSON-safe) shape."""
        return self.model_dump(by_alias=True, mode="json")


class JobDocument(DocumentModel):
    """One job application card."""

    id: str
    owner: str
    title: str
    company: str
    logo_url: Optional[str] = Field(default=None, alias="logoURL")
    status: Stage
    notes: str = ""
    created_at: int = Field(alias="createdAt", ge=0)
    updated_at: int = Field(alias="updatedAt", ge=0)


class StatsDocument(DocumentModel):
    """Per-user count of jobs in each stage."""

    applied: int = Field(default=0, ge=0)
    interview: int = Field(default=0, ge=0)
    offer: int = Field(default=0, ge=0)
    hired: int = Field(default=0, ge=0)
    rejected: int = Field(default=0, ge=0)

    @classmethod
    def from_counts(cls, counts: Optional[Dict[str, Any]]) -> "StatsDocument":
        """Build from a raw counter mapping; missing or negative counts read as zero."""
        counts = counts or {}
        return cls(
            **{stage.value: max(0, int(counts.get(stage.value) or 0)) for stage in STAGE_ORDER}
        )

    def counts(self) -> Dict[str, int]:
        return {stage.value: getattr(self, stage.value) for stage in STAGE_ORDER}

    @property
    def total(self) -> int:
        return sum(self.counts().values())

    def percentages(self) -> Dict[str, int]:
        """Share of applications per stage, rounded half-up to whole percent."""
        total = self.total
        if total == 0:
            return {stage.value: 0 for stage in STAGE_ORDER}
        return {
            stage: (count * 200 + total) // (2 * total)
            for stage, count in self.counts().items()
        }

    def summary(self) -> Dict[str, Any]:
        """Counters plus the dashboard totals."""
        return {
            "stats": self.counts(),
            "total": self.total,
            "percentages": self.percentages(),
        }


class UserDocument(DocumentModel):
    """User profile with the embedded stats ledger."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    stats: StatsDocument = Field(default_factory=StatsDocument)

    @field_validator("stats", mode="before")
    @classmethod
    def fill_missing_counters(cls, value):
        if value is None:
            return StatsDocument()
        if isinstance(value, dict):
            return StatsDocument.from_counts(value)
        return value


class JobCreateFields(BaseModel):
    """Fields accepted when adding a job."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: str
    company: str
    logo_url: Optional[str] = Field(default=None, alias="logoURL")
    notes: str = ""
    status: Stage = INITIAL_STAGE

    @field_validator("title", "company")
    @classmethod
    def validate_required_text(cls, value: str, info) -> str:
        return validate_required_non_empty_str(value, info.field_name)

    @field_validator("logo_url")
    @classmethod
    def blank_logo_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class JobUpdateFields(BaseModel):
    """Partial edit of a job; only the keys present are changed."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: Optional[str] = None
    company: Optional[str] = None
    logo_url: Optional[str] = Field(default=None, alias="logoURL")
    notes: Optional[str] = None
    status: Optional[Stage] = None

    @model_validator(mode="before")
    @classmethod
    def reject_immutable_and_null(cls, data):
        if not isinstance(data, dict):
            return data
        for key in IMMUTABLE_JOB_FIELDS:
            if key in data:
                raise ValueError(f"Field '{key}' cannot be changed")
        for key in ("title", "company", "notes", "status"):
            if key in data and data[key] is None:
                raise ValueError(f"Field '{key}' cannot be null")
        return data

    @field_validator("title", "company")
    @classmethod
    def validate_required_text(cls, value: Optional[str], info) -> Optional[str]:
        if value is None:
            return None
        return validate_required_non_empty_str(value, info.field_name)

    @field_validator("logo_url")
    @classmethod
    def blank_logo_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    def changes(self) -> Dict[str, Any]:
        """Changed fields in stored (camelCase) spelling."""
        return self.model_dump(exclude_unset=True, by_alias=True, mode="json")
