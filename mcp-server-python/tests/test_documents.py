"""
Unit tests for the stored document models and edit payloads.
"""

import pytest
from pydantic import ValidationError

from models.stage import Stage
from schemas.documents import (
    JobCreateFields,
    JobDocument,
    JobUpdateFields,
    StatsDocument,
    UserDocument,
)


def make_job_document(**overrides):
    data = {
        "id": "job-1",
        "owner": "user-1",
        "title": "Backend Engineer",
        "company": "Acme",
        "logoURL": "https://acme.example/logo.png",
        "status": "interview",
        "notes": "Referral from Sam",
        "createdAt": 1_700_000_000_000,
        "updatedAt": 1_700_000_500_000,
    }
    data.update(overrides)
    return data


class TestJobDocument:
    """Tests for JobDocument."""

    def test_parse_stored_shape(self):
        """camelCase stored fields map onto snake_case attributes."""
        job = JobDocument.model_validate(make_job_document())

        assert job.logo_url == "https://acme.example/logo.png"
        assert job.status is Stage.INTERVIEW
        assert job.created_at == 1_700_000_000_000

    def test_to_document_uses_stored_spelling(self):
        """to_document writes camelCase keys and plain string stages."""
        data = make_job_document()
        document = JobDocument.model_validate(data).to_document()

        assert document == data
        assert type(document["status"]) is str

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            JobDocument.model_validate(make_job_document(status="ghosted"))

    def test_extra_stored_keys_ignored(self):
        job = JobDocument.model_validate(make_job_document(legacy="x"))
        assert "legacy" not in job.to_document()


class TestStatsDocument:
    """Tests for StatsDocument."""

    def test_from_counts_fills_missing_and_clamps(self):
        """Missing counters read as zero and negatives are clamped."""
        stats = StatsDocument.from_counts({"applied": 3, "offer": -2})

        assert stats.counts() == {
            "applied": 3,
            "interview": 0,
            "offer": 0,
            "hired": 0,
            "rejected": 0,
        }

    def test_from_none(self):
        assert StatsDocument.from_counts(None).total == 0

    def test_negative_counter_rejected(self):
        with pytest.raises(ValidationError):
            StatsDocument(applied=-1)

    def test_total_and_percentages(self):
        """Percentages round half-up to whole numbers."""
        stats = StatsDocument(applied=1, interview=1, offer=1, hired=0, rejected=5)

        assert stats.total == 8
        # 12.5 -> 13, 62.5 -> 63
        assert stats.percentages() == {
            "applied": 13,
            "interview": 13,
            "offer": 13,
            "hired": 0,
            "rejected": 63,
        }

    def test_percentages_with_no_jobs(self):
        assert set(StatsDocument().percentages().values()) == {0}

    def test_summary(self):
        summary = StatsDocument(applied=1, interview=3).summary()

        assert summary["total"] == 4
        assert summary["stats"]["interview"] == 3
        assert summary["percentages"]["applied"] == 25


class TestUserDocument:
    """Tests for UserDocument."""

    def test_stats_filled_when_missing(self):
        user = UserDocument.model_validate({"uid": "u1"})
        assert user.stats.total == 0

    def test_partial_stats(self):
        user = UserDocument.model_validate({"uid": "u1", "stats": {"hired": 2}})
        assert user.stats.hired == 2
        assert user.stats.applied == 0

    def test_profile_aliases(self):
        user = UserDocument.model_validate(
            {"uid": "u1", "displayName": "Ada", "photoURL": "https://x/a.png"}
        )
        assert user.display_name == "Ada"
        assert user.to_document()["photoURL"] == "https://x/a.png"


class TestJobCreateFields:
    """Tests for the add-job payload."""

    def test_defaults(self):
        fields = JobCreateFields.model_validate({"title": "Engineer", "company": "Acme"})

        assert fields.status is Stage.APPLIED
        assert fields.notes == ""
        assert fields.logo_url is None

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            JobCreateFields.model_validate({"title": "  ", "company": "Acme"})

    def test_missing_company_rejected(self):
        with pytest.raises(ValidationError):
            JobCreateFields.model_validate({"title": "Engineer"})

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            JobCreateFields.model_validate({"title": "E", "company": "A", "salary": 1})

    def test_blank_logo_becomes_none(self):
        fields = JobCreateFields.model_validate({"title": "E", "company": "A", "logoURL": " "})
        assert fields.logo_url is None


class TestJobUpdateFields:
    """Tests for the edit payload."""

    def test_changes_only_contains_given_keys(self):
        edit = JobUpdateFields.model_validate({"title": "Staff Engineer"})
        assert edit.changes() == {"title": "Staff Engineer"}

    def test_status_change_serialized_as_string(self):
        edit = JobUpdateFields.model_validate({"status": "offer", "notes": ""})
        assert edit.changes() == {"status": "offer", "notes": ""}

    def test_logo_uses_stored_spelling(self):
        edit = JobUpdateFields.model_validate({"logoURL": "https://x/l.png"})
        assert edit.changes() == {"logoURL": "https://x/l.png"}

    def test_logo_can_be_cleared(self):
        edit = JobUpdateFields.model_validate({"logoURL": None})
        assert edit.changes() == {"logoURL": None}

    @pytest.mark.parametrize("field", ["id", "owner", "createdAt", "updatedAt"])
    def test_immutable_fields_rejected(self, field):
        with pytest.raises(ValidationError) as exc_info:
            JobUpdateFields.model_validate({field: "x"})
        assert f"Field '{field}' cannot be changed" in str(exc_info.value)

    def test_null_status_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            JobUpdateFields.model_validate({"status": None})
        assert "cannot be null" in str(exc_info.value)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            JobUpdateFields.model_validate({"salary": 100})
