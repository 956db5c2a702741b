"""
Tests for the MCP tool handlers: request validation, response structure and
error payloads.
"""

import asyncio

import pytest

from db.services import get_services, reset_services
from models.identity import Identity
from tools.add_job import add_job
from tools.delete_job import delete_job
from tools.move_job import move_job
from tools.read_jobs import get_job, list_jobs
from tools.stats import get_stats, rebuild_stats
from tools.update_job import update_job
from tools.user_profile import get_or_create_user

ALICE = Identity(user_id="alice")
BOB = Identity(user_id="bob")
NOBODY = Identity.anonymous()


@pytest.fixture
def db_path(tmp_path):
    reset_services()
    yield str(tmp_path / "board.db")
    reset_services()


def call(handler, args, identity=ALICE):
    return asyncio.run(handler(args, identity))


def add(db_path, identity=ALICE, **fields):
    fields.setdefault("title", "Engineer")
    fields.setdefault("company", "Acme")
    return call(add_job, {"fields": fields, "db_path": db_path}, identity)


class TestAddJob:
    """Tests for add_job."""

    def test_add_job_response(self, db_path):
        result = add(db_path, logoURL="https://acme.example/logo.png")

        job = result["job"]
        assert job["owner"] == "alice"
        assert job["status"] == "applied"
        assert job["logoURL"] == "https://acme.example/logo.png"
        assert job["createdAt"] == job["updatedAt"]
        assert set(job) == {
            "id", "owner", "title", "company", "logoURL", "status", "notes", "createdAt", "updatedAt",
        }

    def test_logo_omitted_when_absent(self, db_path):
        assert "logoURL" not in add(db_path)["job"]

    def test_missing_fields(self, db_path):
        result = call(add_job, {"db_path": db_path})
        assert result["error"]["code"] == "VALIDATION_ERROR"
        assert "fields" in result["error"]["message"]

    def test_invalid_stage(self, db_path):
        result = add(db_path, status="ghosted")
        assert result["error"]["code"] == "VALIDATION_ERROR"

    def test_anonymous(self, db_path):
        result = add(db_path, identity=NOBODY)
        assert result == {
            "error": {
                "code": "FORBIDDEN",
                "message": "No authenticated user; operation not permitted",
                "retryable": False,
            }
        }


class TestReadTools:
    """Tests for get_job and list_jobs."""

    def test_get_job(self, db_path):
        job_id = add(db_path)["job"]["id"]
        result = call(get_job, {"id": job_id, "db_path": db_path})
        assert result["job"]["id"] == job_id

    def test_get_job_not_found(self, db_path):
        result = call(get_job, {"id": "missing", "db_path": db_path})
        assert result["error"]["code"] == "NOT_FOUND"
        assert result["error"]["message"] == "Job not found: missing"

    def test_get_job_forbidden(self, db_path):
        job_id = add(db_path)["job"]["id"]
        result = call(get_job, {"id": job_id, "db_path": db_path}, BOB)
        assert result["error"]["code"] == "FORBIDDEN"

    def test_get_job_requires_string_id(self, db_path):
        result = call(get_job, {"id": 7, "db_path": db_path})
        assert result["error"]["code"] == "VALIDATION_ERROR"

    def test_list_jobs_flat(self, db_path):
        add(db_path, title="first")
        add(db_path, title="second")
        add(db_path, identity=BOB, title="other")

        result = call(list_jobs, {"db_path": db_path})

        assert result["count"] == 2
        assert [j["title"] for j in result["jobs"]] == ["second", "first"]
        assert "columns" not in result

    def test_list_jobs_grouped(self, db_path):
        add(db_path, title="a")
        add(db_path, title="b", status="hired")

        result = call(list_jobs, {"group_by_stage": True, "db_path": db_path})

        assert list(result["columns"]) == ["applied", "interview", "offer", "hired", "rejected"]
        assert [j["title"] for j in result["columns"]["hired"]] == ["b"]
        assert result["count"] == 2
        assert "jobs" not in result


class TestUpdateAndMove:
    """Tests for update_job and move_job."""

    def test_update_job(self, db_path):
        job_id = add(db_path)["job"]["id"]
        result = call(
            update_job,
            {"id": job_id, "changes": {"notes": "phone screen", "status": "interview"}, "db_path": db_path},
        )
        assert result["job"]["notes"] == "phone screen"
        assert call(get_stats, {"db_path": db_path})["stats"]["interview"] == 1

    def test_update_immutable_field(self, db_path):
        job_id = add(db_path)["job"]["id"]
        result = call(update_job, {"id": job_id, "changes": {"owner": "bob"}, "db_path": db_path})
        assert result["error"]["code"] == "VALIDATION_ERROR"
        assert result["error"]["message"] == "Field 'owner' cannot be changed"

    def test_update_changes_must_be_object(self, db_path):
        job_id = add(db_path)["job"]["id"]
        result = call(update_job, {"id": job_id, "changes": "title=x", "db_path": db_path})
        assert result["error"]["code"] == "VALIDATION_ERROR"

    def test_move_job(self, db_path):
        job_id = add(db_path)["job"]["id"]

        result = call(move_job, {"id": job_id, "status": "offer", "db_path": db_path})

        assert result["action"] == "moved"
        assert (result["from_status"], result["to_status"]) == ("applied", "offer")
        assert result["job"]["status"] == "offer"

    def test_move_to_same_stage_is_noop(self, db_path):
        created = add(db_path)["job"]

        result = call(move_job, {"id": created["id"], "status": "applied", "db_path": db_path})

        assert result["action"] == "noop"
        assert result["job"]["updatedAt"] >= created["updatedAt"]
        assert call(get_stats, {"db_path": db_path})["stats"]["applied"] == 1

    def test_concurrent_moves_report_what_each_write_saw(self, db_path):
        job_id = add(db_path)["job"]["id"]
        args = {"id": job_id, "status": "offer", "db_path": db_path}

        async def scenario():
            return await asyncio.gather(move_job(args, ALICE), move_job(args, ALICE))

        results = sorted(asyncio.run(scenario()), key=lambda r: r["action"])

        assert [(r["action"], r["from_status"]) for r in results] == [
            ("moved", "applied"),
            ("noop", "offer"),
        ]
        assert call(get_stats, {"db_path": db_path})["stats"]["offer"] == 1

    def test_move_invalid_stage(self, db_path):
        job_id = add(db_path)["job"]["id"]
        result = call(move_job, {"id": job_id, "status": "Offer", "db_path": db_path})
        assert result["error"]["code"] == "VALIDATION_ERROR"
        assert "Allowed values are" in result["error"]["message"]


class TestDeleteJob:
    """Tests for delete_job."""

    def test_delete_then_not_found(self, db_path):
        job_id = add(db_path, status="hired")["job"]["id"]

        first = call(delete_job, {"id": job_id, "db_path": db_path})
        second = call(delete_job, {"id": job_id, "db_path": db_path})

        assert first == {"id": job_id, "deleted": True, "status": "hired"}
        assert second["error"]["code"] == "NOT_FOUND"
        assert call(get_stats, {"db_path": db_path})["stats"]["hired"] == 0


class TestStatsTools:
    """Tests for get_stats and rebuild_stats."""

    def test_get_stats_summary(self, db_path):
        add(db_path)
        add(db_path, status="rejected")
        add(db_path, status="rejected")
        add(db_path, status="offer")

        result = call(get_stats, {"db_path": db_path})

        assert result["user_id"] == "alice"
        assert result["total"] == 4
        assert result["stats"]["rejected"] == 2
        assert result["percentages"] == {
            "applied": 25, "interview": 0, "offer": 25, "hired": 0, "rejected": 50,
        }

    def test_get_stats_new_user(self, db_path):
        result = call(get_stats, {"db_path": db_path}, BOB)
        assert result["total"] == 0

    def test_rebuild_stats(self, db_path):
        add(db_path, status="offer")
        store = get_services(db_path).store
        asyncio.run(store.put("users", "alice", {"uid": "alice", "stats": {"applied": 3}}))

        dry = call(rebuild_stats, {"dry_run": True, "db_path": db_path})
        assert dry["changed"] is True
        assert dry["dry_run"] is True
        assert call(get_stats, {"db_path": db_path})["stats"]["applied"] == 3

        result = call(rebuild_stats, {"db_path": db_path})
        assert result["after"]["offer"] == 1
        assert result["after"]["applied"] == 0
        assert call(get_stats, {"db_path": db_path})["stats"] == result["after"]

    def test_rebuild_stats_anonymous(self, db_path):
        result = call(rebuild_stats, {"db_path": db_path}, NOBODY)
        assert result["error"]["code"] == "FORBIDDEN"


class TestUserProfile:
    """Tests for get_or_create_user."""

    def test_create_then_get(self, db_path):
        first = call(
            get_or_create_user,
            {"email": "alice@example.com", "display_name": "Alice", "db_path": db_path},
        )
        second = call(get_or_create_user, {"db_path": db_path})

        assert first["created"] is True
        assert first["displayName"] == "Alice"
        assert first["stats"] == {"applied": 0, "interview": 0, "offer": 0, "hired": 0, "rejected": 0}
        assert second["created"] is False
        assert second["email"] == "alice@example.com"

    def test_blank_profile_field(self, db_path):
        result = call(get_or_create_user, {"email": "  ", "db_path": db_path})
        assert result["error"]["code"] == "VALIDATION_ERROR"


class TestDbPath:
    """Tests for the db_path override."""

    def test_empty_db_path(self, db_path):
        result = call(get_stats, {"db_path": ""})
        assert result["error"]["code"] == "VALIDATION_ERROR"

    def test_services_shared_per_path(self, db_path):
        assert get_services(db_path) is get_services(db_path)
