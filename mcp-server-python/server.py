#!/usr/bin/env python3
"""
MCP Server entry point for the JobBoard application tracker.

This server exposes the job board core to LLM agents via the Model Context
Protocol: job cards moving through the pipeline stages
applied -> interview -> offer -> hired -> rejected, and the per-user stats
ledger that counts the cards in each stage.

The caller identity comes from JOBBOARD_USER_ID. Without it every tool
returns FORBIDDEN.

Usage:
    python server.py

The server runs in stdio mode by default, which is the standard transport
for MCP servers that are invoked by LLM agents.
"""

import logging
from mcp.server.fastmcp import FastMCP
from tools.add_job import add_job
from tools.read_jobs import get_job, list_jobs
from tools.update_job import update_job
from tools.move_job import move_job
from tools.delete_job import delete_job
from tools.stats import get_stats, rebuild_stats
from tools.user_profile import get_or_create_user
from config import get_config

# Create FastMCP server instance
config = get_config()
mcp = FastMCP(
    name=config.server_name,
    instructions=(
        "This server manages a job application board for one signed-in user. "
        "Each job card sits in exactly one stage: applied, interview, offer, hired or rejected. "
        "\n\n"
        "BOARD TOOLS:\n"
        "Use add_job to create a card (stage defaults to 'applied'). "
        "Use get_job and list_jobs to read cards; list_jobs can group them into board columns. "
        "Use move_job to change a card's stage and update_job for other edits. "
        "Use delete_job to remove a card."
        "\n\n"
        "STATS:\n"
        "Use get_stats to read the per-stage counters kept alongside the cards. "
        "The counters are maintained on every create, stage change and delete; "
        "rebuild_stats is a repair tool that recounts them from the cards."
        "\n\n"
        "Use get_or_create_user once on sign-in to store profile fields."
    ),
)


def _with_db_path(args: dict, db_path: str | None) -> dict:
    if db_path is not None:
        args["db_path"] = db_path
    return args


@mcp.tool(
    name="get_or_create_user",
    description=(
        "Return the signed-in user's profile and stats, creating the user document "
        "with all-zero stats on first use. Profile fields only fill gaps."
    ),
)
async def get_or_create_user_tool(
    email: str | None = None,
    display_name: str | None = None,
    photo_url: str | None = None,
    db_path: str | None = None,
) -> dict:
    """
    Return the user document, creating it on first sign-in.

    Args:
        email: Optional email to store when none is stored yet.
        display_name: Optional display name to store when none is stored yet.
        photo_url: Optional avatar URL to store when none is stored yet.
        db_path: Optional SQLite path override (default: data/board/jobboard.db).

    Returns:
        {"uid", "email"?, "displayName"?, "photoURL"?, "stats", "created"}
    """
    args = {}
    if email is not None:
        args["email"] = email
    if display_name is not None:
        args["display_name"] = display_name
    if photo_url is not None:
        args["photo_url"] = photo_url
    return await get_or_create_user(_with_db_path(args, db_path), config.get_identity())


@mcp.tool(
    name="add_job",
    description=(
        "Add a job application card. Requires title and company; optional logoURL, notes "
        "and status (default 'applied'). Updates the stats ledger."
    ),
)
async def add_job_tool(
    title: str,
    company: str,
    logoURL: str | None = None,
    notes: str | None = None,
    status: str | None = None,
    db_path: str | None = None,
) -> dict:
    """
    Add a job application card.

    Args:
        title: Job title (non-empty).
        company: Company name (non-empty).
        logoURL: Optional company logo reference.
        notes: Optional free-text notes.
        status: Optional initial stage (default: 'applied').
            Must be one of: applied, interview, offer, hired, rejected.
        db_path: Optional SQLite path override.

    Returns:
        {"job": {...}} or {"error": {"code", "message", "retryable"}}
    """
    fields = {"title": title, "company": company}
    if logoURL is not None:
        fields["logoURL"] = logoURL
    if notes is not None:
        fields["notes"] = notes
    if status is not None:
        fields["status"] = status
    return await add_job(_with_db_path({"fields": fields}, db_path), config.get_identity())


@mcp.tool(name="get_job", description="Fetch one job card owned by the signed-in user.")
async def get_job_tool(id: str, db_path: str | None = None) -> dict:
    """
    Fetch one job card.

    Args:
        id: Job id.
        db_path: Optional SQLite path override.

    Returns:
        {"job": {...}} or an error (NOT_FOUND, FORBIDDEN)
    """
    return await get_job(_with_db_path({"id": id}, db_path), config.get_identity())


@mcp.tool(
    name="list_jobs",
    description=(
        "List the signed-in user's job cards, most recently created first. "
        "With group_by_stage=true, returns the five board columns in display order."
    ),
)
async def list_jobs_tool(group_by_stage: bool | None = None, db_path: str | None = None) -> dict:
    """
    List job cards.

    Args:
        group_by_stage: Group into board columns (default: false).
        db_path: Optional SQLite path override.

    Returns:
        {"jobs": [...], "count": int} or {"columns": {...}, "count": int}
    """
    args = {}
    if group_by_stage is not None:
        args["group_by_stage"] = group_by_stage
    return await list_jobs(_with_db_path(args, db_path), config.get_identity())


@mcp.tool(
    name="update_job",
    description=(
        "Edit a job card. changes may contain title, company, logoURL, notes and status; "
        "id, owner and timestamps cannot be changed. A status change updates the stats ledger."
    ),
)
async def update_job_tool(id: str, changes: dict, db_path: str | None = None) -> dict:
    """
    Edit a job card.

    Args:
        id: Job id.
        changes: Partial fields to apply.
        db_path: Optional SQLite path override.

    Returns:
        {"job": {...}} or an error payload
    """
    return await update_job(
        _with_db_path({"id": id, "changes": changes}, db_path), config.get_identity()
    )


@mcp.tool(
    name="move_job",
    description=(
        "Move a job card to another stage and update the stats ledger. "
        "Reports action 'moved' or 'noop' (already in that stage)."
    ),
)
async def move_job_tool(id: str, status: str, db_path: str | None = None) -> dict:
    """
    Move a job card to another stage.

    Args:
        id: Job id.
        status: Target stage (applied, interview, offer, hired, rejected).
        db_path: Optional SQLite path override.

    Returns:
        {"job", "from_status", "to_status", "action"} or an error payload
    """
    return await move_job(
        _with_db_path({"id": id, "status": status}, db_path), config.get_identity()
    )


@mcp.tool(
    name="delete_job",
    description="Delete a job card and remove it from the stats ledger.",
)
async def delete_job_tool(id: str, db_path: str | None = None) -> dict:
    """
    Delete a job card.

    Args:
        id: Job id.
        db_path: Optional SQLite path override.

    Returns:
        {"id", "deleted", "status"} or an error payload
    """
    return await delete_job(_with_db_path({"id": id}, db_path), config.get_identity())


@mcp.tool(
    name="get_stats",
    description="Read the signed-in user's per-stage counters, total and percentages.",
)
async def get_stats_tool(db_path: str | None = None) -> dict:
    """
    Read the stats ledger.

    Args:
        db_path: Optional SQLite path override.

    Returns:
        {"user_id", "stats", "total", "percentages"}
    """
    return await get_stats(_with_db_path({}, db_path), config.get_identity())


@mcp.tool(
    name="rebuild_stats",
    description=(
        "Repair tool: recount the signed-in user's job cards per stage and write the "
        "counters back. Use dry_run=true to compare without writing."
    ),
)
async def rebuild_stats_tool(dry_run: bool | None = None, db_path: str | None = None) -> dict:
    """
    Recompute the stats ledger from the job cards.

    Args:
        dry_run: Report only (default: false).
        db_path: Optional SQLite path override.

    Returns:
        {"user_id", "dry_run", "changed", "before", "after"}
    """
    args = {}
    if dry_run is not None:
        args["dry_run"] = dry_run
    return await rebuild_stats(_with_db_path(args, db_path), config.get_identity())


def main():
    """
    Main entry point for the MCP server.

    Runs the server in stdio mode, which is the standard transport
    for MCP servers that are invoked by LLM agents.
    """
    # Load and setup configuration
    config.setup_logging()

    # Log startup information
    logger = logging.getLogger(__name__)
    logger.info("Starting JobBoard MCP Server")
    logger.info(f"Server name: {config.server_name}")
    logger.info(f"Database path: {config.db_path}")

    # Validate configuration and log warnings
    warnings = config.validate()
    for warning in warnings:
        logger.warning(warning)

    # Start the server
    logger.info("Server starting in stdio mode")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
