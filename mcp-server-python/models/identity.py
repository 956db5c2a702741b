"""
Caller identity passed explicitly through the board core.

The authentication collaborator is out of scope; whatever authenticated the
caller hands an ``Identity`` to the Job Store, Subscription Hub, Board
Controller and tool handlers. An identity without a user id permits nothing.
"""

from dataclasses import dataclass
from typing import Optional

from models.errors import create_forbidden_error


@dataclass(frozen=True)
class Identity:
    """The current authenticated user, or nobody."""

    user_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id and self.user_id.strip())

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(user_id=None)


def require_user(identity: Optional[Identity]) -> str:
    """
    Return the caller's user id or reject the operation.

    Raises:
        ToolError: FORBIDDEN when no user is authenticated
    """
    if identity is None or not identity.is_authenticated:
        raise create_forbidden_error("No authenticated user; operation not permitted")
    return identity.user_id


def require_owner(identity: Optional[Identity], owner: str, job_id: str) -> str:
    """
    Ensure the caller owns the job they are touching.

    Args:
        identity: Caller identity
        owner: Owner recorded on the job document
        job_id: Job id, for the error message

    Returns:
        The caller's user id

    Raises:
        ToolError: FORBIDDEN when anonymous or when the owner does not match
    """
    user_id = require_user(identity)
    if user_id != owner:
        raise create_forbidden_error(f"Job {job_id} is not owned by the current user")
    return user_id
