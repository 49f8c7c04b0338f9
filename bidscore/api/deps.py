"""
FastAPI dependencies (DB session, current user)
"""
from fastapi import Depends, Request, HTTPException, status
from sqlalchemy.orm import Session

from bidscore.infrastructure.db.session import get_db as _get_db
from bidscore.infrastructure.db.models import User, ProjectModel, ProposalModel


# Re-export get_db for convenience
get_db = _get_db


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Resolve the current user from the session.

    The login flow lives outside this service; it only has to put
    ``user_id`` into the signed session cookie.

    Raises:
        HTTPException(401): if not logged in or the user no longer exists
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    return user


def can_manage_scoring(user: User, project: ProjectModel) -> bool:
    """Only the project's client or an admin may define templates and score."""
    return user.is_admin or user.role == "admin" or project.client_id == user.id


def can_view_proposal_scores(user: User, proposal: ProposalModel) -> bool:
    """The proposal's bidding lead may read its own scores and rank (read-only)."""
    if proposal.lead_id is not None and proposal.lead_id == user.id:
        return True
    return can_manage_scoring(user, proposal.project)
