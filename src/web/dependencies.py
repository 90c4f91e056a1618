"""
FastAPI dependencies for the Article Insight API.

Sessions come from the user_id cookie; route handlers ask for
``require_user`` and ``get_pipeline`` and never build either themselves.
"""

from typing import Optional
from fastapi import Cookie, HTTPException, status, Depends
from sqlalchemy.orm import Session

from src.web.database import get_db
from src.web.models import User
from src.web.services.pipeline_factory import Pipeline, build_pipeline


def get_current_user(
    user_id: Optional[str] = Cookie(None), db: Session = Depends(get_db)
) -> Optional[User]:
    """User named by the cookie, or None for a missing or malformed cookie."""
    if not user_id or not user_id.isdigit():
        return None
    return db.get(User, int(user_id))


def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No active user session.",
        )
    return user


def get_pipeline(db: Session = Depends(get_db)) -> Pipeline:
    """Analysis collaborators bound to the request's session."""
    return build_pipeline(db)


__all__ = ["get_db", "get_current_user", "require_user", "get_pipeline"]
