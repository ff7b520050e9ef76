"""Usage-session routes. Guests are first-class; no route here needs sign-in."""

from typing import Optional

from fastapi import APIRouter, Depends

from app.middleware.auth import current_user
from app.models import User
from app.schemas import (
    CleanupResponse,
    SessionActivityUpdate,
    SessionRequest,
    SessionResponse,
    SuccessResponse,
)
from app.services import sessions as session_service
from app.services.storage import Storage, get_storage

router = APIRouter(prefix="/api/session", tags=["sessions"])


@router.post("", response_model=SessionResponse)
def get_or_create_session(
    data: SessionRequest,
    storage: Storage = Depends(get_storage),
    user: Optional[User] = Depends(current_user),
):
    """Return the session for this token, starting one if needed."""
    return session_service.get_or_create_session(
        storage, data.session_token, user.id if user else None
    )


@router.patch("/{session_id}", response_model=SuccessResponse)
def update_session_activity(
    session_id: str,
    data: SessionActivityUpdate,
    storage: Storage = Depends(get_storage),
):
    """Overwrite the activity counters with the client's absolute values."""
    session_service.update_activity(
        storage, session_id, data.policies_analyzed, data.questions_asked
    )
    return SuccessResponse()


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_sessions(storage: Storage = Depends(get_storage)):
    """Delete expired sessions (for an external cron)."""
    removed = session_service.clean_expired(storage)
    return CleanupResponse(removed=removed)
