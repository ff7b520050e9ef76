"""Policy analysis history routes.

All routes are synchronous ``def`` so storage calls run in FastAPI's
thread pool instead of blocking the event loop.

Reads and deletes are owner-only. Creating is open to guests, but a
guest's analysis is returned without being saved.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.middleware.auth import current_user, require_user
from app.models import User
from app.schemas import PolicyAnalysisCreate, PolicyAnalysisResponse, SuccessResponse
from app.services import analyses as analysis_service
from app.services.storage import Storage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analyses", tags=["analyses"])


@router.post("", response_model=PolicyAnalysisResponse)
def create_analysis(
    data: PolicyAnalysisCreate,
    response: Response,
    storage: Storage = Depends(get_storage),
    user: Optional[User] = Depends(current_user),
):
    """Save an analysis for the signed-in user (201); echo it unsaved for guests (200)."""
    owner_id = user.id if user else None
    analysis = analysis_service.save_analysis(storage, data.model_dump(mode="json"), owner_id)
    response.status_code = status.HTTP_201_CREATED if owner_id else status.HTTP_200_OK
    return analysis


@router.get("", response_model=List[PolicyAnalysisResponse])
def list_analyses(
    limit: int = Query(10, ge=1, le=100),
    storage: Storage = Depends(get_storage),
    user: User = Depends(require_user),
):
    """The current user's analyses, newest first."""
    return analysis_service.list_by_owner(storage, user.id, limit)


@router.get("/{analysis_id}", response_model=PolicyAnalysisResponse)
def get_analysis(
    analysis_id: str,
    storage: Storage = Depends(get_storage),
    user: User = Depends(require_user),
):
    """A single analysis; 404 if missing, 403 if owned by someone else."""
    analysis = storage.get_policy_analysis(analysis_id)
    if analysis is None:
        raise HTTPException(status_code=404, detail="Analysis not found")
    if analysis.user_id != user.id:
        raise HTTPException(status_code=403, detail="Access denied")
    return analysis


@router.delete("/{analysis_id}", response_model=SuccessResponse)
def delete_analysis(
    analysis_id: str,
    storage: Storage = Depends(get_storage),
    user: User = Depends(require_user),
):
    """Delete an analysis owned by the current user."""
    if not analysis_service.delete_analysis(storage, analysis_id, user.id):
        raise HTTPException(status_code=404, detail="Analysis not found or access denied")
    return SuccessResponse()
