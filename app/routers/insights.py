"""Anonymized question-insight routes (public analytics).

Question text is scrubbed again on arrival, so a client that skips its
own normalisation still cannot store raw PII.
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from app.schemas import InsightCreate, InsightResponse, QuestionCategory
from app.services.sessions import insights_by_category, record_insight
from app.services.storage import Storage, get_storage
from app.utils.anonymize import normalize_question

router = APIRouter(prefix="/api/insights", tags=["insights"])


@router.post("", response_model=InsightResponse)
def create_insight(data: InsightCreate, storage: Storage = Depends(get_storage)):
    return record_insight(
        storage,
        data.policy_id,
        normalize_question(data.normalized_question),
        data.category.value,
        bool(data.is_confused),
    )


@router.get("/{category}", response_model=List[InsightResponse])
def list_insights(
    category: QuestionCategory,
    limit: int = Query(50, ge=1, le=500),
    storage: Storage = Depends(get_storage),
):
    """Most recent insights in a category."""
    return insights_by_category(storage, category.value, limit)
