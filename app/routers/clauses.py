"""Clause knowledge routes (public)."""

from typing import List

from fastapi import APIRouter, Depends, Query

from app.schemas import ClauseExplainRequest, ClauseExplainResponse, ClauseResponse
from app.services.clauses import explain_clause, top_clauses
from app.services.storage import Storage, get_storage

router = APIRouter(prefix="/api/clauses", tags=["clauses"])


@router.post("/explain", response_model=ClauseExplainResponse)
def explain(data: ClauseExplainRequest, storage: Storage = Depends(get_storage)):
    """Get or create the cached explanation for a clause."""
    clause, cached = explain_clause(
        storage,
        data.clause_text,
        data.simplified_explanation,
        data.category.value,
        data.real_world_example,
    )
    return ClauseExplainResponse(clause=ClauseResponse.model_validate(clause), cached=cached)


@router.get("/top", response_model=List[ClauseResponse])
def list_top_clauses(
    limit: int = Query(20, ge=1, le=200),
    storage: Storage = Depends(get_storage),
):
    """Most frequently explained clauses."""
    return top_clauses(storage, limit)
