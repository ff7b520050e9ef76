"""Policy analysis history.

Only signed-in users get their analyses saved. Guests receive the same
record shape back, but nothing is written.
"""

import logging
from typing import Any, Dict, List, Optional

from app.models import PolicyAnalysis
from app.services.storage import Storage, build_policy_analysis

logger = logging.getLogger(__name__)


def save_analysis(
    storage: Storage, data: Dict[str, Any], owner_id: Optional[str]
) -> PolicyAnalysis:
    """Persist the analysis for ``owner_id``; return a transient record for guests."""
    if owner_id is None:
        return build_policy_analysis({**data, "user_id": None})

    analysis = storage.create_policy_analysis({**data, "user_id": owner_id})
    logger.info(f"Saved analysis {analysis.id} ({analysis.policy_type}, risk={analysis.risk_level})")
    return analysis


def list_by_owner(storage: Storage, owner_id: str, limit: int = 10) -> List[PolicyAnalysis]:
    return storage.get_user_policy_analyses(owner_id, limit)


def delete_analysis(storage: Storage, analysis_id: str, requester_id: str) -> bool:
    """Delete only if ``requester_id`` owns the row; the backend enforces it."""
    deleted = storage.delete_policy_analysis(analysis_id, requester_id)
    if deleted:
        logger.info(f"Deleted analysis {analysis_id}")
    return deleted
