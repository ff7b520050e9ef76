"""Clause knowledge cache.

Deduplicates plain-language clause explanations by the exact clause text.
No normalisation is applied before lookup: ``"Room rent"`` and
``"room rent"`` are different keys. Entries are never evicted and the
frequency counter only grows.
"""

import logging
from typing import List, Optional, Tuple

from app.models import ClauseKnowledge
from app.services.storage import DuplicateKeyError, Storage

logger = logging.getLogger(__name__)


def explain_clause(
    storage: Storage,
    clause_text: str,
    explanation: str,
    category: str,
    example: Optional[str] = None,
) -> Tuple[ClauseKnowledge, bool]:
    """Get-or-create the cache entry for ``clause_text``.

    Returns ``(entry, was_cached)``. On a hit the stored explanation is kept,
    the frequency is incremented and ``last_used_at`` refreshed. A concurrent
    first insert that loses the unique-key race is merged into the winner and
    reported as a hit.
    """
    existing = storage.get_clause_by_text(clause_text)
    if existing is None:
        try:
            entry = storage.create_clause({
                "clause_text": clause_text,
                "simplified_explanation": explanation,
                "category": category,
                "real_world_example": example,
            })
            logger.info(f"Clause cached ({category}) id={entry.id}")
            return entry, False
        except DuplicateKeyError:
            logger.info("Clause inserted concurrently, merging into existing entry")
            existing = storage.get_clause_by_text(clause_text)
            if existing is None:
                raise

    entry = storage.increment_clause_usage(existing.id) or existing
    return entry, True


def top_clauses(storage: Storage, limit: int = 20) -> List[ClauseKnowledge]:
    """Most frequently requested clauses first."""
    return storage.get_top_clauses(limit)
