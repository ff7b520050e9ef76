"""Usage-session and anonymized-insight recording.

Sessions are keyed by a client-held token and expire 24 hours after
creation. Activity counters are overwritten with the caller's absolute
values, so concurrent updates are last-writer-wins.
"""

import logging
from typing import List, Optional

from app.config import get_settings
from app.models import AnalysisSession, UserInsight
from app.services.storage import DuplicateKeyError, Storage
from app.utils.datetime_helpers import hours_from_now

logger = logging.getLogger(__name__)


def get_or_create_session(
    storage: Storage, token: str, owner_id: Optional[str] = None
) -> AnalysisSession:
    """Return the session for ``token``, creating it with zero counters if absent.

    An existing session is returned unchanged, even if ``owner_id`` differs.
    """
    session = storage.get_session_by_token(token)
    if session is not None:
        return session

    try:
        session = storage.create_session({
            "user_id": owner_id,
            "session_token": token,
            "is_guest": 0 if owner_id else 1,
            "policies_analyzed": 0,
            "questions_asked": 0,
            "expires_at": hours_from_now(get_settings().session_ttl_hours),
        })
    except DuplicateKeyError:
        session = storage.get_session_by_token(token)
        if session is None:
            raise
        return session

    kind = "guest" if session.is_guest else "user"
    logger.info(f"Usage session started ({kind}) id={session.id}")
    return session


def update_activity(
    storage: Storage, session_id: str, policies_analyzed: int, questions_asked: int
) -> None:
    """Overwrite both counters and touch ``last_activity_at``. Unknown ids are ignored."""
    storage.update_session_activity(session_id, policies_analyzed, questions_asked)


def clean_expired(storage: Storage) -> int:
    """Delete every session whose expiry is at or before now. Returns the count."""
    removed = storage.clean_expired_sessions()
    if removed:
        logger.info(f"Removed {removed} expired usage session(s)")
    return removed


def record_insight(
    storage: Storage,
    policy_id: Optional[str],
    normalized_question: str,
    category: str,
    is_confused: bool,
) -> UserInsight:
    """Append an anonymous question record. Never stores a user id.

    A ``policy_id`` that no longer resolves is stored as null, the same
    state the row would reach once its analysis is deleted.
    """
    if policy_id and storage.get_policy_analysis(policy_id) is None:
        logger.debug(f"Insight references unknown analysis {policy_id}, unlinking")
        policy_id = None
    return storage.create_user_insight({
        "policy_id": policy_id,
        "normalized_question": normalized_question,
        "category": category,
        "is_confused": 1 if is_confused else 0,
    })


def insights_by_category(storage: Storage, category: str, limit: int = 50) -> List[UserInsight]:
    return storage.get_insights_by_category(category, limit)
