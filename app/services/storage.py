"""Storage capability and the in-memory backend.

``Storage`` is the single data-access interface used by the services and
routers. Two implementations satisfy it structurally:

  - ``MemStorage`` (this module): dictionaries keyed by id, for demos and tests
  - ``DbStorage`` (``app.services.db_storage``): SQLAlchemy over DATABASE_URL

The backend is chosen once at process start from ``STORAGE_BACKEND``.
Records are the ORM classes from ``app.models``; the in-memory backend
keeps them as transient (never-attached) instances.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Protocol

from app.config import get_settings
from app.models import (
    AnalysisSession,
    ClauseKnowledge,
    PolicyAnalysis,
    User,
    UserInsight,
    new_id,
)
from app.utils.datetime_helpers import is_expired, utcnow

logger = logging.getLogger(__name__)


class DuplicateKeyError(Exception):
    """A unique key (clause text, session token, username, google id) already exists."""

    def __init__(self, entity: str, key: str):
        super().__init__(f"Duplicate {entity}: {key!r}")
        self.entity = entity
        self.key = key


class Storage(Protocol):
    # ---- users ----
    def get_user(self, user_id: str) -> Optional[User]: ...
    def get_user_by_username(self, username: str) -> Optional[User]: ...
    def get_user_by_google_id(self, google_id: str) -> Optional[User]: ...
    def get_user_by_email(self, email: str) -> Optional[User]: ...
    def create_user(self, data: Dict[str, Any]) -> User: ...
    def update_user_last_login(self, user_id: str) -> None: ...

    # ---- policy analyses ----
    def create_policy_analysis(self, data: Dict[str, Any]) -> PolicyAnalysis: ...
    def get_policy_analysis(self, analysis_id: str) -> Optional[PolicyAnalysis]: ...
    def get_user_policy_analyses(self, user_id: str, limit: int = 10) -> List[PolicyAnalysis]: ...
    def delete_policy_analysis(self, analysis_id: str, user_id: str) -> bool: ...

    # ---- clause knowledge ----
    def get_clause_by_text(self, clause_text: str) -> Optional[ClauseKnowledge]: ...
    def create_clause(self, data: Dict[str, Any]) -> ClauseKnowledge: ...
    def increment_clause_usage(self, clause_id: str) -> Optional[ClauseKnowledge]: ...
    def get_top_clauses(self, limit: int = 20) -> List[ClauseKnowledge]: ...

    # ---- user insights ----
    def create_user_insight(self, data: Dict[str, Any]) -> UserInsight: ...
    def get_insights_by_category(self, category: str, limit: int = 50) -> List[UserInsight]: ...

    # ---- usage sessions ----
    def create_session(self, data: Dict[str, Any]) -> AnalysisSession: ...
    def get_session_by_token(self, token: str) -> Optional[AnalysisSession]: ...
    def update_session_activity(
        self, session_id: str, policies_analyzed: int, questions_asked: int
    ) -> None: ...
    def clean_expired_sessions(self) -> int: ...


class MemStorage:
    """Dictionary-backed storage. State lives for the life of the process.

    A single lock serialises every operation, so the secondary unique
    indexes (clause text, session token) cannot race.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.users: Dict[str, User] = {}
        self.policy_analyses: Dict[str, PolicyAnalysis] = {}
        self.clauses: Dict[str, ClauseKnowledge] = {}
        self.insights: List[UserInsight] = []
        self.sessions: Dict[str, AnalysisSession] = {}
        self._clause_ids_by_text: Dict[str, str] = {}
        self._session_ids_by_token: Dict[str, str] = {}

    def reset(self):
        """Drop all records (used by tests)."""
        with self._lock:
            self.users.clear()
            self.policy_analyses.clear()
            self.clauses.clear()
            self.insights.clear()
            self.sessions.clear()
            self._clause_ids_by_text.clear()
            self._session_ids_by_token.clear()

    # ---- users ----

    def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def _find_user(self, **criteria) -> Optional[User]:
        # Snapshot: lookups run unlocked while create_user may insert
        for user in list(self.users.values()):
            if all(getattr(user, k) == v for k, v in criteria.items()):
                return user
        return None

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._find_user(username=username)

    def get_user_by_google_id(self, google_id: str) -> Optional[User]:
        return self._find_user(google_id=google_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._find_user(email=email)

    def create_user(self, data: Dict[str, Any]) -> User:
        with self._lock:
            for field in ("username", "google_id", "email"):
                value = data.get(field)
                if value is not None and self._find_user(**{field: value}):
                    raise DuplicateKeyError("user", value)
            user = User(
                id=new_id(),
                username=data["username"],
                password=data.get("password"),
                google_id=data.get("google_id"),
                name=data.get("name"),
                email=data.get("email"),
                preferred_language=data.get("preferred_language") or "en",
                created_at=utcnow(),
                last_login_at=None,
            )
            self.users[user.id] = user
            return user

    def update_user_last_login(self, user_id: str) -> None:
        user = self.users.get(user_id)
        if user:
            user.last_login_at = utcnow()

    # ---- policy analyses ----

    def create_policy_analysis(self, data: Dict[str, Any]) -> PolicyAnalysis:
        analysis = build_policy_analysis(data)
        with self._lock:
            self.policy_analyses[analysis.id] = analysis
        return analysis

    def get_policy_analysis(self, analysis_id: str) -> Optional[PolicyAnalysis]:
        return self.policy_analyses.get(analysis_id)

    def get_user_policy_analyses(self, user_id: str, limit: int = 10) -> List[PolicyAnalysis]:
        # Newest insertion first so equal timestamps still come out newest-first
        owned = [a for a in reversed(list(self.policy_analyses.values())) if a.user_id == user_id]
        owned.sort(key=lambda a: a.analyzed_at, reverse=True)
        return owned[:limit]

    def delete_policy_analysis(self, analysis_id: str, user_id: str) -> bool:
        with self._lock:
            analysis = self.policy_analyses.get(analysis_id)
            if analysis is None or user_id is None or analysis.user_id != user_id:
                return False
            del self.policy_analyses[analysis_id]
            for insight in self.insights:
                if insight.policy_id == analysis_id:
                    insight.policy_id = None
            return True

    # ---- clause knowledge ----

    def get_clause_by_text(self, clause_text: str) -> Optional[ClauseKnowledge]:
        clause_id = self._clause_ids_by_text.get(clause_text)
        return self.clauses.get(clause_id) if clause_id else None

    def create_clause(self, data: Dict[str, Any]) -> ClauseKnowledge:
        with self._lock:
            if data["clause_text"] in self._clause_ids_by_text:
                raise DuplicateKeyError("clause", data["clause_text"])
            now = utcnow()
            clause = ClauseKnowledge(
                id=new_id(),
                clause_text=data["clause_text"],
                simplified_explanation=data["simplified_explanation"],
                real_world_example=data.get("real_world_example"),
                category=data["category"],
                frequency_count=data.get("frequency_count") or 1,
                created_at=now,
                last_used_at=now,
            )
            self.clauses[clause.id] = clause
            self._clause_ids_by_text[clause.clause_text] = clause.id
            return clause

    def increment_clause_usage(self, clause_id: str) -> Optional[ClauseKnowledge]:
        with self._lock:
            clause = self.clauses.get(clause_id)
            if clause:
                clause.frequency_count += 1
                clause.last_used_at = utcnow()
            return clause

    def get_top_clauses(self, limit: int = 20) -> List[ClauseKnowledge]:
        return sorted(self.clauses.values(), key=lambda c: c.frequency_count, reverse=True)[:limit]

    # ---- user insights ----

    def create_user_insight(self, data: Dict[str, Any]) -> UserInsight:
        insight = UserInsight(
            id=new_id(),
            policy_id=data.get("policy_id"),
            normalized_question=data["normalized_question"],
            category=data["category"],
            is_confused=data.get("is_confused") or 0,
            asked_at=utcnow(),
        )
        with self._lock:
            self.insights.append(insight)
        return insight

    def get_insights_by_category(self, category: str, limit: int = 50) -> List[UserInsight]:
        matching = [i for i in reversed(self.insights) if i.category == category]
        matching.sort(key=lambda i: i.asked_at, reverse=True)
        return matching[:limit]

    # ---- usage sessions ----

    def create_session(self, data: Dict[str, Any]) -> AnalysisSession:
        with self._lock:
            if data["session_token"] in self._session_ids_by_token:
                raise DuplicateKeyError("session", data["session_token"])
            now = utcnow()
            session = AnalysisSession(
                id=new_id(),
                user_id=data.get("user_id"),
                session_token=data["session_token"],
                is_guest=data.get("is_guest", 1),
                policies_analyzed=data.get("policies_analyzed") or 0,
                questions_asked=data.get("questions_asked") or 0,
                started_at=now,
                last_activity_at=now,
                expires_at=data["expires_at"],
            )
            self.sessions[session.id] = session
            self._session_ids_by_token[session.session_token] = session.id
            return session

    def get_session_by_token(self, token: str) -> Optional[AnalysisSession]:
        session_id = self._session_ids_by_token.get(token)
        return self.sessions.get(session_id) if session_id else None

    def update_session_activity(
        self, session_id: str, policies_analyzed: int, questions_asked: int
    ) -> None:
        with self._lock:
            session = self.sessions.get(session_id)
            if session:
                session.policies_analyzed = policies_analyzed
                session.questions_asked = questions_asked
                session.last_activity_at = utcnow()

    def clean_expired_sessions(self) -> int:
        now = utcnow()
        with self._lock:
            expired = [s for s in self.sessions.values() if is_expired(s.expires_at, now)]
            for session in expired:
                del self.sessions[session.id]
                self._session_ids_by_token.pop(session.session_token, None)
            return len(expired)


def build_policy_analysis(data: Dict[str, Any]) -> PolicyAnalysis:
    """Build a fully populated, unsaved PolicyAnalysis with id and timestamp."""
    return PolicyAnalysis(
        id=new_id(),
        user_id=data.get("user_id"),
        policy_title=data["policy_title"],
        policy_type=data["policy_type"],
        insurance_provider=data.get("insurance_provider"),
        plain_language_summary=data["plain_language_summary"],
        extracted_exclusions=list(data.get("extracted_exclusions") or []),
        extracted_conditions=list(data.get("extracted_conditions") or []),
        risk_level=data["risk_level"],
        waiting_period_days=data.get("waiting_period_days"),
        coverage_limit_amount=data.get("coverage_limit_amount"),
        major_exclusions=data.get("major_exclusions"),
        claim_requirements=data.get("claim_requirements"),
        analyzed_at=utcnow(),
    )


# Process-wide in-memory backend (only used when STORAGE_BACKEND=memory)
memory_storage = MemStorage()


@contextmanager
def open_storage() -> Iterator[Storage]:
    """Yield the configured backend, scoped to one unit of work."""
    backend = get_settings().storage_backend
    if backend == "memory":
        yield memory_storage
        return

    from app.database import get_scoped_session
    from app.services.db_storage import DbStorage

    with get_scoped_session() as db:
        yield DbStorage(db)


def get_storage() -> Iterator[Storage]:
    """FastAPI dependency that yields a request-scoped storage backend."""
    with open_storage() as storage:
        yield storage
