"""Relational storage backend (SQLAlchemy ORM).

Implements the ``Storage`` capability over one SQLAlchemy session. Every
write commits immediately; there are no multi-entity transactions. Unique
constraint violations are rolled back and re-raised as
``DuplicateKeyError`` so callers can fall back to the existing row.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import (
    AnalysisSession,
    ClauseKnowledge,
    PolicyAnalysis,
    User,
    UserInsight,
    new_id,
)
from app.services.storage import DuplicateKeyError, build_policy_analysis
from app.utils.datetime_helpers import utcnow

logger = logging.getLogger(__name__)


class DbStorage:
    def __init__(self, db: Session):
        self.db = db

    def _insert(self, obj, entity: str, key: str):
        self.db.add(obj)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateKeyError(entity, key)
        self.db.refresh(obj)
        return obj

    # ---- users ----

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def get_user_by_google_id(self, google_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.google_id == google_id).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(self, data: Dict[str, Any]) -> User:
        user = User(
            id=new_id(),
            username=data["username"],
            password=data.get("password"),
            google_id=data.get("google_id"),
            name=data.get("name"),
            email=data.get("email"),
            preferred_language=data.get("preferred_language") or "en",
            created_at=utcnow(),
        )
        return self._insert(user, "user", data["username"])

    def update_user_last_login(self, user_id: str) -> None:
        self.db.execute(
            update(User).where(User.id == user_id).values(last_login_at=utcnow())
        )
        self.db.commit()

    # ---- policy analyses ----

    def create_policy_analysis(self, data: Dict[str, Any]) -> PolicyAnalysis:
        analysis = build_policy_analysis(data)
        self.db.add(analysis)
        self.db.commit()
        self.db.refresh(analysis)
        return analysis

    def get_policy_analysis(self, analysis_id: str) -> Optional[PolicyAnalysis]:
        return self.db.get(PolicyAnalysis, analysis_id)

    def get_user_policy_analyses(self, user_id: str, limit: int = 10) -> List[PolicyAnalysis]:
        return (
            self.db.query(PolicyAnalysis)
            .filter(PolicyAnalysis.user_id == user_id)
            .order_by(PolicyAnalysis.analyzed_at.desc())
            .limit(limit)
            .all()
        )

    def delete_policy_analysis(self, analysis_id: str, user_id: str) -> bool:
        if user_id is None:
            return False
        deleted = (
            self.db.query(PolicyAnalysis)
            .filter(PolicyAnalysis.id == analysis_id, PolicyAnalysis.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted > 0

    # ---- clause knowledge ----

    def get_clause_by_text(self, clause_text: str) -> Optional[ClauseKnowledge]:
        return (
            self.db.query(ClauseKnowledge)
            .filter(ClauseKnowledge.clause_text == clause_text)
            .first()
        )

    def create_clause(self, data: Dict[str, Any]) -> ClauseKnowledge:
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
        return self._insert(clause, "clause", data["clause_text"])

    def increment_clause_usage(self, clause_id: str) -> Optional[ClauseKnowledge]:
        # Single UPDATE so concurrent hits never lose an increment
        self.db.execute(
            update(ClauseKnowledge)
            .where(ClauseKnowledge.id == clause_id)
            .values(
                frequency_count=ClauseKnowledge.frequency_count + 1,
                last_used_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return self.db.get(ClauseKnowledge, clause_id, populate_existing=True)

    def get_top_clauses(self, limit: int = 20) -> List[ClauseKnowledge]:
        return (
            self.db.query(ClauseKnowledge)
            .order_by(ClauseKnowledge.frequency_count.desc(), ClauseKnowledge.created_at.asc())
            .limit(limit)
            .all()
        )

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
        self.db.add(insight)
        self.db.commit()
        self.db.refresh(insight)
        return insight

    def get_insights_by_category(self, category: str, limit: int = 50) -> List[UserInsight]:
        return (
            self.db.query(UserInsight)
            .filter(UserInsight.category == category)
            .order_by(UserInsight.asked_at.desc())
            .limit(limit)
            .all()
        )

    # ---- usage sessions ----

    def create_session(self, data: Dict[str, Any]) -> AnalysisSession:
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
        return self._insert(session, "session", data["session_token"])

    def get_session_by_token(self, token: str) -> Optional[AnalysisSession]:
        return (
            self.db.query(AnalysisSession)
            .filter(AnalysisSession.session_token == token)
            .first()
        )

    def update_session_activity(
        self, session_id: str, policies_analyzed: int, questions_asked: int
    ) -> None:
        self.db.execute(
            update(AnalysisSession)
            .where(AnalysisSession.id == session_id)
            .values(
                policies_analyzed=policies_analyzed,
                questions_asked=questions_asked,
                last_activity_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def clean_expired_sessions(self) -> int:
        removed = (
            self.db.query(AnalysisSession)
            .filter(AnalysisSession.expires_at <= utcnow())
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return removed
