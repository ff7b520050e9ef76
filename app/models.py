"""SQLAlchemy database models.

Ids are UUID4 strings so the in-memory backend can mint them without a
database round-trip. All datetime columns use UTC-aware defaults via
``app.utils.datetime_helpers.utcnow``.

Privacy: raw policy text is never stored, only AI-derived summaries, and
``UserInsight`` rows carry no user identifier.
"""

import uuid

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.database import Base
from app.utils.datetime_helpers import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """An account created by Google sign-in (or local registration)."""

    __tablename__ = "users"
    __table_args__ = (
        Index("users_email_idx", "email"),
        Index("users_google_id_idx", "google_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(255), unique=True, nullable=False)
    password = Column(Text, nullable=True)  # null for OAuth users
    google_id = Column(String(255), unique=True, nullable=True)
    name = Column(String(255), nullable=True)
    email = Column(String(320), unique=True, nullable=True)
    preferred_language = Column(String(16), default="en")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    analyses = relationship(
        "PolicyAnalysis", back_populates="owner", cascade="all, delete-orphan",
        passive_deletes=True,
    )
    sessions = relationship(
        "AnalysisSession", back_populates="owner", cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PolicyAnalysis(Base):
    """One AI analysis result, owned by the user who saved it."""

    __tablename__ = "policy_analyses"
    __table_args__ = (
        Index("policy_analyses_user_id_idx", "user_id"),
        Index("policy_analyses_type_idx", "policy_type"),
        Index("policy_analyses_analyzed_at_idx", "analyzed_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)

    policy_title = Column(Text, nullable=False)
    policy_type = Column(String(20), nullable=False)  # Health | Vehicle | Life | Home | Travel | Other
    insurance_provider = Column(Text, nullable=True)

    plain_language_summary = Column(Text, nullable=False)
    extracted_exclusions = Column(JSON, nullable=False, default=list)
    extracted_conditions = Column(JSON, nullable=False, default=list)
    risk_level = Column(String(10), nullable=False)  # Low | Medium | High

    waiting_period_days = Column(Integer, nullable=True)
    coverage_limit_amount = Column(Integer, nullable=True)
    major_exclusions = Column(JSON, nullable=True)
    claim_requirements = Column(JSON, nullable=True)

    analyzed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="analyses")
    insights = relationship("UserInsight", back_populates="policy", passive_deletes=True)


class ClauseKnowledge(Base):
    """A cached plain-language explanation, keyed by the literal clause text."""

    __tablename__ = "clause_knowledge"
    __table_args__ = (
        Index("clause_knowledge_category_idx", "category"),
        Index("clause_knowledge_frequency_idx", "frequency_count"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    clause_text = Column(Text, unique=True, nullable=False)
    simplified_explanation = Column(Text, nullable=False)
    real_world_example = Column(Text, nullable=True)
    category = Column(String(32), nullable=False)
    frequency_count = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_used_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class UserInsight(Base):
    """An anonymized question pattern. Outlives the analysis it refers to."""

    __tablename__ = "user_insights"
    __table_args__ = (
        Index("user_insights_category_idx", "category"),
        Index("user_insights_asked_at_idx", "asked_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    policy_id = Column(
        String(36), ForeignKey("policy_analyses.id", ondelete="SET NULL"), nullable=True
    )
    normalized_question = Column(Text, nullable=False)
    category = Column(String(20), nullable=False)
    is_confused = Column(Integer, default=0, nullable=False)  # 0 or 1
    asked_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    policy = relationship("PolicyAnalysis", back_populates="insights")


class AnalysisSession(Base):
    """A guest or signed-in usage session, identified by a client-held token."""

    __tablename__ = "analysis_sessions"
    __table_args__ = (
        Index("analysis_sessions_user_id_idx", "user_id"),
        Index("analysis_sessions_expires_at_idx", "expires_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    session_token = Column(String(255), unique=True, nullable=False)
    is_guest = Column(Integer, default=1, nullable=False)  # 1 = guest, 0 = signed in
    policies_analyzed = Column(Integer, default=0, nullable=False)
    questions_asked = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_activity_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    owner = relationship("User", back_populates="sessions")
