"""Pydantic schemas for API request/response validation.

Field names are snake_case in Python and camelCase on the wire, matching
the JSON the browser client sends and expects. Request validators reject
bad input before it reaches the storage layer or the AI gateway.
"""

from enum import Enum
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone

# Minimum stripped length of policy text accepted by /api/ai/analyze
MIN_POLICY_TEXT_LENGTH = 50


def _ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (UTC).

    SQLite returns naive datetimes even with timezone=True columns; without
    an explicit offset browsers read the value as local time.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


# Use this instead of `datetime` for all response fields
UTCDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---- Enums for strong typing ----

class PolicyType(str, Enum):
    health = "Health"
    vehicle = "Vehicle"
    life = "Life"
    home = "Home"
    travel = "Travel"
    other = "Other"


class RiskLevel(str, Enum):
    low = "Low"
    medium = "Medium"
    high = "High"


class ClauseCategory(str, Enum):
    exclusion = "Exclusion"
    condition = "Condition"
    waiting_period = "Waiting Period"
    coverage_limit = "Coverage Limit"
    claim_requirement = "Claim Requirement"


class QuestionCategory(str, Enum):
    coverage = "Coverage"
    exclusion = "Exclusion"
    claim = "Claim"
    timing = "Timing"
    documentation = "Documentation"
    other = "Other"


class Confidence(str, Enum):
    high = "High"
    medium = "Medium"
    low = "Low"


# ---- User / Auth Schemas ----

class UserResponse(CamelModel):
    id: str
    username: str
    name: Optional[str] = None
    email: Optional[str] = None
    preferred_language: Optional[str] = "en"
    created_at: UTCDatetime
    last_login_at: Optional[UTCDatetime] = None


class AuthStatusResponse(CamelModel):
    google_enabled: bool
    authenticated: bool


# ---- Policy Analysis Schemas ----

class PolicyAnalysisCreate(CamelModel):
    policy_title: str = Field(..., min_length=1, max_length=500)
    policy_type: PolicyType
    insurance_provider: Optional[str] = Field(None, max_length=255)
    plain_language_summary: str = Field(..., min_length=1)
    extracted_exclusions: List[str] = []
    extracted_conditions: List[str] = []
    risk_level: RiskLevel
    waiting_period_days: Optional[int] = Field(None, ge=0)
    coverage_limit_amount: Optional[int] = Field(None, ge=0)
    major_exclusions: Optional[List[str]] = None
    claim_requirements: Optional[List[str]] = None


class PolicyAnalysisResponse(CamelModel):
    id: str
    user_id: Optional[str] = None
    policy_title: str
    policy_type: str
    insurance_provider: Optional[str] = None
    plain_language_summary: str
    extracted_exclusions: List[str]
    extracted_conditions: List[str]
    risk_level: str
    waiting_period_days: Optional[int] = None
    coverage_limit_amount: Optional[int] = None
    major_exclusions: Optional[List[str]] = None
    claim_requirements: Optional[List[str]] = None
    analyzed_at: UTCDatetime


# ---- Clause Knowledge Schemas ----

class ClauseExplainRequest(CamelModel):
    clause_text: str = Field(..., min_length=1)
    simplified_explanation: str = Field(..., min_length=1)
    category: ClauseCategory
    real_world_example: Optional[str] = None


class ClauseResponse(CamelModel):
    id: str
    clause_text: str
    simplified_explanation: str
    real_world_example: Optional[str] = None
    category: str
    frequency_count: int
    created_at: UTCDatetime
    last_used_at: UTCDatetime


class ClauseExplainResponse(BaseModel):
    clause: ClauseResponse
    cached: bool


# ---- Insight Schemas ----

class InsightCreate(CamelModel):
    policy_id: Optional[str] = None
    normalized_question: str = Field(..., min_length=1, max_length=2000)
    category: QuestionCategory
    is_confused: int = Field(0, ge=0, le=1)


class InsightResponse(CamelModel):
    id: str
    policy_id: Optional[str] = None
    normalized_question: str
    category: str
    is_confused: int
    asked_at: UTCDatetime


# ---- Usage Session Schemas ----

class SessionRequest(CamelModel):
    session_token: str = Field(..., min_length=1, max_length=255)


class SessionActivityUpdate(CamelModel):
    policies_analyzed: int = Field(..., ge=0)
    questions_asked: int = Field(..., ge=0)


class SessionResponse(CamelModel):
    id: str
    user_id: Optional[str] = None
    session_token: str
    is_guest: int
    policies_analyzed: int
    questions_asked: int
    started_at: UTCDatetime
    last_activity_at: UTCDatetime
    expires_at: UTCDatetime


class SuccessResponse(BaseModel):
    success: bool = True


class CleanupResponse(SuccessResponse):
    removed: int


# ---- AI Gateway Schemas ----

class AnalyzeRequest(CamelModel):
    policy_text: str
    policy_type: Optional[str] = Field(None, max_length=50)
    specific_question: Optional[str] = Field(None, max_length=2000)

    @field_validator("policy_text")
    @classmethod
    def validate_policy_text(cls, v: str) -> str:
        if len(v.strip()) < MIN_POLICY_TEXT_LENGTH:
            raise ValueError(
                f"Policy text is required (minimum {MIN_POLICY_TEXT_LENGTH} characters)"
            )
        return v


class ChatRequest(CamelModel):
    policy_text: str
    question: str = Field(..., max_length=2000)
    policy_id: Optional[str] = None  # links the recorded insight to a saved analysis

    @field_validator("policy_text", "question")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Both policyText and question are required")
        return v


class WaitingPeriod(BaseModel):
    condition: str
    duration: str


class ClauseImpact(CamelModel):
    clause: str
    plain_language: str
    impact: str


class AnalysisResult(CamelModel):
    summary: str
    risk_level: RiskLevel
    risk_justification: str
    key_exclusions: List[str]
    hidden_clauses: List[str]
    claim_requirements: List[str]
    waiting_periods: Optional[List[WaitingPeriod]] = None
    conditions: Optional[List[ClauseImpact]] = None


class ChatResult(CamelModel):
    answer: str
    relevant_clauses: List[str]
    confidence: Confidence
    disclaimer: Optional[str] = None


# ---- Upload Schemas ----

class PDFInfo(BaseModel):
    Title: Optional[str] = None
    Author: Optional[str] = None
    Subject: Optional[str] = None


class PDFUploadResponse(CamelModel):
    text: str
    num_pages: int
    file_name: Optional[str] = None
    info: Optional[PDFInfo] = None
