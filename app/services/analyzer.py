"""LLM gateway for policy analysis and follow-up questions.

Callers only see ``analyze_policy`` and ``answer_question`` and their result
shapes; which provider produced the answer is invisible to them.

Both OpenAI and Gemini are reached through the ``openai`` SDK (Gemini via
its OpenAI-compatible endpoint) in JSON-object mode. When no provider is
configured, or the call fails for any reason (timeout, network, quota,
unparseable reply), a fixed canned result is returned instead of an error.
The canned results do not depend on the input. There is no retry loop.
"""

import asyncio
import logging
from typing import Callable, Optional, Type, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel

from app.config import get_settings
from app.schemas import AnalysisResult, ChatResult

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

# Upper bound on policy text sent to the provider
MAX_POLICY_CHARS = 60000

SYSTEM_PROMPT = """You are PolicyLens, an assistant that explains insurance policies to people without legal training.

Rules:
- Use only the policy text you are given. Never invent coverage.
- Do not give legal advice.
- Surface anything that can block or reduce a claim: exclusions, waiting periods, conditional wording ("only if", "subject to", "provided that"), deadlines and documentation duties.
- Write short, plain sentences. Explain any unavoidable legal term.
- If the policy does not say something, answer "This is not clearly specified in the policy."

Risk levels:
- Low: clear coverage, few restrictions
- Medium: conditional coverage, some exclusions
- High: strict exclusions, long waiting periods or vague terms

Always reply with a single JSON object and nothing else."""

ANALYSIS_PROMPT_TEMPLATE = """Policy type: {policy_type}
{question_block}
## Policy text
{policy_text}

Return JSON with exactly these keys:
{{
  "summary": "2-3 sentence plain-language overview",
  "riskLevel": "Low | Medium | High",
  "riskJustification": "one sentence explaining the risk level",
  "keyExclusions": ["major exclusions in plain language"],
  "hiddenClauses": ["conditional clauses that could block a claim"],
  "claimRequirements": ["what the policyholder must do to claim"],
  "waitingPeriods": [{{"condition": "...", "duration": "..."}}],
  "conditions": [{{"clause": "...", "plainLanguage": "...", "impact": "..."}}]
}}"""

CHAT_PROMPT_TEMPLATE = """## Policy text
{policy_text}

## Question
{question}

Answer using only the policy text. Return JSON with exactly these keys:
{{
  "answer": "direct answer in plain language, at most 3 sentences",
  "relevantClauses": ["policy clauses that support the answer"],
  "confidence": "High (clearly stated) | Medium (implied or conditional) | Low (unclear)",
  "disclaimer": "optional warning when conditions apply"
}}"""


FALLBACK_ANALYSIS = {
    "summary": (
        "This health insurance policy covers hospitalization expenses after a 36-month "
        "waiting period for pre-existing conditions. It includes room rent caps and "
        "requires 48-hour claim notification."
    ),
    "riskLevel": "Medium",
    "riskJustification": (
        "Long waiting periods and strict notification requirements could delay or block valid claims."
    ),
    "keyExclusions": [
        "Pre-existing diseases (first 36 months)",
        "Cosmetic treatments and experimental procedures",
        "Self-inflicted injuries and substance abuse",
    ],
    "hiddenClauses": [
        "Room rent limited to 1% of sum insured per day",
        "Claims must be filed within 48 hours of hospitalization",
        "Medical records older than 5 years may be requested",
    ],
    "claimRequirements": [
        "Notify insurer within 48 hours",
        "Submit original hospital bills and discharge summary",
        "Provide past medical records if requested",
    ],
    "waitingPeriods": [
        {"condition": "Pre-existing diseases", "duration": "36 months"},
        {"condition": "Specific procedures (e.g., cataract)", "duration": "24 months"},
    ],
    "conditions": [
        {
            "clause": "Sub-limit on room rent",
            "plainLanguage": "Daily room charges cannot exceed 1% of your total coverage amount",
            "impact": "If you choose an expensive room, excess charges will not be covered",
        },
    ],
}

FALLBACK_CHAT_DENGUE = {
    "answer": (
        "Dengue is typically covered after the initial 30-day waiting period, but may have "
        "sub-limits. Check if room rent caps apply during treatment."
    ),
    "relevantClauses": [
        "Waiting Period: Claims covered after 30 days from policy start",
        "Room rent limited to 1% of sum insured per day",
    ],
    "confidence": "High",
    "disclaimer": "Coverage may be affected by room rent sub-limits",
}

FALLBACK_CHAT_LATE_CLAIM = {
    "answer": (
        "Claims must be filed within 48 hours of hospitalization. Late filing can lead to "
        "delays, partial rejection, or denial. Always keep proof of notification."
    ),
    "relevantClauses": [
        "48-hour intimation requirement from hospitalization",
        "Insurer reserves right to reject delayed claims",
    ],
    "confidence": "High",
    "disclaimer": "Exceptions may apply in emergencies - contact insurer immediately",
}

FALLBACK_CHAT_GENERIC = {
    "answer": (
        "This depends on specific policy terms. The clause might cover the event, but "
        "conditions like waiting periods, documentation, and timelines decide claim approval."
    ),
    "relevantClauses": ["Refer to policy exclusions and conditions section"],
    "confidence": "Medium",
    "disclaimer": "Please provide more specific details for a precise answer",
}


def _truncate(text: str, max_len: int = MAX_POLICY_CHARS) -> str:
    """Truncate text to fit within token limits."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + "\n... [truncated]"


def fallback_analysis() -> AnalysisResult:
    return AnalysisResult.model_validate(FALLBACK_ANALYSIS)


def fallback_answer(question: str) -> ChatResult:
    """Pick a canned answer by keyword: dengue/disease, then late/claim, else generic."""
    lowered = question.lower()
    if "dengue" in lowered or "disease" in lowered:
        return ChatResult.model_validate(FALLBACK_CHAT_DENGUE)
    if "late" in lowered or "claim" in lowered:
        return ChatResult.model_validate(FALLBACK_CHAT_LATE_CLAIM)
    return ChatResult.model_validate(FALLBACK_CHAT_GENERIC)


def _client() -> AsyncOpenAI:
    settings = get_settings()
    base_url = GEMINI_OPENAI_BASE_URL if settings.ai_provider == "gemini" else None
    return AsyncOpenAI(
        api_key=settings.resolved_ai_api_key,
        base_url=base_url,
        timeout=settings.ai_timeout_seconds,
        max_retries=0,
    )


async def generate_json(prompt: str) -> Optional[str]:
    """Send one prompt to the configured provider and return the raw JSON text."""
    settings = get_settings()
    response = await _client().chat.completions.create(
        model=settings.resolved_ai_model,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        temperature=0.2,
        max_tokens=1500,
        response_format={"type": "json_object"},
    )
    return response.choices[0].message.content


async def _call_with_fallback(
    prompt: str, result_type: Type[T], fallback: Callable[[], T], label: str
) -> T:
    settings = get_settings()
    if not settings.ai_enabled:
        logger.debug(f"No AI provider configured, returning canned {label}")
        return fallback()

    try:
        raw = await asyncio.wait_for(generate_json(prompt), timeout=settings.ai_timeout_seconds)
        result = result_type.model_validate_json(raw or "")
    except asyncio.TimeoutError:
        logger.warning(
            f"{label} call to {settings.ai_provider} timed out after "
            f"{settings.ai_timeout_seconds:.0f}s, using canned result"
        )
        return fallback()
    except Exception as e:
        logger.warning(
            f"{label} call to {settings.ai_provider} failed "
            f"({type(e).__name__}: {e}), using canned result"
        )
        return fallback()

    logger.info(f"{label} complete via {settings.ai_provider} ({settings.resolved_ai_model})")
    return result


async def analyze_policy(
    policy_text: str,
    policy_type: Optional[str] = None,
    specific_question: Optional[str] = None,
) -> AnalysisResult:
    """Turn raw policy text into a structured ``AnalysisResult``.

    Callers must reject text shorter than 50 characters before calling.
    """
    question_block = f"\nThe reader specifically wants to know: {specific_question}\n" if specific_question else ""
    prompt = ANALYSIS_PROMPT_TEMPLATE.format(
        policy_type=policy_type or "General Insurance",
        question_block=question_block,
        policy_text=_truncate(policy_text),
    )
    return await _call_with_fallback(prompt, AnalysisResult, fallback_analysis, "Policy analysis")


async def answer_question(policy_text: str, question: str) -> ChatResult:
    """Answer a follow-up question about a policy as a ``ChatResult``."""
    prompt = CHAT_PROMPT_TEMPLATE.format(
        policy_text=_truncate(policy_text),
        question=question,
    )
    return await _call_with_fallback(
        prompt, ChatResult, lambda: fallback_answer(question), "Policy chat"
    )
