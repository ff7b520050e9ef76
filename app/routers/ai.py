"""AI analysis and chat routes.

These are ``async def`` because they await the provider call. Input is
validated by the request schemas first, so a too-short policy never
reaches the gateway. Provider failures never surface here: the gateway
answers with its canned result instead.
"""

import logging

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from app.middleware.rate_limit import rate_limit
from app.schemas import AnalysisResult, AnalyzeRequest, ChatRequest, ChatResult
from app.services.analyzer import analyze_policy, answer_question
from app.services.sessions import record_insight
from app.services.storage import Storage, get_storage
from app.utils.anonymize import categorize_question, detect_confusion, normalize_question

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.post("/analyze", response_model=AnalysisResult)
async def analyze(data: AnalyzeRequest, request: Request):
    """Analyze policy text into summary, risk level, exclusions and claim requirements."""
    rate_limit(request, "ai_analyze")
    return await analyze_policy(data.policy_text, data.policy_type, data.specific_question)


@router.post("/chat", response_model=ChatResult)
async def chat(
    data: ChatRequest,
    request: Request,
    storage: Storage = Depends(get_storage),
):
    """Answer a question about a policy and record it as an anonymized insight."""
    rate_limit(request, "ai_chat")
    result = await answer_question(data.policy_text, data.question)

    try:
        await run_in_threadpool(
            record_insight,
            storage,
            data.policy_id,
            normalize_question(data.question),
            categorize_question(data.question),
            detect_confusion(data.question),
        )
    except Exception:
        # The answer is already computed; a lost insight must not cost the user it
        logger.exception("Failed to record chat insight")
    return result
