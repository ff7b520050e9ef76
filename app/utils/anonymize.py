"""Best-effort anonymisation and tagging of user questions.

Questions are scrubbed with plain regex substitutions before they are
stored as insights. The name pattern (two consecutive capitalised words)
over-matches place names and misses single names; it is kept as-is.
"""

import re

_SCRUB_PATTERNS = [
    (re.compile(r"\b(diabetes|dengue|cancer|covid|malaria|typhoid|heart attack|stroke)\b", re.I), "<condition>"),
    (re.compile(r"\b\d+\s*(rupees|rs|inr|dollars|usd|lakhs?|crores?)\b", re.I), "<amount>"),
    (re.compile(r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\b"), "<name>"),
    (re.compile(r"\b(policy|pol|claim)\s*#?\s*\d+\b", re.I), "<policy_id>"),
    (re.compile(r"\b\d{1,2}[-/]\d{1,2}[-/]\d{2,4}\b"), "<date>"),
    (re.compile(r"\b(\d+)\s*(years?|yrs?|months?)\s*(old|age)\b", re.I), "<age>"),
]

_CONFUSION_PATTERNS = [
    re.compile(r"\?\?+"),
    re.compile(r"\bconfus(ed|ing)\b", re.I),
    re.compile(r"\bdon't understand\b", re.I),
    re.compile(r"\bwhat does.*mean\b", re.I),
    re.compile(r"\bwhy (is|does|would|can't)\b", re.I),
    re.compile(r"\bhow come\b", re.I),
    re.compile(r"\bdoesn't make sense\b", re.I),
]

# Checked in order; first match wins
_CATEGORY_KEYWORDS = [
    ("Coverage", ("cover", "included", "eligible")),
    ("Exclusion", ("exclud", "not cover", "denied")),
    ("Claim", ("claim", "reimburse", "settle")),
    ("Timing", ("when", "how long", "wait", "period")),
    ("Documentation", ("document", "proof", "evidence")),
]


def normalize_question(question: str) -> str:
    """Replace likely PII (conditions, amounts, names, ids, dates, ages) with placeholders."""
    for pattern, placeholder in _SCRUB_PATTERNS:
        question = pattern.sub(placeholder, question)
    return question.strip()


def detect_confusion(question: str) -> bool:
    return any(p.search(question) for p in _CONFUSION_PATTERNS)


def categorize_question(question: str) -> str:
    lowered = question.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return category
    return "Other"
