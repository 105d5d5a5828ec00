import logging
from typing import Any, Dict, List, Optional

from pymongo.errors import PyMongoError

from app.core.health_summary import build_health_summary, profile_line
from app.db import repository
from app.exceptions import AIServiceError
from app.models.enums import ErrorType
from app.models.requests import ChatMessage
from app.models.responses import ChatResponse
from app.services import cache, get_analyzer, get_fallback_analyzer
from app.utils.i18n import language_name

# Logger setup
logger = logging.getLogger(__name__)

MAX_HISTORY_MESSAGES = 10

KNOWLEDGE_BASE = """ABOUT SEHATSCAN:
SehatScan is an AI-powered health analytics platform that helps users understand and monitor their health through:

1. MEDICAL REPORT ANALYSIS (Scan Report):
   - Upload blood tests, lab reports, medical documents
   - AI extracts key health metrics (cholesterol, glucose, hemoglobin, etc.)
   - Identifies abnormal values and potential concerns
   - Tracks changes over time when multiple reports are uploaded

2. FACIAL HEALTH ANALYSIS (Scan Face):
   - Detects faces and measures skin redness and yellowness
   - Flags possible inflammation or jaundice-related discoloration
   - Non-invasive health monitoring method

3. HEALTH CHECK (Risk Assessment):
   - Combines data from reports and facial analysis
   - Dermatology-focused risk profile with follow-up guidance

4. HISTORY & TRENDS:
   - View all past analyses in one place
   - Track health metrics over time

5. AI HEALTH ASSISTANT (This Chatbot):
   - Answers questions about the user's health data in simple terms

IMPORTANT DISCLAIMERS:
- SehatScan provides health insights, NOT medical diagnoses
- Always consult healthcare professionals for medical decisions
- AI analysis is meant to supplement, not replace, medical care"""

GUIDELINES = """1. PERSONALIZATION: Always reference the user's actual data when available.
2. CONTEXT-AWARE: If discussing metrics, reference their specific values and dates.
3. TRENDS: When they have multiple analyses, identify and explain trends.
4. ACTIONABLE: Provide specific, actionable advice based on their data.
5. EDUCATIONAL: Explain medical terms in simple language.
6. SAFE: Never diagnose. Always recommend professional consultation for concerns.
7. PLATFORM-AWARE: Guide users to relevant SehatScan features when helpful.

Respond in {language}, in a conversational, helpful manner. Format with markdown for readability."""


async def get_compact_health_summary(user_id: str, profile: Optional[Dict[str, Any]] = None) -> str:
    """
    The user's whole history condensed for prompt injection, cached for 15 minutes.

    The profile line is added after the cache lookup, so the cached text is
    the same whoever asks for it.

    Raises:
        RuntimeError: when the database is not connected
        PyMongoError: when the query fails
    """
    async def load() -> str:
        analyses = await repository.get_user_analyses(user_id)
        return build_health_summary(analyses)

    summary = await cache.with_cache(cache.health_summary_key(user_id), load, cache.HEALTH_SUMMARY_TTL)
    if profile:
        return f"{profile_line(profile)}\n{summary}"
    return summary


def build_conversation_context(history: List[ChatMessage]) -> str:
    if not history:
        return "This is the start of the conversation."

    lines = []
    for message in history[-MAX_HISTORY_MESSAGES:]:
        role = "User" if message.role == "user" else "Assistant"
        lines.append(f"{role}: {message.content}")
    return "\n".join(lines)


def build_prompt(message: str, summary: str, history: List[ChatMessage], language: str = "en") -> str:
    return "\n\n".join([
        "You are SehatScan's AI Health Assistant - a knowledgeable, empathetic, and personalized health companion.",
        f"=== SEHATSCAN PLATFORM KNOWLEDGE ===\n{KNOWLEDGE_BASE}",
        f"=== USER CONTEXT ===\n{summary}",
        f"=== CONVERSATION HISTORY ===\n{build_conversation_context(history)}",
        f"=== CURRENT QUESTION ===\n{message.strip()}",
        f"=== YOUR RESPONSE GUIDELINES ===\n{GUIDELINES.format(language=language_name(language))}",
    ])


async def answer(
    message: Optional[str],
    history: List[ChatMessage],
    user_id: str,
    language: str = "en",
    profile: Optional[Dict[str, Any]] = None
) -> ChatResponse:
    """
    Reply to a chat message using the user's health summary as context.
    """
    if not message or not message.strip():
        return ChatResponse(success=False, error="Message is required", error_type=ErrorType.VALIDATION)

    try:
        summary = await get_compact_health_summary(user_id, profile)
    except (RuntimeError, PyMongoError) as e:
        logger.error(f"Chatbot - Database fetch failed: {str(e)}")
        summary = build_health_summary([], profile)

    prompt = build_prompt(message, summary, history, language)

    try:
        reply = await get_analyzer().generate_health_insights(prompt)
    except AIServiceError as e:
        logger.warning(f"Gemini API failed, falling back to rule-based replies: {e.message}")
        reply = await get_fallback_analyzer().generate_health_insights(prompt)

    return ChatResponse(success=True, response=reply)
