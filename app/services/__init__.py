# app/services/__init__.py
import logging

from app.config import settings
from app.exceptions import AIServiceError
from app.services.gemini_mock import MockGeminiAnalyzer

logger = logging.getLogger(__name__)


def get_analyzer():
    """
    Pick the analyzer from the environment: the hosted model when a key is
    configured and USE_MOCK_AI is off, otherwise the rule-based one.
    """
    if not settings.ai_enabled:
        return MockGeminiAnalyzer()

    from app.services.gemini import GeminiAnalyzer

    try:
        return GeminiAnalyzer()
    except AIServiceError as e:
        logger.warning(f"Gemini analyzer unavailable, using rule-based analyzer: {e.message}")
        return MockGeminiAnalyzer()


def get_fallback_analyzer():
    return MockGeminiAnalyzer()
