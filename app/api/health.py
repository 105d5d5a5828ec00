from fastapi import APIRouter, Depends
from datetime import datetime
import logging

from pymongo.errors import PyMongoError

from app.models.responses import HealthResponse
from app.config import Settings, get_settings
from app.db.connection import get_database
from app.services import cache
from app.services.gemini_mock import MockGeminiAnalyzer

# Logger setup
logger = logging.getLogger(__name__)

# Router
router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(config: Settings = Depends(get_settings)):
    """
    API health check.

    Reports the version and environment plus the state of the database, the
    cache and which analyzer answers AI requests.
    """
    try:
        db = get_database()
        await db.command("ping")
        db_status = "connected"
    except (RuntimeError, PyMongoError) as e:
        logger.error(f"Database connection error: {str(e)}")
        db_status = "connection error"

    cache_ok = await cache.ping()
    if cache_ok is None:
        cache_status = "disabled"
    else:
        cache_status = "connected" if cache_ok else "connection error"

    ai_mode = config.GEMINI_MODEL if config.ai_enabled else MockGeminiAnalyzer.model_name

    return HealthResponse(
        success=True,
        message="SehatScan analysis service is running",
        version=config.APP_VERSION,
        environment=config.ENVIRONMENT,
        timestamp=datetime.utcnow(),
        database_status=db_status,
        cache_status=cache_status,
        ai_mode=ai_mode
    )
