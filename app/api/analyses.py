from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from pymongo.errors import PyMongoError

from app.api.deps import get_user_profile, require_user_id
from app.db import repository
from app.models.enums import AnalysisType
from app.models.responses import (
    ActionResponse, AnalysisItem, HealthSummaryResponse, PaginatedAnalyses, UserStats
)
from app.services import cache
from app.services.chatbot import get_compact_health_summary

# Logger setup
logger = logging.getLogger(__name__)

# Router
router = APIRouter()

DEFAULT_PAGE_SIZE = 10


def _database_unavailable(e: Exception) -> HTTPException:
    logger.error(f"Database error: {str(e)}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Database service is unavailable. Please try again later."
    )


@router.get("/analyses", response_model=PaginatedAnalyses)
async def list_analyses(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100, description="Analyses per page"),
    type: Optional[AnalysisType] = Query(None, description="Only analyses of this type"),
    date_from: Optional[datetime] = Query(None, description="Created at or after"),
    date_to: Optional[datetime] = Query(None, description="Created at or before"),
    user_id: str = Depends(require_user_id)
):
    """
    The caller's analyses, newest first.

    The unfiltered first page is cached for two minutes and dropped whenever
    the user's history changes.
    """
    async def load() -> dict:
        analyses, total = await repository.get_user_analyses_paginated(
            user_id, page, limit, type, date_from, date_to
        )
        return {
            "analyses": analyses,
            "total": total,
            "page": page,
            "total_pages": repository.total_pages(total, limit)
        }

    cacheable = page == 1 and limit == DEFAULT_PAGE_SIZE and not (type or date_from or date_to)

    try:
        if cacheable:
            result = await cache.with_cache(cache.analyses_key(user_id), load, cache.ANALYSES_TTL)
        else:
            result = await load()
    except (RuntimeError, PyMongoError) as e:
        raise _database_unavailable(e)

    return PaginatedAnalyses(**result)


@router.get("/analyses/summary", response_model=HealthSummaryResponse)
async def health_summary(
    user_id: str = Depends(require_user_id),
    profile: Optional[Dict[str, Any]] = Depends(get_user_profile)
):
    """
    Compact text summary of the caller's whole history, as given to the chat assistant.
    """
    try:
        summary = await get_compact_health_summary(user_id, profile)
    except (RuntimeError, PyMongoError) as e:
        raise _database_unavailable(e)

    return HealthSummaryResponse(summary=summary)


@router.get("/analyses/stats", response_model=UserStats)
async def user_stats(user_id: str = Depends(require_user_id)):
    """Dashboard counters."""
    async def load() -> dict:
        return await repository.get_user_stats(user_id)

    try:
        stats = await cache.with_cache(cache.stats_key(user_id), load, cache.STATS_TTL)
    except (RuntimeError, PyMongoError) as e:
        raise _database_unavailable(e)

    return UserStats(**stats)


@router.get("/analyses/{analysis_id}", response_model=AnalysisItem)
async def get_analysis(
    analysis_id: str = Path(..., description="Analysis id"),
    user_id: str = Depends(require_user_id)
):
    cached = await cache.get_cache(cache.analysis_key(analysis_id))
    if cached is not None and cached.get("user_id") == user_id:
        return AnalysisItem(**cached)

    try:
        analysis = await repository.get_analysis_by_id(analysis_id, user_id)
    except (RuntimeError, PyMongoError) as e:
        raise _database_unavailable(e)

    if analysis is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analysis not found")

    await cache.set_cache(cache.analysis_key(analysis_id), analysis, cache.ANALYSES_TTL)
    return AnalysisItem(**analysis)


@router.delete("/analyses/{analysis_id}", response_model=ActionResponse)
async def delete_analysis(
    analysis_id: str = Path(..., description="Analysis id"),
    user_id: str = Depends(require_user_id)
):
    try:
        deleted = await repository.delete_analysis(analysis_id, user_id)
    except (RuntimeError, PyMongoError) as e:
        raise _database_unavailable(e)

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analysis not found")

    await cache.invalidate_user(user_id, analysis_id)
    logger.info(f"Deleted analysis {analysis_id} for user {user_id}")

    return ActionResponse(success=True, analysis_id=analysis_id)
