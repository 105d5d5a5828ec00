import logging
import math
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple
from bson.objectid import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from app.db.connection import get_database
from app.config import settings
from app.models.database import AnalysisRecord, RequestRecord
from app.models.enums import AnalysisType

# Logger setup
logger = logging.getLogger(__name__)

# Fields returned by the history endpoints
LIST_PROJECTION = {
    "user_id": 0,
    "task_id": 0,
}


def _to_object_id(analysis_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(analysis_id)
    except (InvalidId, TypeError):
        return None


def serialize_analysis(document: Dict[str, Any]) -> Dict[str, Any]:
    """Replace Mongo's _id with a string id."""
    document = dict(document)
    document["id"] = str(document.pop("_id"))
    return document


async def save_request_info(record: RequestRecord) -> bool:
    """
    Store request log information.

    Returns:
        bool: whether the record was written
    """
    if not settings.STORE_ANALYSES:
        return False

    try:
        db = get_database()
        await db.requests.insert_one(record.model_dump())
        return True
    except (RuntimeError, PyMongoError) as e:
        logger.error(f"Error saving request info: {e}")
        return False


async def save_analysis(record: AnalysisRecord) -> str:
    """
    Store an analysis.

    Returns:
        str: id of the new record

    Raises:
        RuntimeError: when the database is not connected
        PyMongoError: when the write fails
    """
    db = get_database()
    result = await db.analyses.insert_one(record.model_dump(mode="python"))
    analysis_id = str(result.inserted_id)
    logger.info(f"Saved {record.type.value} analysis {analysis_id} for user {record.user_id}")
    return analysis_id


async def get_analysis_by_id(analysis_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    """An analysis owned by the user, or None."""
    object_id = _to_object_id(analysis_id)
    if object_id is None:
        return None

    db = get_database()
    document = await db.analyses.find_one({"_id": object_id, "user_id": user_id})
    return serialize_analysis(document) if document else None


async def get_user_analyses(
    user_id: str,
    analysis_type: Optional[AnalysisType] = None,
    include_raw: bool = False
) -> List[Dict[str, Any]]:
    """
    All analyses of a user, newest first.

    Args:
        user_id: Owner
        analysis_type: Optional type filter
        include_raw: Whether to load the raw payloads
    """
    db = get_database()
    query: Dict[str, Any] = {"user_id": user_id}
    if analysis_type:
        query["type"] = analysis_type.value

    projection = None if include_raw else {"raw_data": 0}
    cursor = db.analyses.find(query, projection).sort("created_at", DESCENDING)
    return [serialize_analysis(doc) async for doc in cursor]


async def get_user_analyses_paginated(
    user_id: str,
    page: int = 1,
    limit: int = 10,
    analysis_type: Optional[AnalysisType] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None
) -> Tuple[List[Dict[str, Any]], int]:
    """
    One page of a user's analyses, newest first.

    Returns:
        tuple: (analyses, total matching)
    """
    db = get_database()
    query: Dict[str, Any] = {"user_id": user_id}
    if analysis_type:
        query["type"] = analysis_type.value
    if date_from or date_to:
        query["created_at"] = {}
        if date_from:
            query["created_at"]["$gte"] = date_from
        if date_to:
            query["created_at"]["$lte"] = date_to

    total = await db.analyses.count_documents(query)
    cursor = (
        db.analyses.find(query, LIST_PROJECTION)
        .sort("created_at", DESCENDING)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    analyses = [serialize_analysis(doc) async for doc in cursor]
    return analyses, total


def total_pages(total: int, limit: int) -> int:
    return max(1, math.ceil(total / limit))


async def delete_analysis(analysis_id: str, user_id: str) -> bool:
    """
    Delete an analysis owned by the user.

    Returns:
        bool: whether a record was deleted
    """
    object_id = _to_object_id(analysis_id)
    if object_id is None:
        return False

    db = get_database()
    result = await db.analyses.delete_one({"_id": object_id, "user_id": user_id})
    return result.deleted_count > 0


async def get_user_stats(user_id: str) -> Dict[str, Any]:
    """
    Dashboard counters for a user.

    Returns:
        dict: total and per-type counts plus the time of the last analysis
    """
    db = get_database()
    pipeline = [
        {"$match": {"user_id": user_id}},
        {"$group": {
            "_id": "$type",
            "count": {"$sum": 1},
            "last": {"$max": "$created_at"}
        }}
    ]

    counts = {t.value: 0 for t in AnalysisType}
    last_analysis_at = None

    async for group in db.analyses.aggregate(pipeline):
        counts[group["_id"]] = group["count"]
        if last_analysis_at is None or group["last"] > last_analysis_at:
            last_analysis_at = group["last"]

    return {
        "total_analyses": sum(counts.values()),
        "reports_scanned": counts[AnalysisType.REPORT.value],
        "faces_analyzed": counts[AnalysisType.FACE.value],
        "risk_assessments": counts[AnalysisType.RISK.value],
        "last_analysis_at": last_analysis_at
    }
