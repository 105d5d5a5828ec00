import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import cv2
import numpy as np
import pytest
from bson.objectid import ObjectId

# Settings are read at import time: no hosted model, no Redis
os.environ["USE_MOCK_AI"] = "true"
os.environ["GEMINI_API_KEY"] = ""
os.environ["REDIS_URL"] = ""
os.environ["STORE_ANALYSES"] = "true"

from fastapi.testclient import TestClient

from app.db import repository
from app.main import app
from app.models.database import AnalysisRecord
from app.models.enums import AnalysisType


class InMemoryRepository:
    """Stands in for the Mongo-backed repository functions."""

    def __init__(self):
        self.documents: List[Dict[str, Any]] = []

    async def save_analysis(self, record: AnalysisRecord) -> str:
        document = record.model_dump(mode="python")
        document["type"] = record.type.value
        document["id"] = str(ObjectId())
        self.documents.append(document)
        return document["id"]

    def _owned(self, user_id: str) -> List[Dict[str, Any]]:
        owned = [d for d in self.documents if d["user_id"] == user_id]
        return sorted(owned, key=lambda d: d["created_at"], reverse=True)

    async def get_analysis_by_id(self, analysis_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        for document in self.documents:
            if document["id"] == analysis_id and document["user_id"] == user_id:
                return dict(document)
        return None

    async def get_user_analyses(self, user_id: str, analysis_type=None, include_raw: bool = False):
        return [
            dict(d) for d in self._owned(user_id)
            if analysis_type is None or d["type"] == analysis_type.value
        ]

    async def get_user_analyses_paginated(
        self, user_id, page=1, limit=10, analysis_type=None, date_from=None, date_to=None
    ):
        matching = await self.get_user_analyses(user_id, analysis_type)
        start = (page - 1) * limit
        return matching[start:start + limit], len(matching)

    async def delete_analysis(self, analysis_id: str, user_id: str) -> bool:
        before = len(self.documents)
        self.documents = [
            d for d in self.documents
            if not (d["id"] == analysis_id and d["user_id"] == user_id)
        ]
        return len(self.documents) < before

    async def get_user_stats(self, user_id: str) -> Dict[str, Any]:
        owned = self._owned(user_id)
        counts = {t.value: 0 for t in AnalysisType}
        for document in owned:
            counts[document["type"]] += 1
        return {
            "total_analyses": len(owned),
            "reports_scanned": counts["report"],
            "faces_analyzed": counts["face"],
            "risk_assessments": counts["risk"],
            "last_analysis_at": owned[0]["created_at"] if owned else None
        }


@pytest.fixture
def fake_repository(monkeypatch):
    fake = InMemoryRepository()
    for name in (
        "save_analysis",
        "get_analysis_by_id",
        "get_user_analyses",
        "get_user_analyses_paginated",
        "delete_analysis",
        "get_user_stats",
    ):
        monkeypatch.setattr(repository, name, getattr(fake, name))
    return fake


@pytest.fixture
def client(fake_repository):
    # No context manager: startup would try to reach MongoDB
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"X-User-Id": "user_123"}


@pytest.fixture
def red_face_png() -> bytes:
    """A flat, strongly red 400x300 image; no face is detected so the center region is sampled."""
    image = np.zeros((300, 400, 3), dtype=np.uint8)
    image[:, :] = (60, 60, 200)  # BGR
    success, encoded = cv2.imencode(".png", image)
    assert success
    return encoded.tobytes()


@pytest.fixture
def neutral_face_jpeg() -> bytes:
    image = np.full((480, 640, 3), 128, dtype=np.uint8)
    success, encoded = cv2.imencode(".jpg", image)
    assert success
    return encoded.tobytes()


def make_analysis(
    analysis_type: str,
    days_ago: int = 0,
    **fields: Any
) -> Dict[str, Any]:
    """A stored analysis as the repository returns it."""
    document = {
        "id": str(ObjectId()),
        "user_id": "user_123",
        "type": analysis_type,
        "created_at": datetime(2025, 3, 20, 12, 0) - timedelta(days=days_ago),
    }
    document.update(fields)
    return document
