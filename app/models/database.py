from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional
from datetime import datetime

from app.models.enums import AnalysisType


class RequestRecord(BaseModel):
    """Request log record"""
    request_id: str
    path: str
    method: str
    user_id: Optional[str] = None
    language: Optional[str] = None
    status_code: int
    process_time: float
    created_at: datetime


class AnalysisRecord(BaseModel):
    """Stored analysis record"""
    user_id: str
    type: AnalysisType
    raw_data: Any
    structured_data: Optional[Any] = None
    visual_metrics: Optional[Any] = None
    risk_assessment: Optional[str] = None
    problems_detected: Optional[List[Dict[str, Any]]] = None
    treatments: Optional[List[Dict[str, Any]]] = None
    task_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
