from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from app.models.enums import AnalysisType, ErrorType, MetricStatus, Priority, Severity, TaskState


class BoundingBox(BaseModel):
    """Rectangle marking a detected region in an image"""
    x: float = Field(..., description="X of the top-left corner")
    y: float = Field(..., description="Y of the top-left corner")
    width: float = Field(..., ge=0, description="Box width")
    height: float = Field(..., ge=0, description="Box height")


class VisualMetric(BaseModel):
    """Color measurements for one detected face"""
    face_index: int
    redness_percentage: int = Field(..., ge=0, le=100)
    yellowness_percentage: int = Field(..., ge=0, le=100)
    skin_tone_analysis: str


class DetectedProblem(BaseModel):
    type: str
    severity: Severity
    description: str
    confidence: float = Field(..., ge=0, le=1)


class Treatment(BaseModel):
    category: str
    recommendation: str
    priority: Priority
    timeframe: str


class FaceAnalysisResult(BaseModel):
    """Result of a face photo analysis"""
    face_detected: bool = Field(..., description="Whether a face region was analyzed")
    faces_count: int = Field(..., description="Number of detected faces")
    faces: List[BoundingBox] = Field(default_factory=list, description="Face boxes in natural image pixels")
    visual_metrics: List[VisualMetric] = Field(default_factory=list)
    problems_detected: List[DetectedProblem] = Field(default_factory=list)
    treatments: List[Treatment] = Field(default_factory=list)
    annotated_image: Optional[str] = Field(None, description="Base64 JPEG with the boxes drawn")
    image_width: int = Field(..., description="Natural image width")
    image_height: int = Field(..., description="Natural image height")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "face_detected": True,
            "faces_count": 1,
            "faces": [{"x": 100, "y": 80, "width": 200, "height": 250}],
            "visual_metrics": [{
                "face_index": 0,
                "redness_percentage": 24,
                "yellowness_percentage": 18,
                "skin_tone_analysis": "Normal skin tone detected"
            }],
            "problems_detected": [],
            "treatments": [],
            "annotated_image": None,
            "image_width": 640,
            "image_height": 480
        }
    })


class HealthMetric(BaseModel):
    name: str
    value: str
    unit: Optional[str] = None
    status: Optional[MetricStatus] = None
    reference_range: Optional[str] = None


class StructuredReport(BaseModel):
    """Metrics and findings extracted from a report"""
    metrics: List[HealthMetric]
    problems_detected: List[DetectedProblem] = Field(default_factory=list)
    treatments: List[Treatment] = Field(default_factory=list)
    summary: Optional[str] = None


class ReportAnalysisResult(BaseModel):
    """Result of a medical report analysis"""
    raw_text: str
    structured_data: Optional[StructuredReport] = None
    ocr_confidence: Optional[float] = None
    warning: Optional[str] = None


class RiskAssessmentResult(BaseModel):
    risk_assessment: str


class ActionResponse(BaseModel):
    """
    Envelope returned by every analysis action.

    On success `data` holds the result; on failure `error` and `error_type`
    describe what went wrong.
    """
    success: bool
    data: Optional[Dict[str, Any]] = None
    analysis_id: Optional[str] = None
    task_id: Optional[str] = None
    warning: Optional[str] = None
    save_error: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None

    @classmethod
    def failure(cls, error: str, error_type: ErrorType) -> "ActionResponse":
        return cls(success=False, error=error, error_type=error_type)

    @property
    def status_code(self) -> int:
        if self.success or self.error_type is None:
            return 200
        return self.error_type.status_code


class AnalysisItem(BaseModel):
    """Stored analysis as returned by the history endpoints"""
    id: str
    type: AnalysisType
    raw_data: Optional[Any] = None
    structured_data: Optional[Any] = None
    visual_metrics: Optional[Any] = None
    risk_assessment: Optional[str] = None
    problems_detected: Optional[List[Dict[str, Any]]] = None
    treatments: Optional[List[Dict[str, Any]]] = None
    created_at: datetime


class PaginatedAnalyses(BaseModel):
    analyses: List[AnalysisItem] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    total_pages: int = 1


class UserStats(BaseModel):
    """Dashboard counters"""
    total_analyses: int = 0
    reports_scanned: int = 0
    faces_analyzed: int = 0
    risk_assessments: int = 0
    last_analysis_at: Optional[datetime] = None


class HealthSummaryResponse(BaseModel):
    summary: str


class ChatResponse(BaseModel):
    success: bool
    response: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None


class ScaledOverlay(BaseModel):
    """Boxes mapped into rendered image coordinates"""
    scale_x: float
    scale_y: float
    natural_width: int
    natural_height: int
    render_width: int
    render_height: int
    boxes: List[BoundingBox]


class Language(BaseModel):
    code: str
    name: str
    native_name: str


class LanguagesResponse(BaseModel):
    current: str
    default: str
    languages: List[Language]


class TaskStatusResponse(BaseModel):
    task_id: str
    state: TaskState
    result: Optional[ActionResponse] = None
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for the health endpoint"""
    success: bool = Field(..., description="Whether the request succeeded")
    message: str = Field(..., description="Status message")
    version: str = Field(..., description="API version")
    environment: str = Field(..., description="Runtime environment")
    timestamp: datetime = Field(..., description="Response time")
    database_status: Optional[str] = Field(None, description="Database connection status")
    cache_status: Optional[str] = Field(None, description="Cache connection status")
    ai_mode: Optional[str] = Field(None, description="Hosted model or rule-based analyzer")
