# Import model modules
from app.models.requests import RiskAssessmentRequest, ChatRequest, OverlayScaleRequest
from app.models.responses import ActionResponse, FaceAnalysisResult, ReportAnalysisResult, BoundingBox, HealthResponse
from app.models.database import RequestRecord, AnalysisRecord
