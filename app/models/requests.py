from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any

from app.models.responses import BoundingBox


class RiskAssessmentRequest(BaseModel):
    """
    Request to build a risk assessment from stored analyses.
    """
    report_analysis_id: Optional[str] = Field(None, description="Id of a stored report analysis")
    face_analysis_id: Optional[str] = Field(None, description="Id of a stored face analysis")
    user_data: Optional[Dict[str, Any]] = Field(None, description="Age, gender, symptoms and other form answers")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "report_analysis_id": "65f0c3a2e4b0a1b2c3d4e5f6",
            "face_analysis_id": None,
            "user_data": {"age": 34, "gender": "female", "symptoms": ["itching"]}
        }
    })


class ChatMessage(BaseModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., description="The user's question")
    history: List[ChatMessage] = Field(default_factory=list, description="Earlier messages of the conversation")


class OverlayScaleRequest(BaseModel):
    """
    Boxes in natural image coordinates plus the size the image is rendered at.

    Missing natural dimensions fall back to the defaults; missing rendered
    dimensions mean the image is shown at its natural size.
    """
    boxes: List[BoundingBox]
    natural_width: Optional[int] = None
    natural_height: Optional[int] = None
    render_width: Optional[int] = None
    render_height: Optional[int] = None
    clamp: bool = Field(False, description="Clip boxes to the rendered frame")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "boxes": [{"x": 100, "y": 80, "width": 200, "height": 250}],
            "natural_width": 1280,
            "natural_height": 960,
            "render_width": 640,
            "render_height": 480
        }
    })
