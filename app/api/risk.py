from fastapi import APIRouter, Depends
from typing import Optional

from app.api.deps import envelope, get_user_id
from app.models.requests import RiskAssessmentRequest
from app.models.responses import ActionResponse
from app.services import actions

# Router
router = APIRouter()


@router.post("/analyze/risk", response_model=ActionResponse)
async def generate_risk_assessment(
    request: RiskAssessmentRequest,
    user_id: Optional[str] = Depends(get_user_id)
):
    """
    Dermatology health check from a stored report and/or face analysis.

    At least one analysis id is required; both must belong to the caller.
    """
    response = await actions.generate_risk_assessment(request, user_id)
    return envelope(response)
