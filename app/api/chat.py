from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional

from app.api.deps import get_language, get_user_profile, require_user_id
from app.models.requests import ChatRequest
from app.models.responses import ChatResponse
from app.services import chatbot

# Router
router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    user_id: str = Depends(require_user_id),
    language: str = Depends(get_language),
    profile: Optional[Dict[str, Any]] = Depends(get_user_profile)
):
    """
    Ask the health assistant a question about your own results.

    The reply is grounded in a summary of the caller's stored analyses and
    written in the negotiated response language. When the gateway forwards
    the user's name it is used to address them.
    """
    reply = await chatbot.answer(request.message, request.history, user_id, language, profile)

    if not reply.success:
        return JSONResponse(
            status_code=reply.error_type.status_code,
            content=reply.model_dump(mode="json", exclude_none=True)
        )
    return reply
