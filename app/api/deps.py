import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse

from app.config import settings
from app.models.responses import ActionResponse
from app.utils.i18n import default_language

# Logger setup
logger = logging.getLogger(__name__)

# Identity forwarded by the auth gateway
USER_HEADER = "X-User-Id"
USER_NAME_HEADER = "X-User-Name"
USER_CREATED_HEADER = "X-User-Created-At"


async def get_user_id(x_user_id: Optional[str] = Header(None, alias=USER_HEADER)) -> Optional[str]:
    """Identity forwarded by the auth gateway; None when missing."""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return None


async def require_user_id(x_user_id: Optional[str] = Header(None, alias=USER_HEADER)) -> str:
    user_id = await get_user_id(x_user_id)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Please log in again."
        )
    return user_id


async def get_user_profile(
    name: Optional[str] = Header(None, alias=USER_NAME_HEADER),
    created_at: Optional[str] = Header(None, alias=USER_CREATED_HEADER)
) -> Optional[Dict[str, Any]]:
    """
    Display name and sign-up date forwarded by the auth gateway.

    Returns None when no name is sent; an unreadable date is left out.
    """
    if not name or not name.strip():
        return None

    profile: Dict[str, Any] = {"name": name.strip()}
    if created_at:
        try:
            profile["created_at"] = datetime.fromisoformat(created_at.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Ignoring unreadable {USER_CREATED_HEADER} header: {created_at}")
    return profile


async def read_upload(file: Optional[UploadFile]) -> Optional[bytes]:
    """
    Read an uploaded file, stopping one byte past the size limit.

    An oversized upload is never pulled into memory in full; the extra byte
    is enough for the upload validation to reject it.
    """
    if file is None:
        return None
    return await file.read(settings.MAX_UPLOAD_SIZE + 1)


def get_language(request: Request) -> str:
    return getattr(request.state, "language", None) or default_language()


def envelope(response: ActionResponse) -> JSONResponse:
    """Serialize an action envelope with the status code matching its error type."""
    return JSONResponse(
        status_code=response.status_code,
        content=response.model_dump(mode="json", exclude_none=True)
    )
