from fastapi import APIRouter, Depends, File, Form, HTTPException, Path, UploadFile
import logging
from typing import Optional
from starlette.concurrency import run_in_threadpool

from app.api.deps import envelope, get_user_id, read_upload, require_user_id
from app.models.responses import ActionResponse, TaskStatusResponse
from app.services import actions
from app.services.tasks import get_task_status

# Logger setup
logger = logging.getLogger(__name__)

# Router
router = APIRouter()


@router.post("/analyze/face", response_model=ActionResponse)
async def analyze_face(
    file: Optional[UploadFile] = File(None),
    async_process: bool = Form(False),
    user_id: Optional[str] = Depends(get_user_id)
):
    """
    Analyze a face photo.

    This API:
    1. validates the upload (JPEG/PNG, at most 10MB)
    2. detects faces and measures skin redness and yellowness
    3. derives detected problems and treatment recommendations
    4. returns an annotated copy with the face boxes drawn

    With async_process the work is queued and a task id is returned; poll
    /analyze/tasks/{task_id} for the result.
    """
    content = await read_upload(file)
    content_type = file.content_type if file is not None else None

    response = await actions.analyze_face(content, content_type, user_id, async_process)
    return envelope(response)


@router.get("/analyze/tasks/{task_id}", response_model=TaskStatusResponse)
async def task_status(
    task_id: str = Path(..., description="Id returned by an async analysis"),
    user_id: str = Depends(require_user_id)
):
    """
    State of a queued face or report analysis.
    """
    status = await run_in_threadpool(get_task_status, task_id, user_id)
    if status["state"] == "not_found":
        raise HTTPException(status_code=404, detail="Task not found")
    return TaskStatusResponse(**status)
