from fastapi import APIRouter, Depends, File, Form, UploadFile
import logging
from typing import Optional

from app.api.deps import envelope, get_user_id, read_upload
from app.models.responses import ActionResponse
from app.services import actions

# Logger setup
logger = logging.getLogger(__name__)

# Router
router = APIRouter()


@router.post("/analyze/report", response_model=ActionResponse)
async def analyze_report(
    file: Optional[UploadFile] = File(None),
    async_process: bool = Form(False),
    user_id: Optional[str] = Depends(get_user_id)
):
    """
    Extract and structure the metrics of a medical report.

    Images go through Tesseract OCR; PDFs are read from their text layer.
    The text is structured by the configured analyzer. If structuring fails
    the raw text is still returned, with a warning.
    """
    content = await read_upload(file)
    content_type = file.content_type if file is not None else None

    response = await actions.analyze_report(content, content_type, user_id, async_process)
    return envelope(response)
