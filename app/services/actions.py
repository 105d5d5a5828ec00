import asyncio
import base64
import logging
import time
from typing import Any, Dict, Optional, Tuple

from kombu.exceptions import OperationalError
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.core.face_analysis import analyze_face_image
from app.core.ocr import extract_text
from app.db import repository
from app.exceptions import (
    AIServiceError,
    AnalysisError,
    AnalysisNotFoundError,
    AuthenticationRequiredError,
    FaceAnalysisError,
)
from app.models.database import AnalysisRecord
from app.models.enums import AnalysisType, ErrorType
from app.models.requests import RiskAssessmentRequest
from app.models.responses import ActionResponse, FaceAnalysisResult, ReportAnalysisResult
from app.services import cache, get_analyzer, get_fallback_analyzer
from app.utils.image_processing import (
    FACE_CONTENT_TYPES,
    REPORT_CONTENT_TYPES,
    decode_image,
    validate_upload,
)

# Logger setup
logger = logging.getLogger(__name__)

SAVE_WARNING = "Analysis completed but couldn't be saved to your history"
STRUCTURING_WARNING = "Text extracted but AI structuring failed. Raw text is available."
NO_TEXT_WARNING = "No text could be extracted from the file. Please upload a clearer image."

FACE_TIMEOUT_MESSAGE = "Request timed out. Please try again with a smaller image."
REPORT_TIMEOUT_MESSAGE = (
    "Request timed out. OCR processing can take time for large files. "
    "Please try again with a smaller or clearer image."
)
RISK_TIMEOUT_MESSAGE = "Risk assessment is taking longer than expected. Please try again."
RATE_LIMIT_MESSAGE = "AI service is busy. Please try again in a few moments."
QUEUE_UNAVAILABLE_MESSAGE = "Background processing is unavailable. Please try again without async processing."


def require_user(user_id: Optional[str]) -> str:
    if not user_id or not user_id.strip():
        raise AuthenticationRequiredError()
    return user_id.strip()


def run_face_pipeline(content: bytes) -> FaceAnalysisResult:
    """
    Decode and analyze a face photo. CPU bound; call from a worker thread.

    Raises:
        FaceAnalysisError: when the image cannot be decoded or holds no usable region
    """
    image = decode_image(content, keep_alpha=True)
    if image is None:
        raise FaceAnalysisError("Invalid image. Please upload a valid JPEG or PNG photo.")

    result = analyze_face_image(image)
    if not result.face_detected:
        raise FaceAnalysisError()
    return result


async def run_report_pipeline(content: bytes, content_type: str) -> ReportAnalysisResult:
    """
    OCR a report and structure its text.

    Structuring falls back to the rule-based analyzer when the hosted model's
    quota is exhausted; any other model failure still returns the raw text
    with a warning.
    """
    ocr = await run_in_threadpool(extract_text, content, content_type)

    if not ocr.text.strip():
        logger.warning("No text extracted from report")
        return ReportAnalysisResult(raw_text=ocr.text, ocr_confidence=ocr.confidence, warning=NO_TEXT_WARNING)

    analyzer = get_analyzer()
    try:
        structured = await analyzer.structure_ocr_data(ocr.text)
    except AIServiceError as e:
        if not e.is_quota:
            logger.error(f"Data structuring failed: {e.message}")
            return ReportAnalysisResult(raw_text=ocr.text, ocr_confidence=ocr.confidence, warning=STRUCTURING_WARNING)

        logger.warning("Gemini quota exceeded, falling back to rule-based analyzer")
        structured = await get_fallback_analyzer().structure_ocr_data(ocr.text)

    return ReportAnalysisResult(raw_text=ocr.text, structured_data=structured, ocr_confidence=ocr.confidence)


async def persist_analysis(record: AnalysisRecord) -> Tuple[Optional[str], Optional[str]]:
    """
    Save an analysis and invalidate the user's cached views.

    Returns:
        tuple: (analysis id, save error); a failed save never raises
    """
    if not settings.STORE_ANALYSES:
        return None, None

    try:
        analysis_id = await repository.save_analysis(record)
    except (RuntimeError, PyMongoError) as e:
        logger.error(f"Database save failed for user {record.user_id}: {str(e)}")
        return None, str(e) or "Failed to save analysis to history"

    await cache.invalidate_user(record.user_id)
    return analysis_id, None


def face_record(user_id: str, result: FaceAnalysisResult, task_id: Optional[str] = None) -> AnalysisRecord:
    data = result.model_dump(mode="json")
    raw_data = {k: v for k, v in data.items() if k != "annotated_image"}
    return AnalysisRecord(
        user_id=user_id,
        type=AnalysisType.FACE,
        raw_data=raw_data,
        visual_metrics=data["visual_metrics"][0] if data["visual_metrics"] else None,
        problems_detected=data["problems_detected"],
        treatments=data["treatments"],
        task_id=task_id
    )


def report_record(user_id: str, result: ReportAnalysisResult, task_id: Optional[str] = None) -> AnalysisRecord:
    data = result.model_dump(mode="json")
    structured = data.get("structured_data")
    return AnalysisRecord(
        user_id=user_id,
        type=AnalysisType.REPORT,
        raw_data=data,
        structured_data=structured,
        problems_detected=structured["problems_detected"] if structured else None,
        treatments=structured["treatments"] if structured else None,
        task_id=task_id
    )


def saved_response(data: Dict[str, Any], analysis_id: Optional[str], save_error: Optional[str]) -> ActionResponse:
    if save_error:
        return ActionResponse(success=True, data=data, save_error=save_error, warning=SAVE_WARNING)
    return ActionResponse(success=True, data=data, analysis_id=analysis_id, warning=data.get("warning"))


def _queue(task, payload: str, user_id: str) -> ActionResponse:
    try:
        async_result = task.delay(payload, user_id)
    except OperationalError as e:
        logger.error(f"Could not queue {task.name}: {str(e)}")
        return ActionResponse.failure(QUEUE_UNAVAILABLE_MESSAGE, ErrorType.SERVICE)

    logger.info(f"Queued {task.name} as {async_result.id} for user {user_id}")
    return ActionResponse(success=True, task_id=async_result.id)


async def analyze_face(
    content: Optional[bytes],
    content_type: Optional[str],
    user_id: Optional[str],
    async_process: bool = False
) -> ActionResponse:
    """
    Analyze a face photo for the user and store the result.

    Returns:
        ActionResponse: success with the FaceAnalysisResult in `data`, or the error
    """
    start_time = time.time()

    try:
        validate_upload(content, content_type, FACE_CONTENT_TYPES, "Please upload a JPEG or PNG image")
        user_id = require_user(user_id)

        if async_process:
            from app.services.tasks import analyze_face_task
            return _queue(analyze_face_task, base64.b64encode(content).decode("ascii"), user_id)

        result = await asyncio.wait_for(
            run_in_threadpool(run_face_pipeline, content),
            timeout=settings.FACE_ANALYSIS_TIMEOUT
        )
        analysis_id, save_error = await persist_analysis(face_record(user_id, result))

        logger.info(
            f"analyzeFace completed in {(time.time() - start_time) * 1000:.0f}ms "
            f"(user: {user_id}, analysis: {analysis_id}, faces: {result.faces_count})"
        )
        return saved_response(result.model_dump(mode="json"), analysis_id, save_error)

    except AnalysisError as e:
        logger.warning(f"analyzeFace failed: {e.message}")
        return ActionResponse.failure(e.message, e.error_type)
    except asyncio.TimeoutError:
        logger.error("analyzeFace - Request timeout")
        return ActionResponse.failure(FACE_TIMEOUT_MESSAGE, ErrorType.TIMEOUT)
    except Exception as e:
        logger.error(f"analyzeFace - Unexpected error after {time.time() - start_time:.2f}s: {str(e)}")
        return ActionResponse.failure(AnalysisError.default_message, ErrorType.UNEXPECTED)


async def analyze_report(
    content: Optional[bytes],
    content_type: Optional[str],
    user_id: Optional[str],
    async_process: bool = False
) -> ActionResponse:
    """
    OCR and structure a medical report for the user and store the result.
    """
    start_time = time.time()

    try:
        validate_upload(content, content_type, REPORT_CONTENT_TYPES, "Please upload a JPEG, PNG, or PDF file")
        user_id = require_user(user_id)

        if async_process:
            from app.services.tasks import analyze_report_task
            payload = f"{content_type};{base64.b64encode(content).decode('ascii')}"
            return _queue(analyze_report_task, payload, user_id)

        result = await asyncio.wait_for(
            run_report_pipeline(content, content_type),
            timeout=settings.REPORT_ANALYSIS_TIMEOUT
        )
        analysis_id, save_error = await persist_analysis(report_record(user_id, result))

        logger.info(
            f"analyzeReport completed in {(time.time() - start_time) * 1000:.0f}ms "
            f"(user: {user_id}, analysis: {analysis_id}, structured: {result.structured_data is not None})"
        )
        return saved_response(result.model_dump(mode="json"), analysis_id, save_error)

    except AnalysisError as e:
        logger.warning(f"analyzeReport failed: {e.message}")
        return ActionResponse.failure(e.message, e.error_type)
    except asyncio.TimeoutError:
        logger.error("analyzeReport - Request timeout")
        return ActionResponse.failure(REPORT_TIMEOUT_MESSAGE, ErrorType.TIMEOUT)
    except Exception as e:
        logger.error(f"analyzeReport - Unexpected error after {time.time() - start_time:.2f}s: {str(e)}")
        return ActionResponse.failure(AnalysisError.default_message, ErrorType.UNEXPECTED)


async def _generate_assessment(lab_data, visual_metrics, user_data) -> str:
    analyzer = get_analyzer()
    try:
        return await analyzer.generate_risk_assessment(lab_data, visual_metrics, user_data)
    except AIServiceError as e:
        if not e.is_quota:
            raise
        logger.warning("Gemini quota exceeded, falling back to rule-based analyzer")
        return await get_fallback_analyzer().generate_risk_assessment(lab_data, visual_metrics, user_data)


async def generate_risk_assessment(request: RiskAssessmentRequest, user_id: Optional[str]) -> ActionResponse:
    """
    Build a health check from a stored report and/or face analysis.
    """
    start_time = time.time()
    report_id = request.report_analysis_id
    face_id = request.face_analysis_id

    try:
        if not report_id and not face_id:
            return ActionResponse.failure("At least one analysis (report or face) is required", ErrorType.VALIDATION)
        if not isinstance(request.user_data, dict):
            return ActionResponse.failure("User form data is required", ErrorType.VALIDATION)

        user_id = require_user(user_id)

        try:
            report, face = await asyncio.gather(
                repository.get_analysis_by_id(report_id, user_id) if report_id else _none(),
                repository.get_analysis_by_id(face_id, user_id) if face_id else _none()
            )
        except (RuntimeError, PyMongoError) as e:
            logger.error(f"generateRiskAssessment - Database fetch failed: {str(e)}")
            return ActionResponse.failure("Failed to retrieve analysis data. Please try again.", ErrorType.DATABASE)

        if report_id and not report:
            raise AnalysisNotFoundError("Selected report analysis not found. Please select a different report.")
        if face_id and not face:
            raise AnalysisNotFoundError("Selected face analysis not found. Please select a different face analysis.")

        lab_data = (report.get("structured_data") or report.get("raw_data")) if report else None
        visual_metrics = face.get("visual_metrics") if face else None
        if isinstance(visual_metrics, list):
            visual_metrics = visual_metrics[0] if visual_metrics else None

        if not lab_data and not visual_metrics:
            return ActionResponse.failure(
                "No usable data found in selected analyses. Please select different analyses.", ErrorType.VALIDATION
            )

        assessment = await asyncio.wait_for(
            _generate_assessment(lab_data, visual_metrics, request.user_data),
            timeout=settings.RISK_ASSESSMENT_TIMEOUT
        )
        if not assessment:
            return ActionResponse.failure("Invalid risk assessment response. Please try again.", ErrorType.SERVICE)

        data = {"risk_assessment": assessment}
        record = AnalysisRecord(
            user_id=user_id,
            type=AnalysisType.RISK,
            raw_data={
                "lab_data": lab_data,
                "visual_metrics": visual_metrics,
                "user_data": request.user_data,
                "report_analysis_id": report_id,
                "face_analysis_id": face_id
            },
            risk_assessment=assessment
        )
        analysis_id, save_error = await persist_analysis(record)

        logger.info(
            f"generateRiskAssessment completed in {(time.time() - start_time) * 1000:.0f}ms "
            f"(user: {user_id}, analysis: {analysis_id})"
        )
        return saved_response(data, analysis_id, save_error)

    except AIServiceError as e:
        logger.error(f"generateRiskAssessment - AI service error: {e.message}")
        if e.is_rate_limit:
            return ActionResponse.failure(RATE_LIMIT_MESSAGE, ErrorType.RATE_LIMIT)
        return ActionResponse.failure(
            "Risk assessment service is temporarily unavailable. Please try again later.", ErrorType.SERVICE
        )
    except AnalysisError as e:
        return ActionResponse.failure(e.message, e.error_type)
    except ValueError as e:
        return ActionResponse.failure(str(e), ErrorType.VALIDATION)
    except asyncio.TimeoutError:
        logger.error("generateRiskAssessment - Request timeout")
        return ActionResponse.failure(RISK_TIMEOUT_MESSAGE, ErrorType.TIMEOUT)
    except Exception as e:
        logger.error(f"generateRiskAssessment - Unexpected error after {time.time() - start_time:.2f}s: {str(e)}")
        return ActionResponse.failure(AnalysisError.default_message, ErrorType.UNEXPECTED)


async def _none():
    return None
