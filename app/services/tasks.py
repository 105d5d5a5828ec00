# app/services/tasks.py
import asyncio
import logging
from typing import Any, Dict
from celery import shared_task
from pymongo.errors import PyMongoError

from app.celery_app import app
from app.db.connection import close_mongo_connection, connect_to_mongo
from app.exceptions import AnalysisError
from app.models.database import AnalysisRecord
from app.models.enums import ErrorType
from app.models.responses import ActionResponse
from app.services import cache
from app.utils.image_processing import base64_to_bytes

# Logger setup
logger = logging.getLogger(__name__)


async def _persist_in_worker(record: AnalysisRecord):
    """
    Save from a worker process. Each task runs its own event loop, so the
    Mongo and Redis clients are opened and closed around the save.
    """
    from app.services.actions import persist_analysis

    try:
        await connect_to_mongo()
    except (PyMongoError, TimeoutError) as e:
        logger.error(f"Worker could not connect to MongoDB: {str(e)}")
        return None, "Failed to save analysis to history"

    try:
        return await persist_analysis(record)
    finally:
        await close_mongo_connection()
        await cache.close_cache()


def _decode(payload: str) -> bytes:
    content = base64_to_bytes(payload)
    if content is None:
        raise AnalysisError("Invalid file payload", ErrorType.VALIDATION)
    return content


def _task_result(user_id: str, response: ActionResponse) -> Dict[str, Any]:
    return {"user_id": user_id, "response": response.model_dump(mode="json")}


@shared_task(name="app.services.tasks.analyze_face", bind=True)
def analyze_face_task(self, image_data: str, user_id: str) -> Dict[str, Any]:
    """
    Background face analysis.

    Args:
        image_data: base64 image bytes
        user_id: owner of the analysis

    Returns:
        dict: owner id and the action envelope
    """
    from app.services.actions import face_record, run_face_pipeline, saved_response

    task_id = str(self.request.id)
    logger.info(f"Starting face analysis task {task_id}")

    try:
        result = run_face_pipeline(_decode(image_data))
        analysis_id, save_error = asyncio.run(_persist_in_worker(face_record(user_id, result, task_id)))
        response = saved_response(result.model_dump(mode="json"), analysis_id, save_error)
    except AnalysisError as e:
        logger.warning(f"Face analysis task {task_id} failed: {e.message}")
        response = ActionResponse.failure(e.message, e.error_type)
    except Exception as e:
        logger.error(f"Error in face analysis task {task_id}: {str(e)}")
        response = ActionResponse.failure(AnalysisError.default_message, ErrorType.UNEXPECTED)

    return _task_result(user_id, response)


@shared_task(name="app.services.tasks.analyze_report", bind=True)
def analyze_report_task(self, payload: str, user_id: str) -> Dict[str, Any]:
    """
    Background report analysis.

    Args:
        payload: "<content type>;<base64 file bytes>"
        user_id: owner of the analysis
    """
    from app.services.actions import report_record, run_report_pipeline, saved_response

    task_id = str(self.request.id)
    logger.info(f"Starting report analysis task {task_id}")

    async def run():
        content_type, _, encoded = payload.partition(";")
        result = await run_report_pipeline(_decode(encoded), content_type)
        analysis_id, save_error = await _persist_in_worker(report_record(user_id, result, task_id))
        return saved_response(result.model_dump(mode="json"), analysis_id, save_error)

    try:
        response = asyncio.run(run())
    except AnalysisError as e:
        logger.warning(f"Report analysis task {task_id} failed: {e.message}")
        response = ActionResponse.failure(e.message, e.error_type)
    except Exception as e:
        logger.error(f"Error in report analysis task {task_id}: {str(e)}")
        response = ActionResponse.failure(AnalysisError.default_message, ErrorType.UNEXPECTED)

    return _task_result(user_id, response)


def get_task_status(task_id: str, user_id: str) -> Dict[str, Any]:
    """
    State of a queued analysis.

    Returns:
        dict: task_id, state (pending/succeeded/failed), result envelope and message;
        a task owned by another user reads as not found
    """
    from celery.result import AsyncResult

    async_result = AsyncResult(task_id, app=app)
    state = async_result.state

    if state == "SUCCESS":
        value = async_result.result or {}
        if value.get("user_id") != user_id:
            return {"task_id": task_id, "state": "not_found"}
        response = value.get("response") or {}
        return {
            "task_id": task_id,
            "state": "succeeded" if response.get("success") else "failed",
            "result": response
        }

    if state in ("FAILURE", "REVOKED"):
        return {
            "task_id": task_id,
            "state": "failed",
            "message": "Background analysis failed. Please try again."
        }

    return {"task_id": task_id, "state": "pending"}
