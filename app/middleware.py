import time
import logging
import uuid
from datetime import datetime
from fastapi import Request

from app.api.deps import USER_HEADER
from app.db.repository import save_request_info
from app.models.database import RequestRecord
from app.utils.i18n import LANGUAGE_HEADER, negotiate_language

# Logger setup
logger = logging.getLogger(__name__)


async def request_context_middleware(request: Request, call_next):
    """
    Tag each request with an id and a negotiated language, time it, and
    store a request log record for API paths.
    """
    request_id = str(uuid.uuid4())
    start_time = time.time()

    language = negotiate_language(
        request.query_params.get("lang"),
        request.headers.get(LANGUAGE_HEADER),
        request.headers.get("Accept-Language")
    )

    request.state.request_id = request_id
    request.state.language = language

    logger.info(f"New request: {request_id} - path: {request.url.path} - language: {language}")

    response = await call_next(request)

    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    response.headers["X-Request-Id"] = request_id
    response.headers["Content-Language"] = language

    if request.url.path.startswith("/api/"):
        await save_request_info(RequestRecord(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
            user_id=request.headers.get(USER_HEADER),
            language=language,
            status_code=response.status_code,
            process_time=process_time,
            created_at=datetime.utcnow()
        ))

    return response
