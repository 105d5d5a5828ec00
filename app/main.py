from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import asyncio
from typing import Callable

from pymongo.errors import PyMongoError

from app.config import settings
from app.api.face_analysis import router as face_analysis_router
from app.api.report_analysis import router as report_analysis_router
from app.api.risk import router as risk_router
from app.api.analyses import router as analyses_router
from app.api.chat import router as chat_router
from app.api.overlay import router as overlay_router
from app.api.languages import router as languages_router
from app.api.health import router as health_router
from app.middleware import request_context_middleware
from app.db.connection import connect_to_mongo, close_mongo_connection
from app.models.enums import ErrorType
from app.services.cache import close_cache

# Logging setup
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

# FastAPI application
app = FastAPI(
    title="SehatScan Analysis API",
    description="Face photo and medical report analysis with AI health insights",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception middleware
@app.middleware("http")
async def db_exception_handler(request: Request, call_next: Callable):
    try:
        return await call_next(request)
    except (RuntimeError, PyMongoError) as e:
        logger.error(f"Database error: {str(e)}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Database service is unavailable. Please try again later."}
        )
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An internal server error occurred. Please try again later."}
        )


# Request id, language and timing; registered last so it wraps everything else
app.middleware("http")(request_context_middleware)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": f"{field}: {message}" if field else message,
            "error_type": ErrorType.VALIDATION.value
        }
    )


# Routers
app.include_router(face_analysis_router, prefix="/api/v1", tags=["Face analysis"])
app.include_router(report_analysis_router, prefix="/api/v1", tags=["Report analysis"])
app.include_router(risk_router, prefix="/api/v1", tags=["Risk assessment"])
app.include_router(analyses_router, prefix="/api/v1", tags=["History"])
app.include_router(chat_router, prefix="/api/v1", tags=["Chat"])
app.include_router(overlay_router, prefix="/api/v1", tags=["Overlay"])
app.include_router(languages_router, prefix="/api/v1", tags=["Languages"])
app.include_router(health_router, prefix="/api/v1", tags=["System health"])


@app.on_event("startup")
async def startup_event():
    """
    Application startup
    """
    logging.info("SehatScan analysis API starting...")

    # Connect to MongoDB, retrying a few times
    max_retries = 5
    retry_delay = 5  # seconds

    for attempt in range(max_retries):
        try:
            await connect_to_mongo()
            logging.info("Connected to MongoDB")
            break
        except (PyMongoError, TimeoutError) as e:
            if attempt < max_retries - 1:
                logging.warning(f"MongoDB connection failed (attempt {attempt+1}/{max_retries}): {str(e)}")
                await asyncio.sleep(retry_delay)
            else:
                logging.error(f"MongoDB connection failed after {max_retries} attempts: {str(e)}")
                logging.warning("Continuing without a database. Analyses will not be saved.")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Application shutdown
    """
    logging.info("SehatScan analysis API shutting down...")

    await close_mongo_connection()
    await close_cache()


# Root route
@app.get("/")
async def root():
    """Root route for checking that the API is reachable"""
    return {
        "message": "SehatScan Analysis API",
        "version": settings.APP_VERSION,
        "status": "online",
        "docs": "/docs"
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
