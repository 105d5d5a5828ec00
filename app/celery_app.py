from celery import Celery
from app.config import settings

# Celery setup
app = Celery(
    "sehatscan",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

# Queues and routing
app.conf.task_routes = {
    "app.services.tasks.analyze_face": {"queue": "face_analysis"},
    "app.services.tasks.analyze_report": {"queue": "report_analysis"},
}

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_track_started=True,
    task_time_limit=180,  # 3 minutes per task
    result_expires=60 * 60 * 24,
    timezone="UTC",
    enable_utc=True,
)

# Register the tasks
app.autodiscover_tasks(["app.services"])
