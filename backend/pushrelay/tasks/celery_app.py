from celery import Celery

from pushrelay.core.config import settings

celery_app = Celery(
    "pushrelay",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["pushrelay.tasks.push_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
)
