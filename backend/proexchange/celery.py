"""
Celery Application Configuration

Configures Celery for outbound notification delivery with:
- Redis as message broker and result backend
- Task autodiscovery from proexchange.tasks
- A dedicated "notifications" queue

Usage:
    # Start worker:
    celery -A proexchange.celery worker -Q notifications,default --loglevel=info

    # Enqueue a delivery (normally done by CeleryNotificationDispatcher):
    from proexchange.tasks.notifications import deliver_notification
    deliver_notification.delay(notification.to_message())
"""

from celery import Celery
from proexchange.config import get_settings

settings = get_settings()

celery_app = Celery(
    "proexchange",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result settings
    result_expires=3600,
    task_track_started=True,

    # Retry settings
    task_acks_late=True,  # Acknowledge after completion
    task_reject_on_worker_lost=True,

    task_routes={
        "proexchange.tasks.notifications.deliver_notification": {"queue": "notifications"},
    },
    task_default_queue="default",

    # Broker connection
    broker_connection_timeout=settings.celery_broker_timeout_seconds,
    broker_transport_options={
        "socket_connect_timeout": settings.celery_broker_timeout_seconds,
        "socket_timeout": settings.celery_broker_timeout_seconds,
    },
)

celery_app.autodiscover_tasks(["proexchange.tasks"])
