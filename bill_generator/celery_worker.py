"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.

Ledger exports go to their own queue:
    celery -A bill_generator.celery_worker worker -Q ledger --loglevel=info
"""

from celery import Celery

from bill_generator.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "bill_generator_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["bill_generator.tasks"],  # Module containing our tasks
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Ledger appends are serialized by the file lock anyway
    worker_concurrency=2,

    # Result settings
    result_expires=3600,

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    # Routing
    task_routes={"bill_generator.tasks.export_order_to_excel": {"queue": "ledger"}},

    broker_connection_retry_on_startup=True,
)


if __name__ == "__main__":
    celery_app.start()
