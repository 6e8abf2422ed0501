# marketplace/celery_worker.py
from celery import Celery

from marketplace.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "marketplace",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

#explicit imports so the worker registers every task
celery_app.conf.imports = (
    "marketplace.tasks.expire",
    "marketplace.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "expire-checkout-sessions-every-10-minutes": {
        "task": "marketplace.tasks.expire.expire_sessions_task",
        "schedule": 600.0,
    },
}

celery_app.conf.timezone = "UTC"
