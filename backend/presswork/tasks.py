import logging
import os
from celery import Celery
from celery.schedules import crontab

from .database import SessionLocal
from . import notify

logger = logging.getLogger(__name__)

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
celery_app = Celery("tasks", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

celery_app.conf.beat_schedule = {
    "daily-notification-digest": {
        "task": "presswork.tasks.send_notification_digest",
        "schedule": crontab(hour=8, minute=0),
    },
}


@celery_app.task(name="presswork.tasks.send_notification_digest")
def send_notification_digest() -> int:
    db = SessionLocal()
    try:
        return notify.send_daily_digest(db)
    except Exception:
        db.rollback()
        logger.exception("daily notification digest failed")
        raise
    finally:
        db.close()


def enqueue_notification_digest():
    if celery_app.conf.task_always_eager:
        return send_notification_digest()
    return send_notification_digest.delay()
