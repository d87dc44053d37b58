import os
from celery import Celery
from celery.schedules import crontab
from celery.utils.log import get_task_logger

from .database import SessionLocal
from .services import reviewers

logger = get_task_logger(__name__)

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "memory://")
celery_app = Celery("tasks", broker=CELERY_BROKER_URL)
celery_app.conf.task_always_eager = (
    CELERY_BROKER_URL == "memory://" or os.getenv("TESTING") == "1"
)

celery_app.conf.beat_schedule = {
    "expire-reviewer-invitations": {
        "task": "jairam.tasks.expire_reviewer_invitations",
        "schedule": crontab(minute=0),
    },
}


@celery_app.task(name="jairam.tasks.expire_reviewer_invitations")
def expire_reviewer_invitations() -> int:
    db = SessionLocal()
    try:
        expired = reviewers.expire_stale_invitations(db)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Reviewer invitation expiry failed")
        raise
    finally:
        db.close()
    logger.info("Marked %s reviewer invitation(s) as expired", expired)
    return expired
