# marketplace/tasks/expire.py
from datetime import datetime, timedelta, timezone

from marketplace.celery_worker import celery_app
from marketplace.data.database import SessionLocal
from marketplace.repos.session_repo import SessionRepo
from marketplace.utils.settings import SESSION_TTL_SECONDS
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def expire_sessions(db, now: datetime | None = None, ttl_seconds: int | None = None) -> int:
    """pending -> expired for sessions older than the TTL; paid sessions are never touched."""
    now = now or datetime.now(timezone.utc)
    ttl = SESSION_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    repo = SessionRepo(db)

    count = repo.expire_pending_before(now - timedelta(seconds=ttl))
    repo.commit()
    return count


@celery_app.task(name="marketplace.tasks.expire.expire_sessions_task")
def expire_sessions_task():
    logger.info("Expire checkout sessions task started")

    db = SessionLocal()
    try:
        count = expire_sessions(db)
        logger.info(f"Expired {count} pending checkout sessions")
        return count
    finally:
        db.close()
