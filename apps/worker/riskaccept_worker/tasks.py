"""Celery tasks for async operations."""

import logging
from typing import Optional

import httpx
from celery import Task
from sqlalchemy.orm import Session

from riskaccept_worker.celery_app import celery_app
from riskaccept_worker.db import get_db
from riskaccept_worker.settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


class DatabaseTask(Task):
    """Task with database session."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = next(get_db())
        return self._db

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


@celery_app.task(
    base=DatabaseTask,
    bind=True,
    max_retries=settings.notification_max_retries,
    autoretry_for=(httpx.HTTPError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
)
def send_notification(
    self,
    user_id: str,
    subject: str,
    body: str,
    correlation_id: Optional[str] = None,
):
    """Deliver a workflow notification through the HTTP mail relay."""
    from riskaccept_api.models import User

    log_extra = {
        "task": "send_notification",
        "user_id": user_id,
        "correlation_id": correlation_id,
        "attempt": self.request.retries + 1,
    }

    if not settings.notification_relay_url:
        logger.warning("No notification relay configured, dropping message", extra=log_extra)
        return {"delivered": False, "reason": "no_relay"}

    user = self.db.get(User, user_id)
    if user is None or not user.is_active:
        logger.warning(f"Notification recipient {user_id} not found or inactive", extra=log_extra)
        return {"delivered": False, "reason": "unknown_recipient"}

    headers = {"Content-Type": "application/json"}
    if correlation_id:
        headers["x-correlation-id"] = correlation_id
    if settings.notification_relay_token:
        headers["Authorization"] = f"Bearer {settings.notification_relay_token}"

    try:
        with httpx.Client(timeout=settings.notification_timeout_seconds) as client:
            response = client.post(
                settings.notification_relay_url,
                json={"to": user.email, "name": user.name, "subject": subject, "text": body},
                headers=headers,
            )
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Notification delivery failed: {e}", exc_info=True, extra=log_extra)
        raise

    logger.info("Notification delivered", extra={**log_extra, "status_code": response.status_code})
    return {"delivered": True, "status_code": response.status_code}


@celery_app.task(base=DatabaseTask, bind=True)
def run_expiry_sweep(self, correlation_id: Optional[str] = None):
    """Expire approved risk acceptances whose review date has passed."""
    from riskaccept_api.utils.clock import utcnow
    from riskaccept_api.workflow.sweeper import ExpirySweeper

    log_extra = {"task": "run_expiry_sweep", "correlation_id": correlation_id}
    try:
        expired = ExpirySweeper(self.db).sweep(now=utcnow(), correlation_id=correlation_id)
    except Exception as e:
        logger.error(f"Expiry sweep failed: {e}", exc_info=True, extra=log_extra)
        raise

    logger.info(f"Expiry sweep expired {expired} acceptances", extra=log_extra)
    return {"expired": expired}
