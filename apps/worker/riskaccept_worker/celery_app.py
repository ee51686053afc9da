"""Celery application configuration."""

import logging

from celery import Celery
from celery.signals import worker_init

from riskaccept_worker.settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

celery_app = Celery(
    "riskaccept_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,  # 5 minutes
    task_soft_time_limit=4 * 60,  # 4 minutes
    beat_schedule={
        "risk-acceptance-expiry-sweep": {
            "task": "riskaccept_worker.tasks.run_expiry_sweep",
            "schedule": float(settings.expiry_sweep_interval_seconds),
        },
    },
)


@worker_init.connect
def validate_settings(**kwargs):
    """Refuse to start a worker that would silently drop notifications."""
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error(f"Worker configuration validation failed: {e}")
        raise


# Import tasks to register them with Celery
# This must be done after celery_app is created
from riskaccept_worker import tasks  # noqa: F401, E402
