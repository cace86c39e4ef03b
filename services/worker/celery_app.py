"""
Celery application configuration for background tasks
"""
from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown
import structlog

from packages.common.config import get_settings
from packages.common.log_config import configure_logging

configure_logging()

logger = structlog.get_logger()
settings = get_settings()

# Create Celery app
app = Celery(
    "offer_engine_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes hard limit
    task_soft_time_limit=240,  # 4 minutes soft limit

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour
    result_extended=True,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,

    # Task routing
    task_routes={
        "services.worker.tasks.cache_maintenance.*": {"queue": "maintenance"},
    },

    # Beat schedule (periodic tasks)
    beat_schedule={
        "sweep-expired-suggestions": {
            "task": "services.worker.tasks.cache_maintenance.sweep_expired_suggestions",
            "schedule": settings.cache_janitor_interval_hours * 3600.0,  # Daily by default
            "options": {"queue": "maintenance"},
        },
    },
)

# Import tasks explicitly to register them
from services.worker.tasks import cache_maintenance  # noqa: E402,F401


@worker_process_init.connect
def init_worker(**kwargs):
    """Initialize worker process"""
    logger.info("celery_worker_starting",
                environment=settings.environment,
                concurrency=kwargs.get("concurrency", "unknown"))


@worker_process_shutdown.connect
def shutdown_worker(**kwargs):
    """Clean up worker process"""
    logger.info("celery_worker_shutting_down")


if __name__ == "__main__":
    app.start()
