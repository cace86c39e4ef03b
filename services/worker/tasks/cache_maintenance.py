"""
Suggestion cache maintenance tasks

- sweep_expired_suggestions: periodic (beat), removes expired entries
- invalidate_country_suggestions: on demand, called by the budget-editing
  workflow when a budget's country or currency changes

Each task runs its coroutine in a fresh event loop and owns its database
engine for the duration of the run.
"""
import asyncio
from typing import Any, Dict

import structlog
from celery import Task

from services.worker.celery_app import app
from packages.common.config import get_settings
from packages.common.database import resolve_database_url, sessionmanager
from packages.domain.offers.cache_janitor import CacheJanitor
from packages.domain.offers.exceptions import CacheStoreError

logger = structlog.get_logger()


class MaintenanceTask(Task):
    """Base task for cache maintenance with retry logic"""
    autoretry_for = (CacheStoreError,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True


async def _run_janitor(operation: str, *args) -> int:
    settings = get_settings()
    await sessionmanager.init(resolve_database_url())
    try:
        janitor = CacheJanitor(settings=settings)
        return await getattr(janitor, operation)(*args)
    finally:
        await sessionmanager.close()


@app.task(base=MaintenanceTask, name="services.worker.tasks.cache_maintenance.sweep_expired_suggestions")
def sweep_expired_suggestions() -> Dict[str, Any]:
    """
    Delete market suggestions whose expiry has passed.

    Returns:
        Dict with the number of removed entries
    """
    logger.info("cache_sweep_task_started")

    removed = asyncio.run(_run_janitor("sweep_expired"))

    logger.info("cache_sweep_task_complete", removed=removed)
    return {"status": "completed", "removed": removed}


@app.task(base=MaintenanceTask, name="services.worker.tasks.cache_maintenance.invalidate_country_suggestions")
def invalidate_country_suggestions(country: str) -> Dict[str, Any]:
    """
    Delete every market suggestion computed for a country.

    Args:
        country: ISO 3166-1 alpha-2 code

    Returns:
        Dict with the country and number of removed entries
    """
    logger.info("cache_invalidation_task_started", country=country)

    removed = asyncio.run(_run_janitor("invalidate_country", country))

    logger.info("cache_invalidation_task_complete", country=country, removed=removed)
    return {"status": "completed", "country": country.upper(), "removed": removed}
