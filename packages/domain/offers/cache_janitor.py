"""
Cache Janitor - Periodic removal of expired market suggestions

Runs from the Celery worker (daily beat schedule), never on a request path.
Each sweep is bounded by CACHE_JANITOR_TIMEOUT_SECONDS.
"""
import asyncio
from datetime import datetime
from typing import Optional

import structlog

from packages.common.config import Settings, get_settings
from packages.domain.offers.exceptions import CacheStoreError
from packages.domain.offers.suggestion_cache import SuggestionCacheRepository

logger = structlog.get_logger()


class CacheJanitor:

    def __init__(
        self,
        cache: Optional[SuggestionCacheRepository] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache or SuggestionCacheRepository(ttl_days=self.settings.suggestion_cache_ttl_days)
        self.timeout = self.settings.cache_janitor_timeout_seconds

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete every entry whose expiry has passed.

        Returns:
            Number of entries removed

        Raises:
            CacheStoreError: On database failure or when the sweep exceeds its timeout
        """
        try:
            removed = await asyncio.wait_for(self.cache.delete_expired(now), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("cache_sweep_timeout", timeout_s=self.timeout)
            raise CacheStoreError(f"Expired suggestion sweep exceeded {self.timeout}s") from e

        logger.info("cache_sweep_complete", removed=removed)
        return removed

    async def invalidate_country(self, country: str) -> int:
        """
        Drop every suggestion computed for a country.

        Called when a budget's country or currency changes so stale-locale
        offers are not served.
        """
        try:
            removed = await asyncio.wait_for(self.cache.invalidate_country(country), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("cache_country_invalidation_timeout", country=country, timeout_s=self.timeout)
            raise CacheStoreError(f"Country invalidation exceeded {self.timeout}s") from e

        logger.info("cache_country_invalidation_complete", country=country, removed=removed)
        return removed
