"""
AI Usage Tracker - Spend ledger for the competitor search

One ai_api_usage row per single-charge analysis and one per batch, cache
hits included, so the cache hit rate and the real AI spend can be read back
from the same table.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import SQLAlchemyError

from packages.common.database import ai_api_usage, sessionmanager
from packages.domain.offers.exceptions import CacheStoreError

logger = structlog.get_logger()

REQUEST_TYPE_ANALYSIS = "market_analysis"
REQUEST_TYPE_QUICK_LOOKUP = "quick_lookup"
REQUEST_TYPE_BULK = "bulk_analysis"

COST_PRECISION = Decimal("0.000001")


class AIUsageRepository:
    """Writes and summarizes AI usage records."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory or sessionmanager.session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def record(
        self,
        request_type: str,
        category: Optional[str],
        country: Optional[str],
        input_tokens: int = 0,
        output_tokens: int = 0,
        cost_usd: Optional[Decimal] = None,
        cache_hit: bool = False,
        duration_ms: Optional[int] = None,
    ) -> None:
        """
        Append one usage record.

        Raises:
            CacheStoreError: On database failure
        """
        cost = (cost_usd or Decimal("0")).quantize(COST_PRECISION)
        values = {
            "id": uuid4(),
            "request_type": request_type,
            "category": category,
            "country": country,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "cost_usd": cost,
            "cache_hit": cache_hit,
            "duration_ms": duration_ms,
            "created_at": self._clock(),
        }

        try:
            async with self.session_factory() as db:
                await db.execute(sa.insert(ai_api_usage).values(**values))
                await db.commit()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"AI usage write failed: {e}") from e

        logger.debug("ai_usage_recorded",
                    request_type=request_type,
                    category=category,
                    cache_hit=cache_hit,
                    total_tokens=values["total_tokens"],
                    cost_usd=float(cost))

    async def get_usage_stats(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Aggregate usage for monitoring.

        Args:
            since: Only count records created at or after this time

        Returns:
            Dictionary with request, cache-hit, token and cost totals
        """
        table = ai_api_usage
        stmt = sa.select(
            sa.func.count().label("requests"),
            sa.func.sum(sa.case((table.c.cache_hit.is_(True), 1), else_=0)).label("cache_hits"),
            sa.func.sum(table.c.total_tokens).label("total_tokens"),
            sa.func.sum(table.c.cost_usd).label("total_cost_usd"),
        ).select_from(table)
        if since is not None:
            stmt = stmt.where(table.c.created_at >= since)

        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                row = result.mappings().one()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"AI usage stats failed: {e}") from e

        requests = row["requests"] or 0
        cache_hits = row["cache_hits"] or 0

        stats = {
            "requests": requests,
            "cache_hits": cache_hits,
            "cache_hit_rate": round(cache_hits / requests, 4) if requests else 0.0,
            "total_tokens": row["total_tokens"] or 0,
            "total_cost_usd": Decimal(str(row["total_cost_usd"] or 0)).quantize(COST_PRECISION),
        }

        logger.info("ai_usage_stats_retrieved", **{k: v for k, v in stats.items() if k != "total_cost_usd"})
        return stats
