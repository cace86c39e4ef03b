"""
Suggestion Cache - Persistent store of market analyses with expiry

The market_suggestions table holds one analysis per
(category, country, merchant_name). merchant_name NULL is the generic,
category-level entry; a merchant-specific entry is a different key and the
two are never conflated on lookup. Merchant names are stored lower-cased so
"Orange" and "orange" share one entry.

Cache Strategy:
1. First request for a key → AI search → curated offers stored (30 day TTL)
2. Next requests within TTL → Cache hit, savings recomputed for the caller
3. After expiry → row ignored on read, replaced by the next write for its key
   or removed by the janitor

Write policy (first writer wins):
Inserts are "insert, ignore on key conflict". Two concurrent misses for the
same key both search, both try to insert, exactly one row survives and the
later write is discarded. Rows are never updated in place, so readers never
observe a half-written analysis and there is no read-modify-write race.
Any two AI answers for the same key are equally valid, so losing one is
accepted rather than retried.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

import sqlalchemy as sa
import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from packages.common.database import market_suggestions, sessionmanager
from packages.domain.offers.exceptions import CacheStoreError
from packages.domain.offers.schemas import CompetitorOffer, MarketSuggestion

logger = structlog.get_logger()

DEFAULT_TTL_DAYS = 30

_INSERT_BUILDERS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything is stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_key(category: str, country: str, merchant_name: Optional[str]) -> tuple:
    """Canonical cache key: upper-case codes, lower-case collapsed merchant name or None."""
    merchant = " ".join((merchant_name or "").lower().split()) or None
    return (category or "").strip().upper(), (country or "").strip().upper(), merchant


class SuggestionCacheRepository:
    """
    Repository for market suggestion cache operations.

    Opens a short-lived session per operation so concurrent analyses never
    share an AsyncSession.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        ttl_days: int = DEFAULT_TTL_DAYS,
    ):
        """
        Args:
            session_factory: Callable returning an async context manager that
                yields an AsyncSession (defaults to sessionmanager.session)
            clock: Returns the current UTC time (injected for tests)
            ttl_days: Lifetime of new entries
        """
        self.session_factory = session_factory or sessionmanager.session
        self._clock = clock or utc_now
        self.ttl = timedelta(days=ttl_days)

    def now(self) -> datetime:
        return _as_utc(self._clock())

    def new_suggestion(
        self,
        category: str,
        country: str,
        merchant_name: Optional[str],
        competitors: list[CompetitorOffer],
    ) -> MarketSuggestion:
        """Build a fresh entry stamped with the cache clock and TTL."""
        category, country, merchant = normalize_key(category, country, merchant_name)
        now = self.now()
        return MarketSuggestion(
            id=uuid4(),
            category=category,
            country=country,
            merchant_name=merchant,
            competitors=competitors,
            last_updated=now,
            expires_at=now + self.ttl,
        )

    async def get(
        self,
        category: str,
        country: str,
        merchant_name: Optional[str] = None,
    ) -> Optional[MarketSuggestion]:
        """
        Look up a live cached analysis.

        Args:
            category: Charge category
            country: ISO country code
            merchant_name: Current provider; blank/None selects the generic entry

        Returns:
            MarketSuggestion, or None if missing or expired

        Raises:
            CacheStoreError: On database failure or an unreadable row
        """
        category, country, merchant = normalize_key(category, country, merchant_name)
        now = self.now()

        table = market_suggestions
        stmt = (
            sa.select(table)
            .where(self._key_clause(category, country, merchant))
            .where(table.c.expires_at > now)
            .order_by(table.c.last_updated.desc())
            .limit(1)
        )

        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                row = result.mappings().first()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Suggestion cache read failed: {e}") from e

        if row is None:
            logger.debug("suggestion_cache_miss",
                        category=category,
                        country=country,
                        merchant_specific=merchant is not None)
            return None

        suggestion = self._row_to_suggestion(row)

        # Guard against clock skew between the database and this process
        if suggestion.is_expired(now):
            return None

        logger.debug("suggestion_cache_hit",
                    category=category,
                    country=country,
                    merchant_specific=merchant is not None,
                    competitors=len(suggestion.competitors))
        return suggestion

    async def put(self, suggestion: MarketSuggestion) -> bool:
        """
        Store an analysis unless one already exists for its key.

        Args:
            suggestion: Entry to store (expires_at must be after last_updated)

        Returns:
            True if inserted, False if an entry for the key already existed

        Raises:
            ValueError: If the entry is already expired at creation
            CacheStoreError: On database failure
        """
        if suggestion.expires_at <= suggestion.last_updated:
            raise ValueError("expires_at must be later than last_updated")

        category, country, merchant = normalize_key(
            suggestion.category, suggestion.country, suggestion.merchant_name
        )
        values = {
            "id": suggestion.id,
            "category": category,
            "country": country,
            "merchant_name": merchant,
            "competitors": [offer.model_dump(mode="json") for offer in suggestion.competitors],
            "last_updated": _as_utc(suggestion.last_updated),
            "expires_at": _as_utc(suggestion.expires_at),
            "created_at": self.now(),
        }

        try:
            async with self.session_factory() as db:
                conn = await db.connection()
                insert_builder = _INSERT_BUILDERS.get(conn.dialect.name)
                if insert_builder is None:
                    raise CacheStoreError(f"Unsupported database dialect: {conn.dialect.name}")

                # An expired row still holds the key until the janitor runs
                await db.execute(
                    sa.delete(market_suggestions)
                    .where(self._key_clause(category, country, merchant))
                    .where(market_suggestions.c.expires_at <= values["created_at"])
                )

                stmt = insert_builder(market_suggestions).values(**values).on_conflict_do_nothing()
                result = await db.execute(stmt)
                inserted = result.rowcount > 0
                await db.commit()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Suggestion cache write failed: {e}") from e

        if inserted:
            logger.info("suggestion_cache_created",
                       category=category,
                       country=country,
                       merchant_specific=merchant is not None,
                       competitors=len(suggestion.competitors),
                       expires_at=values["expires_at"].isoformat())
        else:
            logger.info("suggestion_cache_write_discarded",
                       category=category,
                       country=country,
                       merchant_specific=merchant is not None,
                       reason="key_exists")
        return inserted

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete entries whose expiry has passed.

        Returns:
            Number of rows removed
        """
        cutoff = _as_utc(now) if now else self.now()
        stmt = sa.delete(market_suggestions).where(market_suggestions.c.expires_at <= cutoff)

        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                removed = result.rowcount or 0
                await db.commit()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Suggestion cache sweep failed: {e}") from e

        logger.info("suggestion_cache_expired_removed", removed=removed, cutoff=cutoff.isoformat())
        return removed

    async def invalidate_country(self, country: str) -> int:
        """
        Delete every entry for a country, expired or not.

        Returns:
            Number of rows removed
        """
        country = (country or "").strip().upper()
        stmt = sa.delete(market_suggestions).where(market_suggestions.c.country == country)

        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                removed = result.rowcount or 0
                await db.commit()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Suggestion cache invalidation failed: {e}") from e

        logger.info("suggestion_cache_country_invalidated", country=country, removed=removed)
        return removed

    async def get_cache_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics for monitoring.

        Returns:
            Dictionary with cache metrics
        """
        table = market_suggestions
        now = self.now()
        stmt = sa.select(
            sa.func.count().label("total_entries"),
            sa.func.sum(sa.case((table.c.expires_at > now, 1), else_=0)).label("live_entries"),
            sa.func.sum(sa.case((table.c.merchant_name.is_(None), 1), else_=0)).label("generic_entries"),
        ).select_from(table)

        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                row = result.mappings().one()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Suggestion cache stats failed: {e}") from e

        total = row["total_entries"] or 0
        live = row["live_entries"] or 0
        generic = row["generic_entries"] or 0

        stats = {
            "total_entries": total,
            "live_entries": live,
            "expired_entries": total - live,
            "generic_entries": generic,
            "merchant_entries": total - generic,
        }

        logger.info("suggestion_cache_stats_retrieved", **stats)
        return stats

    @staticmethod
    def _key_clause(category: str, country: str, merchant: Optional[str]):
        table = market_suggestions
        if merchant is None:
            merchant_clause = table.c.merchant_name.is_(None)
        else:
            merchant_clause = table.c.merchant_name == merchant
        return sa.and_(table.c.category == category, table.c.country == country, merchant_clause)

    @staticmethod
    def _row_to_suggestion(row) -> MarketSuggestion:
        try:
            return MarketSuggestion(
                id=row["id"],
                category=row["category"],
                country=row["country"],
                merchant_name=row["merchant_name"],
                competitors=row["competitors"] or [],
                last_updated=_as_utc(row["last_updated"]),
                expires_at=_as_utc(row["expires_at"]),
            )
        except PydanticValidationError as e:
            raise CacheStoreError(f"Unreadable cache row {row['id']}: {e}") from e
