"""
Database session management for SQLAlchemy with async support

Supports both worker tasks (explicit init) and library callers (lazy init).
Also declares the shared table definitions used by the repositories.
"""
import os
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

metadata = sa.MetaData()


# Market suggestion cache (one row per category/country/merchant, merchant NULL = generic)
market_suggestions = sa.Table(
    "market_suggestions",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True),
    sa.Column("category", sa.String(50), nullable=False),
    sa.Column("country", sa.String(2), nullable=False),
    sa.Column("merchant_name", sa.String(255), nullable=True),
    sa.Column(
        "competitors",
        sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
        nullable=False,
    ),
    sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Index("idx_market_suggestions_category_country", "category", "country"),
    sa.Index("idx_market_suggestions_expires", "expires_at"),
    sa.Index(
        "idx_unique_market_suggestion_null",
        "category",
        "country",
        unique=True,
        postgresql_where=sa.text("merchant_name IS NULL"),
        sqlite_where=sa.text("merchant_name IS NULL"),
    ),
    sa.Index(
        "idx_unique_market_suggestion_not_null",
        "category",
        "country",
        "merchant_name",
        unique=True,
        postgresql_where=sa.text("merchant_name IS NOT NULL"),
        sqlite_where=sa.text("merchant_name IS NOT NULL"),
    ),
)


# Partner links attached to curated offers (one per category/country/provider)
affiliate_links = sa.Table(
    "affiliate_links",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True, default=uuid4),
    sa.Column("category", sa.String(50), nullable=False),
    sa.Column("country", sa.String(2), nullable=False),
    sa.Column("provider_name", sa.String(255), nullable=False),
    sa.Column("affiliate_url", sa.Text, nullable=False),
    sa.Column("commission_rate", sa.Numeric(5, 2), nullable=True),
    sa.Column("is_active", sa.Boolean, nullable=False, default=True),
    sa.Column("priority", sa.Integer, nullable=False, default=0),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    sa.Index("idx_affiliate_category_country", "category", "country"),
    sa.Index("idx_affiliate_active", "is_active"),
    sa.Index("idx_unique_affiliate_link", "category", "country", "provider_name", unique=True),
)


# AI spend ledger: one row per single-charge or batch analysis
ai_api_usage = sa.Table(
    "ai_api_usage",
    metadata,
    sa.Column("id", sa.Uuid, primary_key=True, default=uuid4),
    sa.Column("request_type", sa.String(50), nullable=False),
    sa.Column("category", sa.String(50), nullable=True),
    sa.Column("country", sa.String(2), nullable=True),
    sa.Column("input_tokens", sa.Integer, nullable=False, default=0),
    sa.Column("output_tokens", sa.Integer, nullable=False, default=0),
    sa.Column("total_tokens", sa.Integer, nullable=False, default=0),
    sa.Column("cost_usd", sa.Numeric(10, 6), nullable=False, default=0),
    sa.Column("cache_hit", sa.Boolean, nullable=False, default=False),
    sa.Column("duration_ms", sa.Integer, nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Index("idx_ai_usage_type", "request_type"),
    sa.Index("idx_ai_usage_created", "created_at"),
    sa.Index("idx_ai_usage_cache", "cache_hit"),
)


class DatabaseSessionManager:
    """Manage database connections and sessions"""

    def __init__(self):
        self._engine = None
        self._sessionmaker = None
        self._init_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        """Check if session manager is initialized"""
        return self._sessionmaker is not None

    async def init(self, database_url: str, **engine_kwargs):
        """Initialize database engine and session maker"""
        if self.initialized:
            return

        async with self._init_lock:  # Double-checked locking
            if self.initialized:
                return

            # Convert postgresql:// to postgresql+asyncpg://
            if database_url.startswith("postgresql://"):
                database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

            default_kwargs = {"echo": engine_kwargs.get("echo", False)}
            if database_url.startswith("postgresql"):
                default_kwargs.update({
                    "pool_size": 20,
                    "max_overflow": 10,
                    "pool_pre_ping": True,
                    "pool_recycle": 3600,
                })
            default_kwargs.update(engine_kwargs)

            self._engine = create_async_engine(database_url, **default_kwargs)

            self._sessionmaker = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autocommit=False,
                autoflush=False,
            )

    async def close(self):
        """Close database connections"""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Context manager for database sessions"""
        if not self.initialized:
            await _ensure_initialized()

        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


# Global session manager instance
sessionmanager = DatabaseSessionManager()


# ---- Lazy auto-init for standalone scripts and worker tasks -----------------------------

_lazy_lock = asyncio.Lock()


def resolve_database_url() -> str:
    """DATABASE_URL from the environment, else the URL built from the DB_* settings."""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        from packages.common.config import get_settings
        database_url = get_settings().database_url
    return database_url


async def _ensure_initialized():
    """
    Ensure database session manager is initialized.

    This allows worker tasks to run without an explicit init() call by reading
    DATABASE_URL from environment. Can be disabled in production with
    DB_LAZY_INIT=0 for stricter control.
    """
    if sessionmanager.initialized:
        return

    if os.getenv("DB_LAZY_INIT", "1") not in {"1", "true", "True"}:
        raise RuntimeError(
            "Database lazy init disabled and session manager not initialized. "
            "Call sessionmanager.init(DATABASE_URL) explicitly in startup."
        )

    database_url = resolve_database_url()
    echo = os.getenv("SQL_ECHO", "0") in {"1", "true", "True"}

    async with _lazy_lock:
        if not sessionmanager.initialized:
            await sessionmanager.init(database_url, echo=echo)
